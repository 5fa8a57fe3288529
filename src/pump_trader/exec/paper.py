"""Paper trading executor with persistent local state."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pump_trader.schemas import ExecutionOutcome, TradeProposal
from pump_trader.utils.logging import get_logger

_DUST = 1e-12


@dataclass(slots=True)
class _PaperState:
    balance_sol: float
    initial_balance_sol: float
    holdings: dict[str, float] = field(default_factory=dict)
    pending_sol: dict[str, float] = field(default_factory=dict)
    trade_count: int = 0
    updated_at: str = ""


class PaperExecutor:
    """Simulated execution and wallet.

    Fills at the last observed trade price adjusted by ``slippage_bps``. A buy of
    a token with no observed price yet debits the SOL at once and converts it to
    tokens at the first price seen. Also answers the wallet queries the risk gate
    needs, from the simulated balances.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        initial_balance_sol: float = 1.0,
        slippage_bps: float = 2.0,
    ) -> None:
        self._slippage_bps = slippage_bps
        self._logger = get_logger("pump_trader.exec.paper")
        data_dir.mkdir(parents=True, exist_ok=True)
        self._state_file = data_dir / "paper_state.json"
        self._state = self._load_state(initial_balance_sol)
        self._prices: dict[str, float] = {}

    def observe_price(self, mint: str, price: float) -> None:
        if price <= 0:
            return
        self._prices[mint] = price
        pending = self._state.pending_sol.pop(mint, None)
        if pending is not None:
            tokens = pending / self._buy_price(price)
            self._state.holdings[mint] = self._state.holdings.get(mint, 0.0) + tokens
            self._persist()
            self._logger.debug("paper_pending_settled", mint=mint, tokens=tokens, price=price)

    async def execute(self, proposal: TradeProposal) -> ExecutionOutcome:
        price = self._prices.get(proposal.mint)
        if proposal.action == "buy":
            return self._buy(proposal, price)
        if price is None:
            return ExecutionOutcome.failed("paper_sell_requires_observed_price")
        return self._sell(proposal, price)

    def _buy_price(self, price: float) -> float:
        return price * (1.0 + self._slippage_bps / 10_000.0)

    def _buy(self, proposal: TradeProposal, price: float | None) -> ExecutionOutcome:
        sol_amount = proposal.sol_amount
        if sol_amount is None:
            return ExecutionOutcome.failed("paper_buy_requires_sol_amount")
        if self._state.balance_sol < sol_amount:
            return ExecutionOutcome.failed("insufficient_balance")

        self._state.balance_sol -= sol_amount
        if price is None:
            pending = self._state.pending_sol.get(proposal.mint, 0.0)
            self._state.pending_sol[proposal.mint] = pending + sol_amount
            return self._filled(proposal, None, None)

        fill_price = self._buy_price(price)
        tokens = sol_amount / fill_price
        self._state.holdings[proposal.mint] = self._state.holdings.get(proposal.mint, 0.0) + tokens
        return self._filled(proposal, tokens, fill_price)

    def _sell(self, proposal: TradeProposal, price: float) -> ExecutionOutcome:
        held = self._state.holdings.get(proposal.mint, 0.0)
        if held <= _DUST:
            return ExecutionOutcome.failed("no_holdings")

        fill_price = price * (1.0 - self._slippage_bps / 10_000.0)
        percentage = proposal.percentage
        if percentage is not None:
            tokens = held * min(percentage, 100.0) / 100.0
        else:
            tokens = min(held, float(proposal.amount) / fill_price)

        remaining = held - tokens
        if remaining <= _DUST:
            self._state.holdings.pop(proposal.mint, None)
        else:
            self._state.holdings[proposal.mint] = remaining
        self._state.balance_sol += tokens * fill_price
        return self._filled(proposal, tokens, fill_price)

    def _filled(
        self,
        proposal: TradeProposal,
        tokens: float | None,
        fill_price: float | None,
    ) -> ExecutionOutcome:
        self._state.trade_count += 1
        self._persist()
        signature = f"paper-{uuid.uuid4().hex[:16]}"
        self._logger.debug(
            "paper_fill",
            action=proposal.action,
            mint=proposal.mint,
            tokens=tokens,
            price=fill_price,
            balance_sol=self._state.balance_sol,
        )
        return ExecutionOutcome(
            success=True,
            signature=signature,
            token_amount=tokens,
            price=fill_price,
        )

    async def get_balance(self) -> float:
        return self._state.balance_sol

    async def has_token(self, mint: str) -> bool:
        return self._state.holdings.get(mint, 0.0) > _DUST

    async def get_token_balance(self, mint: str) -> float | None:
        return self._state.holdings.get(mint, 0.0)

    async def get_all_tokens(self) -> dict[str, float]:
        return {mint: qty for mint, qty in self._state.holdings.items() if qty > _DUST}

    def _load_state(self, initial_balance_sol: float) -> _PaperState:
        fresh = _PaperState(balance_sol=initial_balance_sol, initial_balance_sol=initial_balance_sol)
        if not self._state_file.exists():
            return fresh

        try:
            raw = json.loads(self._state_file.read_text(encoding="utf-8"))
            return _PaperState(
                balance_sol=float(raw.get("balance_sol", initial_balance_sol)),
                initial_balance_sol=float(raw.get("initial_balance_sol", initial_balance_sol)),
                holdings=_float_map(raw.get("holdings")),
                pending_sol=_float_map(raw.get("pending_sol")),
                trade_count=int(raw.get("trade_count", 0)),
                updated_at=str(raw.get("updated_at", "")),
            )
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            self._logger.error("paper_state_load_failed", path=str(self._state_file), error=str(exc))
            return fresh

    def _persist(self) -> None:
        self._state.updated_at = datetime.now(timezone.utc).isoformat()
        payload: dict[str, Any] = asdict(self._state)
        serialized = json.dumps(payload, ensure_ascii=True, indent=2)
        self._state_file.write_text(serialized, encoding="utf-8")


def _float_map(raw: Any) -> dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): float(v) for k, v in raw.items()}
