"""Event-driven trading cycle: strategies -> execution -> ledger."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from pump_trader.config import Settings
from pump_trader.exec.base import TradeExecutor
from pump_trader.exec.paper import PaperExecutor
from pump_trader.exec.pumpportal import PumpPortalExecutor
from pump_trader.feed.replay import ReplayClock
from pump_trader.feed.websocket import PumpPortalFeed
from pump_trader.journal.store import JournalStore
from pump_trader.portfolio.ledger import PositionLedger
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import (
    ExecutionOutcome,
    MarketEvent,
    NewTokenEvent,
    TokenTradeEvent,
    TradeProposal,
    event_to_envelope,
)
from pump_trader.strategy import (
    MomentumStrategy,
    PositionManagementStrategy,
    SniperStrategy,
    StrategyPipeline,
)
from pump_trader.types import Clock, CycleResult, epoch_ms
from pump_trader.utils.cache import BoundedDict
from pump_trader.utils.logging import get_logger, log_portfolio, log_trade_execution
from pump_trader.wallet.base import WalletQuery, WalletQueryError
from pump_trader.wallet.rpc import RpcWallet

_TRACKED_TOKENS = 10_000
_PENDING_BUYS = 1_000
_QUEUE_SIZE = 1_000


@dataclass(slots=True)
class _TokenInfo:
    name: str
    symbol: str


@dataclass(slots=True)
class _PendingBuy:
    sol_amount: float
    token_amount: float | None


class TradingEngine:
    """Feeds market events through the strategy pipeline and books the results.

    Cycles are strictly serialized: ``handle_event`` holds a lock for the whole
    cycle, so volume tracking, cooldown stamps and ledger merges of one event
    finish before the next event is looked at.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        ledger: PositionLedger,
        risk_gate: RiskGate,
        pipeline: StrategyPipeline,
        executor: TradeExecutor,
        wallet: WalletQuery,
        journal: JournalStore,
        feed: PumpPortalFeed | None = None,
        dry_run: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.risk_gate = risk_gate
        self.pipeline = pipeline
        self.executor = executor
        self.wallet = wallet
        self.journal = journal
        self.feed = feed
        self.dry_run = dry_run
        self._clock = clock or epoch_ms
        self._lock = asyncio.Lock()
        self._prices: BoundedDict[str, float] = BoundedDict(_TRACKED_TOKENS)
        self._tokens: BoundedDict[str, _TokenInfo] = BoundedDict(_TRACKED_TOKENS)
        self._pending: BoundedDict[str, _PendingBuy] = BoundedDict(_PENDING_BUYS)
        self._logger = get_logger("pump_trader.engine")

    def last_price(self, mint: str) -> float | None:
        return self._prices.get(mint)

    def has_pending_buy(self, mint: str) -> bool:
        return mint in self._pending

    async def handle_event(self, event: MarketEvent) -> CycleResult:
        """Run one full cycle for ``event``. Never raises on strategy or execution faults."""
        async with self._lock:
            return await self._run_cycle(event)

    async def run(self, source: AsyncIterable[MarketEvent]) -> int:
        """Consume ``source`` through a single worker; returns the number of cycles run."""
        queue: asyncio.Queue[MarketEvent | None] = asyncio.Queue(maxsize=_QUEUE_SIZE)
        processed = 0

        async def produce() -> None:
            try:
                async for event in source:
                    await queue.put(event)
            finally:
                await queue.put(None)

        async def consume() -> None:
            nonlocal processed
            while True:
                event = await queue.get()
                if event is None:
                    return
                await self.handle_event(event)
                processed += 1

        await asyncio.gather(produce(), consume())
        self._log_portfolio()
        return processed

    async def prime_subscriptions(self) -> None:
        """Subscribe the feed to new tokens, held tokens and the wallet's own trades."""
        if self.feed is None:
            return
        await self.feed.subscribe_new_tokens()
        try:
            held = await self.wallet.get_all_tokens()
        except WalletQueryError as exc:
            self._logger.error("held_tokens_query_failed", error=str(exc))
            held = {}
        mints = set(held) | {p.mint for p in self.ledger.get_open_positions()}
        if mints:
            await self.feed.subscribe_token_trades(sorted(mints))
        if self.settings.wallet_public_key:
            await self.feed.subscribe_account_trades([self.settings.wallet_public_key])
        self._log_portfolio()

    async def _run_cycle(self, event: MarketEvent) -> CycleResult:
        started = perf_counter()
        if isinstance(self._clock, ReplayClock):
            self._clock.observe(event)
        result = CycleResult(status="unknown", event_type=event.event_type)
        self.journal.append(
            "cycle_start",
            {"event_type": event.event_type, "dry_run": self.dry_run},
        )

        try:
            self.journal.append("market_event", event_to_envelope(event))
            self._observe(event, result)

            match = await self.pipeline.process_event(event)
            if match is None:
                self._refresh_pnl()
                return self._finish(result, started, status="no_signal")

            proposal = match.proposal
            result.strategy = match.strategy.name
            result.proposals.append(proposal.to_payload())
            self.journal.append(
                "proposal",
                {"strategy": match.strategy.name, **proposal.to_payload()},
            )

            if self.dry_run:
                return self._finish(result, started, status="dry_run")

            outcome = await self._execute(proposal, result)
            self._refresh_pnl()
            status = "executed" if outcome.success else "execution_failed"
            return self._finish(result, started, status=status)

        except Exception as exc:  # noqa: BLE001 - top-level guard for feed resilience.
            self._logger.exception("cycle_failed", event_type=event.event_type, error=str(exc))
            self.journal.append("error", {"event_type": event.event_type, "error": str(exc)})
            result.warnings.append(f"cycle_failed: {exc}")
            return self._finish(result, started, status="failed")

    def _observe(self, event: MarketEvent, result: CycleResult) -> None:
        if isinstance(event, NewTokenEvent):
            self._tokens.set(event.mint, _TokenInfo(name=event.name, symbol=event.symbol))
            return
        if not isinstance(event, TokenTradeEvent) or event.price <= 0:
            return

        self._prices.set(event.mint, event.price)
        if event.symbol and event.mint not in self._tokens:
            self._tokens.set(event.mint, _TokenInfo(name=event.symbol, symbol=event.symbol))
        if isinstance(self.executor, PaperExecutor):
            self.executor.observe_price(event.mint, event.price)

        pending = self._pending.get(event.mint)
        if pending is not None and not self.dry_run:
            self._pending.delete(event.mint)
            quantity = pending.token_amount or pending.sol_amount / event.price
            self._book_buy(event.mint, event.price, quantity, pending.sol_amount, result)

    async def _execute(self, proposal: TradeProposal, result: CycleResult) -> ExecutionOutcome:
        held_before = None
        if proposal.action == "sell":
            held_before = await self._held_quantity(proposal.mint)

        outcome = await self.executor.execute(proposal)
        price = outcome.price or self._prices.get(proposal.mint)
        execution: dict[str, Any] = {
            "action": proposal.action,
            "mint": proposal.mint,
            "amount": proposal.amount,
            "success": outcome.success,
            "signature": outcome.signature,
            "error": outcome.error,
            "token_amount": outcome.token_amount,
            "price": price,
        }
        result.executions.append(execution)
        self.journal.append("execution", execution)
        log_trade_execution(
            self._logger,
            action=proposal.action,
            mint=proposal.mint,
            amount=proposal.amount,
            price=price,
            success=outcome.success,
            signature=outcome.signature,
            error=outcome.error,
        )

        if not outcome.success:
            result.warnings.append(f"execution_failed: {outcome.error}")
            return outcome

        if proposal.action == "buy":
            self._record_buy(proposal, outcome, result)
            if self.feed is not None:
                await self.feed.subscribe_token_trades([proposal.mint])
        else:
            self._record_sell(proposal, outcome, held_before, result)
        return outcome

    def _record_buy(self, proposal: TradeProposal, outcome: ExecutionOutcome, result: CycleResult) -> None:
        sol_amount = proposal.sol_amount
        if sol_amount is None:
            result.warnings.append("buy_not_denominated_in_sol")
            return

        self.risk_gate.track_trade_volume(sol_amount)

        price = outcome.price or self._prices.get(proposal.mint)
        if not price and outcome.token_amount:
            price = sol_amount / outcome.token_amount
        if not price:
            # Brand-new tokens have no trade yet; book at the first observed price.
            self._pending.set(
                proposal.mint,
                _PendingBuy(sol_amount=sol_amount, token_amount=outcome.token_amount),
            )
            result.warnings.append("position_pending_price")
            self.journal.append(
                "ledger_update",
                {"action": "buy_pending", "mint": proposal.mint, "sol_amount": sol_amount},
            )
            return

        quantity = outcome.token_amount or sol_amount / price
        self._book_buy(proposal.mint, price, quantity, sol_amount, result)

    def _book_buy(
        self,
        mint: str,
        price: float,
        quantity: float,
        sol_amount: float,
        result: CycleResult,
    ) -> None:
        info = self._tokens.get(mint) or _TokenInfo(name=mint[:8], symbol=mint[:4])
        position = self.ledger.add_position(
            mint,
            info.name or mint[:8],
            info.symbol or mint[:4],
            price,
            quantity,
            sol_amount,
            self.settings.stop_loss_percentage,
            self.settings.take_profit_percentage,
        )
        self.journal.append(
            "ledger_update",
            {
                "action": "buy",
                "mint": mint,
                "price": price,
                "quantity": quantity,
                "sol_amount": sol_amount,
                "position_amount": position.amount,
                "entry_price": position.entry_price,
            },
        )
        self._log_portfolio()

    def _record_sell(
        self,
        proposal: TradeProposal,
        outcome: ExecutionOutcome,
        held_before: float | None,
        result: CycleResult,
    ) -> None:
        price = outcome.price or self._prices.get(proposal.mint)
        if not price:
            result.warnings.append("sell_without_price")
            return

        percent = proposal.percentage
        if percent is not None and held_before is not None:
            quantity = held_before * min(percent, 100.0) / 100.0
        elif outcome.token_amount is not None:
            quantity = outcome.token_amount
        else:
            result.warnings.append("sell_quantity_unknown")
            return

        position = self.ledger.close_position(
            proposal.mint,
            price,
            quantity,
            percent if percent is not None else 0.0,
        )
        if position is None:
            result.warnings.append("sell_without_open_position")
            return
        self.journal.append(
            "ledger_update",
            {
                "action": "sell",
                "mint": proposal.mint,
                "price": price,
                "quantity": quantity,
                "status": position.status,
                "pnl": position.pnl,
            },
        )
        self._log_portfolio()

    async def _held_quantity(self, mint: str) -> float | None:
        """Wallet balance before the sell, else the ledger's recorded quantity."""
        try:
            balance = await self.wallet.get_token_balance(mint)
        except WalletQueryError as exc:
            self._logger.error("token_balance_query_failed", mint=mint, error=str(exc))
            balance = None
        if balance is not None:
            return balance
        position = self.ledger.get_open_position_for_token(mint)
        return position.amount if position is not None else None

    def _refresh_pnl(self) -> None:
        if self.dry_run:
            return
        exit_strategy = self.pipeline.get_strategy(PositionManagementStrategy.name)
        if isinstance(exit_strategy, PositionManagementStrategy):
            exit_strategy.refresh_unrealized_pnl(dict(self._prices.items()))

    def _log_portfolio(self) -> None:
        portfolio = self.ledger.get_portfolio()
        log_portfolio(
            self._logger,
            total_value=self.ledger.get_total_value(),
            realized_pnl=portfolio.realized_pnl,
            unrealized_pnl=portfolio.unrealized_pnl,
            open_positions=len(self.ledger.get_open_positions()),
            daily_volume_sol=self.risk_gate.get_daily_trading_volume(),
        )

    def _finish(self, result: CycleResult, started: float, *, status: str) -> CycleResult:
        result.status = status
        result.elapsed_ms = (perf_counter() - started) * 1000
        self.journal.append(
            "cycle_end",
            {"status": status, "strategy": result.strategy, "elapsed_ms": result.elapsed_ms},
        )
        return result


def build_engine(
    settings: Settings,
    *,
    dry_run: bool = False,
    executor: TradeExecutor | None = None,
    wallet: WalletQuery | None = None,
    feed: PumpPortalFeed | None = None,
    clock: Clock | None = None,
) -> TradingEngine:
    """Wire the default components for ``settings.mode``.

    Paper mode uses one ``PaperExecutor`` as both executor and wallet. Strategies
    are registered sniper, momentum, then position management.
    """
    settings.ensure_directories()
    if executor is None or wallet is None:
        if settings.is_paper_mode:
            paper = PaperExecutor(
                settings.data_dir,
                initial_balance_sol=settings.paper_initial_balance_sol,
            )
            executor = executor or paper
            wallet = wallet or paper
        else:
            executor = executor or PumpPortalExecutor(settings)
            wallet = wallet or RpcWallet(settings)

    ledger = PositionLedger(settings.data_dir)
    risk_gate = RiskGate(settings, wallet, ledger, clock=clock)
    pipeline = StrategyPipeline()
    pipeline.register_strategy(SniperStrategy(settings, risk_gate, clock=clock))
    pipeline.register_strategy(MomentumStrategy(settings, risk_gate, clock=clock))
    pipeline.register_strategy(PositionManagementStrategy(settings, ledger, risk_gate, clock=clock))

    return TradingEngine(
        settings,
        ledger=ledger,
        risk_gate=risk_gate,
        pipeline=pipeline,
        executor=executor,
        wallet=wallet,
        journal=JournalStore(settings.journal_dir),
        feed=feed,
        dry_run=dry_run,
        clock=clock,
    )
