"""Authoritative position ledger with a persisted portfolio snapshot."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pump_trader.types import Portfolio, Position
from pump_trader.utils.logging import get_logger

_SNAPSHOT_FILE = "portfolio.json"


class PositionLedger:
    """Open/closed positions and realized/unrealized P&L.

    At most one open position exists per mint; further buys merge into it.
    Every mutation rewrites the whole snapshot file. A failed write is logged and
    the in-memory state stays authoritative.
    """

    def __init__(self, data_dir: Path) -> None:
        self._logger = get_logger("pump_trader.portfolio.ledger")
        data_dir.mkdir(parents=True, exist_ok=True)
        self._state_file = data_dir / _SNAPSHOT_FILE
        self._portfolio = self._load_state()

    @property
    def state_file(self) -> Path:
        return self._state_file

    def get_portfolio(self) -> Portfolio:
        """Detached copy of the portfolio."""
        return replace(
            self._portfolio,
            positions=[replace(p) for p in self._portfolio.positions],
        )

    def get_positions(self) -> list[Position]:
        return list(self._portfolio.positions)

    def get_open_positions(self) -> list[Position]:
        return [p for p in self._portfolio.positions if p.status == "open"]

    def get_positions_for_token(self, mint: str) -> list[Position]:
        return [p for p in self._portfolio.positions if p.mint == mint]

    def get_open_position_for_token(self, mint: str) -> Position | None:
        for position in self._portfolio.positions:
            if position.mint == mint and position.status == "open":
                return position
        return None

    def add_position(
        self,
        mint: str,
        token_name: str,
        token_symbol: str,
        price: float,
        quantity: float,
        sol_amount: float,
        stop_loss_pct: float,
        take_profit_pct: float,
    ) -> Position:
        """Record a confirmed buy, opening a position or averaging into the open one."""
        if price <= 0:
            raise ValueError("price_must_be_positive")
        if quantity <= 0:
            raise ValueError("quantity_must_be_positive")

        existing = self.get_open_position_for_token(mint)
        if existing is not None:
            total_quantity = existing.amount + quantity
            total_cost = existing.amount * existing.entry_price + sol_amount
            existing.entry_price = total_cost / total_quantity
            existing.amount = total_quantity
            existing.stop_loss = _stop_loss(existing.entry_price, stop_loss_pct)
            existing.take_profit = _take_profit(existing.entry_price, take_profit_pct)
            self._portfolio.total_invested_sol += sol_amount
            self._logger.info(
                "position_averaged",
                mint=mint,
                symbol=existing.token_symbol,
                amount=existing.amount,
                entry_price=existing.entry_price,
            )
            self._persist()
            return existing

        position = Position(
            mint=mint,
            token_name=token_name,
            token_symbol=token_symbol,
            entry_price=float(price),
            amount=float(quantity),
            opened_at=datetime.now(timezone.utc).isoformat(),
            stop_loss=_stop_loss(price, stop_loss_pct),
            take_profit=_take_profit(price, take_profit_pct),
        )
        self._portfolio.positions.append(position)
        self._portfolio.total_invested_sol += sol_amount
        self._logger.info(
            "position_opened",
            mint=mint,
            symbol=token_symbol,
            amount=position.amount,
            entry_price=position.entry_price,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
        )
        self._persist()
        return position

    def close_position(
        self,
        mint: str,
        exit_price: float,
        quantity_sold: float,
        percent_sold: float,
    ) -> Position | None:
        """Book a confirmed sell; full when ``percent_sold >= 100`` or all tokens sold."""
        position = self.get_open_position_for_token(mint)
        if position is None:
            self._logger.warning("close_without_open_position", mint=mint)
            return None

        realized = (exit_price - position.entry_price) * quantity_sold
        self._portfolio.realized_pnl += realized

        if percent_sold >= 100 or quantity_sold >= position.amount:
            position.status = "closed"
            position.exit_price = float(exit_price)
            position.pnl = realized
            self._logger.info(
                "position_closed",
                mint=mint,
                symbol=position.token_symbol,
                exit_price=exit_price,
                pnl=realized,
            )
        else:
            position.amount -= quantity_sold
            self._logger.info(
                "position_partially_closed",
                mint=mint,
                symbol=position.token_symbol,
                sold=quantity_sold,
                remaining=position.amount,
                pnl=realized,
            )

        self._persist()
        return position

    def update_unrealized_pnl(self, prices: Mapping[str, float]) -> float:
        """Overwrite unrealized P&L from the latest prices of open positions."""
        total = 0.0
        for position in self.get_open_positions():
            current = prices.get(position.mint)
            if current is None:
                continue
            total += (current - position.entry_price) * position.amount
        self._portfolio.unrealized_pnl = total
        self._persist()
        return total

    def get_total_value(self) -> float:
        """Invested SOL plus unrealized P&L; the base for position-size limits."""
        return self._portfolio.total_invested_sol + self._portfolio.unrealized_pnl

    def check_positions_for_exit_signals(self, prices: Mapping[str, float]) -> list[Position]:
        """Open positions whose latest price crossed stop-loss or take-profit."""
        signals: list[Position] = []
        for position in self.get_open_positions():
            current = prices.get(position.mint)
            if current is None:
                continue
            if current <= position.stop_loss or current >= position.take_profit:
                signals.append(position)
        return signals

    def _load_state(self) -> Portfolio:
        if not self._state_file.exists():
            return Portfolio()
        try:
            raw = json.loads(self._state_file.read_text(encoding="utf-8"))
            positions = [Position(**row) for row in raw.get("positions", [])]
            return Portfolio(
                positions=positions,
                total_invested_sol=float(raw.get("total_invested_sol", 0.0)),
                realized_pnl=float(raw.get("realized_pnl", 0.0)),
                unrealized_pnl=float(raw.get("unrealized_pnl", 0.0)),
            )
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            self._logger.error("portfolio_load_failed", path=str(self._state_file), error=str(exc))
            return Portfolio()

    def _persist(self) -> None:
        payload: dict[str, Any] = asdict(self._portfolio)
        try:
            serialized = json.dumps(payload, ensure_ascii=True, indent=2)
            self._state_file.write_text(serialized, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            self._logger.error("portfolio_persist_failed", path=str(self._state_file), error=str(exc))


def _stop_loss(entry_price: float, stop_loss_pct: float) -> float:
    return entry_price * (1 - stop_loss_pct / 100)


def _take_profit(entry_price: float, take_profit_pct: float) -> float:
    return entry_price * (1 + take_profit_pct / 100)
