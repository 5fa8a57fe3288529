"""Shared domain types for the trading engine."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from pump_trader.schemas import TradeProposal
    from pump_trader.strategy.base import Strategy

PositionStatus = Literal["open", "closed"]
TradeAction = Literal["buy", "sell"]

# Epoch milliseconds, the unit market events carry.
Clock = Callable[[], float]


def epoch_ms() -> float:
    """Wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


@dataclass(slots=True)
class Position:
    """One open or closed position lineage for a token."""

    mint: str
    token_name: str
    token_symbol: str
    entry_price: float
    amount: float
    opened_at: str
    stop_loss: float
    take_profit: float
    status: PositionStatus = "open"
    exit_price: float | None = None
    pnl: float | None = None


@dataclass(slots=True)
class Portfolio:
    """All positions ever created plus aggregate P&L."""

    positions: list[Position] = field(default_factory=list)
    total_invested_sol: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0


@dataclass(slots=True)
class RiskCheckResult:
    """Result of a risk gate check."""

    allowed: bool
    reason: str | None = None


@dataclass(slots=True)
class StrategyMatch:
    """The first strategy that accepted an event, with its proposal."""

    strategy: Strategy
    proposal: TradeProposal


@dataclass(slots=True)
class CycleResult:
    """Outcome of processing one market event."""

    status: str
    event_type: str = "unknown"
    strategy: str | None = None
    proposals: list[dict[str, object]] = field(default_factory=list)
    executions: list[dict[str, object]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
