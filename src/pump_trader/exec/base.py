"""Execution backend interface."""

from __future__ import annotations

from typing import Protocol

from pump_trader.schemas import ExecutionOutcome, TradeProposal


class ExecutionAPIError(Exception):
    """Raised when the execution transport/request fails."""


class TradeExecutor(Protocol):
    """Turns a trade proposal into a settled (or failed) trade."""

    async def execute(self, proposal: TradeProposal) -> ExecutionOutcome:
        """Execute one proposal and report the outcome."""
