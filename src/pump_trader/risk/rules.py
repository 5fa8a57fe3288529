"""Hard risk control rules: balance, daily volume and position-size limits."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pump_trader.config import Settings
from pump_trader.portfolio.ledger import PositionLedger
from pump_trader.types import Clock, RiskCheckResult, TradeAction, epoch_ms
from pump_trader.utils.logging import get_logger
from pump_trader.wallet.base import WalletQuery, WalletQueryError

_DCA_FACTOR = 0.5


class DailyVolumeCounter:
    """SOL bought since the last UTC midnight.

    The reset is lazy: the first read or write after the boundary zeroes the
    counter before using it. Process-lifetime only; a restart starts from zero.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or epoch_ms
        self._volume = 0.0
        self._next_reset_ms = 0.0
        self._logger = get_logger("pump_trader.risk.volume")
        self._reset()

    @property
    def next_reset_at(self) -> datetime:
        return datetime.fromtimestamp(self._next_reset_ms / 1000, tz=timezone.utc)

    def add(self, sol_amount: float) -> float:
        if sol_amount < 0:
            raise ValueError("volume_must_be_non_negative")
        self._roll_if_needed()
        self._volume += sol_amount
        self._logger.debug("daily_volume_increased", added=sol_amount, volume=self._volume)
        return self._volume

    def current(self) -> float:
        self._roll_if_needed()
        return self._volume

    def _roll_if_needed(self) -> None:
        if self._clock() >= self._next_reset_ms:
            self._reset()

    def _reset(self) -> None:
        self._volume = 0.0
        now = datetime.fromtimestamp(self._clock() / 1000, tz=timezone.utc)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        self._next_reset_ms = midnight.timestamp() * 1000
        self._logger.debug("daily_volume_reset", next_reset=midnight.isoformat())


class RiskGate:
    """Validates proposed trades and sizes new buys."""

    def __init__(
        self,
        settings: Settings,
        wallet: WalletQuery,
        ledger: PositionLedger,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._wallet = wallet
        self._ledger = ledger
        self._daily = DailyVolumeCounter(clock=clock)
        self._logger = get_logger("pump_trader.risk.rules")

    async def check_trade(self, action: TradeAction, mint: str, sol_amount: float) -> RiskCheckResult:
        """Check one trade; the first failing rule wins.

        Sells only require that the wallet holds the token; their amount is not
        validated.
        """
        if action == "sell":
            if not await self._holds(mint):
                return RiskCheckResult(False, f"Cannot sell token {mint}: not found in wallet")
            return RiskCheckResult(True)

        s = self._settings
        daily_volume = self._daily.current()
        balance = await self._balance()
        needed = sol_amount + s.fee_buffer_sol
        if balance < needed:
            return RiskCheckResult(
                False,
                f"Insufficient balance: {balance} SOL available, {needed} SOL needed",
            )
        if daily_volume + sol_amount > s.max_daily_trading_volume:
            return RiskCheckResult(
                False,
                f"Trade would exceed daily volume limit of {s.max_daily_trading_volume} SOL",
            )
        if sol_amount < s.min_trade_amount_sol:
            return RiskCheckResult(
                False,
                f"Trade amount {sol_amount} SOL is below minimum of {s.min_trade_amount_sol} SOL",
            )
        if sol_amount > s.max_trade_amount_sol:
            return RiskCheckResult(
                False,
                f"Trade amount {sol_amount} SOL exceeds maximum of {s.max_trade_amount_sol} SOL",
            )
        max_position = self._max_position_size()
        if sol_amount > max_position:
            return RiskCheckResult(
                False,
                f"Position size {sol_amount} SOL exceeds max allowed "
                f"({s.max_position_size_percentage}% of portfolio = {max_position} SOL)",
            )
        return RiskCheckResult(True)

    async def get_optimal_trade_size(self, mint: str) -> float:
        """Largest buy every limit allows, 0.0 when below the minimum trade size.

        Adding to an open position gets half of a fresh position's size. The
        result still has to pass ``check_trade``.
        """
        s = self._settings
        balance = await self._balance()
        available = max(0.0, balance - s.fee_buffer_sol)
        remaining_daily = s.max_daily_trading_volume - self._daily.current()
        size = min(
            available,
            self._max_position_size(),
            remaining_daily,
            s.max_trade_amount_sol,
        )
        if size < s.min_trade_amount_sol:
            self._logger.warning("optimal_size_below_minimum", mint=mint, size=size)
            return 0.0

        if self._ledger.get_open_position_for_token(mint) is not None:
            size *= _DCA_FACTOR
            self._logger.debug("optimal_size_dca_reduced", mint=mint, size=size)

        self._logger.debug("optimal_size_computed", mint=mint, size=size)
        return size

    def track_trade_volume(self, sol_amount: float) -> float:
        """Count one confirmed buy toward today's volume."""
        return self._daily.add(sol_amount)

    def get_daily_trading_volume(self) -> float:
        return self._daily.current()

    def _max_position_size(self) -> float:
        return self._ledger.get_total_value() * (self._settings.max_position_size_percentage / 100)

    async def _balance(self) -> float:
        try:
            return await self._wallet.get_balance()
        except WalletQueryError as exc:
            self._logger.error("balance_query_failed", error=str(exc))
            return 0.0

    async def _holds(self, mint: str) -> bool:
        try:
            return await self._wallet.has_token(mint)
        except WalletQueryError as exc:
            self._logger.error("holdings_query_failed", mint=mint, error=str(exc))
            return False
