"""Exit strategy: sell open positions that cross stop-loss or take-profit."""

from __future__ import annotations

from collections.abc import Mapping
from typing import ClassVar, Literal

from pydantic import Field

from pump_trader.config import Settings
from pump_trader.portfolio.ledger import PositionLedger
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import MarketEvent, TokenTradeEvent, TradeProposal
from pump_trader.strategy.base import Strategy, StrategyConfig
from pump_trader.types import Clock, Position
from pump_trader.utils.cache import BoundedDict
from pump_trader.utils.logging import log_risk_rejection, log_strategy_signal

_TRACKED_TOKENS = 10_000

ExitReason = Literal["stop_loss", "take_profit"]


class PositionManagementConfig(StrategyConfig):
    min_processing_interval_seconds: float = Field(default=10.0, ge=0.0)


def exit_reason(position: Position, price: float) -> ExitReason | None:
    """Which threshold ``price`` crosses for an open position, if any."""
    if position.status != "open":
        return None
    if price <= position.stop_loss:
        return "stop_loss"
    if price >= position.take_profit:
        return "take_profit"
    return None


class PositionManagementStrategy(Strategy):
    """Watches trade prices and exits whole positions on threshold crossings."""

    name: ClassVar[str] = "position_management"
    description: ClassVar[str] = (
        "Monitors open positions and manages exits based on stop loss or take profit"
    )
    config_model: ClassVar[type[StrategyConfig]] = PositionManagementConfig

    def __init__(
        self,
        settings: Settings,
        ledger: PositionLedger,
        risk_gate: RiskGate,
        config: PositionManagementConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, clock=clock)
        self._settings = settings
        self._ledger = ledger
        self._risk_gate = risk_gate
        self._prices: BoundedDict[str, float] = BoundedDict(_TRACKED_TOKENS)
        self._last_processed: BoundedDict[str, float] = BoundedDict(_TRACKED_TOKENS)

    @property
    def config(self) -> PositionManagementConfig:
        return self._config  # type: ignore[return-value]

    @property
    def current_prices(self) -> dict[str, float]:
        return dict(self._prices.items())

    def ingest(self, event: MarketEvent) -> None:
        if isinstance(event, TokenTradeEvent):
            self._prices.set(event.mint, event.price)

    def _take_processing_slot(self, mint: str) -> bool:
        now = self._clock()
        last = self._last_processed.get(mint)
        interval_ms = self.config.min_processing_interval_seconds * 1000
        if last is not None and now - last < interval_ms:
            return False
        self._last_processed.set(mint, now)
        return True

    def should_trade(self, event: MarketEvent) -> bool:
        if not self.is_enabled or not isinstance(event, TokenTradeEvent):
            return False

        self.ingest(event)
        position = self._ledger.get_open_position_for_token(event.mint)
        if position is None:
            return False
        if not self._take_processing_slot(event.mint):
            return False

        reason = exit_reason(position, event.price)
        if reason is None:
            return False
        self._logger.info(
            "exit_threshold_crossed",
            mint=event.mint,
            symbol=position.token_symbol,
            reason=reason,
            price=event.price,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
        )
        return True

    async def get_trade(self, event: MarketEvent) -> TradeProposal | None:
        if not isinstance(event, TokenTradeEvent):
            return None
        position = self._ledger.get_open_position_for_token(event.mint)
        if position is None:
            return None

        check = await self._risk_gate.check_trade("sell", event.mint, 0.0)
        if not check.allowed:
            log_risk_rejection(
                self._logger,
                strategy=self.name,
                mint=event.mint,
                reason=check.reason,
                symbol=position.token_symbol,
            )
            return None

        pnl_pct = (event.price - position.entry_price) / position.entry_price * 100
        log_strategy_signal(
            self._logger,
            strategy=self.name,
            action="sell",
            mint=event.mint,
            reason=exit_reason(position, event.price) or "manual_exit",
            symbol=position.token_symbol,
            price=event.price,
            entry_price=position.entry_price,
            pnl_pct=round(pnl_pct, 2),
        )
        # Percentage of live holdings; the ledger amount can drift from the wallet.
        return TradeProposal(
            action="sell",
            mint=event.mint,
            amount="100%",
            denominated_in_sol=False,
            slippage=self._settings.default_slippage,
            priority_fee=self._settings.default_priority_fee,
            pool=self._settings.default_pool,
            skip_preflight=False,
        )

    def refresh_unrealized_pnl(self, prices: Mapping[str, float] | None = None) -> float:
        """Push the latest prices into the ledger's unrealized P&L.

        ``prices`` (e.g. the engine's view of every trade) override the prices this
        strategy saw itself, which miss events an earlier strategy accepted.
        """
        merged = self.current_prices
        if prices:
            merged.update(prices)
        return self._ledger.update_unrealized_pnl(merged)
