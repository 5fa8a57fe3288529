"""Strategy interface shared by entry and exit strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from pump_trader.config import Settings
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import MarketEvent, TradeProposal
from pump_trader.types import Clock, epoch_ms
from pump_trader.utils.logging import get_logger, log_risk_rejection


class StrategyConfig(BaseModel):
    """Base for per-strategy parameters; validated on every change."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True


class EntryStrategyConfig(StrategyConfig):
    default_trade_amount: float = Field(default=0.1, gt=0.0)


class Strategy(ABC):
    """One trading rule set.

    ``ingest`` records event data, ``should_trade`` decides (and may stamp
    acceptance state), ``get_trade`` builds the proposal.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    config_model: ClassVar[type[StrategyConfig]] = StrategyConfig

    def __init__(self, config: StrategyConfig | None = None, *, clock: Clock | None = None) -> None:
        self._config = config if config is not None else self.config_model()
        self._clock = clock or epoch_ms
        self._logger = get_logger(f"pump_trader.strategy.{self.name}")

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    @is_enabled.setter
    def is_enabled(self, enabled: bool) -> None:
        self.configure(enabled=enabled)

    def configure(self, **params: Any) -> StrategyConfig:
        """Merge ``params`` onto the current configuration.

        Raises ``pydantic.ValidationError`` and keeps the old configuration when
        the merged result is invalid.
        """
        merged = self.config_model.model_validate({**self._config.model_dump(), **params})
        self._config = merged
        self._logger.info("strategy_configured", strategy=self.name, **merged.model_dump(mode="json"))
        return merged

    def ingest(self, event: MarketEvent) -> None:
        """Record event data. Default: nothing to record."""

    @abstractmethod
    def should_trade(self, event: MarketEvent) -> bool:
        """Whether this event should produce a proposal."""

    @abstractmethod
    async def get_trade(self, event: MarketEvent) -> TradeProposal | None:
        """Proposal for an accepted event, or None to abstain."""


class EntryStrategy(Strategy):
    """Strategy that buys a SOL amount sized by the risk gate."""

    config_model: ClassVar[type[StrategyConfig]] = EntryStrategyConfig

    def __init__(
        self,
        settings: Settings,
        risk_gate: RiskGate,
        config: StrategyConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, clock=clock)
        self._settings = settings
        self._risk_gate = risk_gate

    async def _sized_buy(self, mint: str, label: str) -> TradeProposal | None:
        amount = await self._risk_gate.get_optimal_trade_size(mint)
        if amount == 0:
            amount = self._config.default_trade_amount  # type: ignore[attr-defined]

        check = await self._risk_gate.check_trade("buy", mint, amount)
        if not check.allowed:
            log_risk_rejection(
                self._logger,
                strategy=self.name,
                mint=mint,
                reason=check.reason,
                symbol=label,
                amount=amount,
            )
            return None

        return TradeProposal(
            action="buy",
            mint=mint,
            amount=amount,
            denominated_in_sol=True,
            slippage=self._settings.default_slippage,
            priority_fee=self._settings.default_priority_fee,
            pool=self._settings.default_pool,
            skip_preflight=False,
        )
