"""New-token entry strategy: buy freshly created tokens that pass basic filters."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field

from pump_trader.config import Settings
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import MarketEvent, NewTokenEvent, TradeProposal
from pump_trader.strategy.base import EntryStrategy, EntryStrategyConfig, StrategyConfig
from pump_trader.types import Clock
from pump_trader.utils.cache import BoundedSet
from pump_trader.utils.logging import log_strategy_signal

_PROCESSED_CAPACITY = 10_000
_PROCESSED_TTL_SECONDS = 60 * 60
# Marks must outlive the age limit, or an expired mint could pass the age check again.
_PROCESSED_TTL_MARGIN_SECONDS = 60.0


class SniperConfig(EntryStrategyConfig):
    max_age_seconds: float = Field(default=30.0, gt=0.0)
    blocked_creators: frozenset[str] = frozenset()
    blocked_phrases: tuple[str, ...] = ()


class SniperStrategy(EntryStrategy):
    """Buys each new token at most once, if it is young and not blocklisted."""

    name: ClassVar[str] = "sniper"
    description: ClassVar[str] = "Quickly buys newly created tokens based on configurable criteria"
    config_model: ClassVar[type[StrategyConfig]] = SniperConfig

    def __init__(
        self,
        settings: Settings,
        risk_gate: RiskGate,
        config: SniperConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(settings, risk_gate, config, clock=clock)
        self._processed: BoundedSet[str] = BoundedSet(
            _PROCESSED_CAPACITY,
            _processed_ttl(self.config),
            clock=self._clock,
        )

    @property
    def config(self) -> SniperConfig:
        return self._config  # type: ignore[return-value]

    def configure(self, **params: Any) -> SniperConfig:
        config: SniperConfig = super().configure(**params)  # type: ignore[assignment]
        # Never shorten: marks written under a longer limit must stay valid.
        self._processed.ttl_seconds = max(self._processed.ttl_seconds or 0.0, _processed_ttl(config))
        return config

    def rejection_reason(self, event: NewTokenEvent) -> str | None:
        """First filter the token fails, or None when eligible. Pure."""
        cfg = self.config
        if event.mint in self._processed:
            return "already_processed"

        age_ms = self._clock() - event.created_at
        if age_ms > cfg.max_age_seconds * 1000:
            return "too_old"

        if event.creator_address in cfg.blocked_creators:
            return "blocked_creator"

        token_text = f"{event.name.lower()} {event.symbol.lower()}"
        for phrase in cfg.blocked_phrases:
            if phrase.lower() in token_text:
                return "blocked_phrase"
        return None

    def should_trade(self, event: MarketEvent) -> bool:
        if not self.is_enabled or not isinstance(event, NewTokenEvent):
            return False

        reason = self.rejection_reason(event)
        if reason is not None:
            self._logger.debug("sniper_skip", mint=event.mint, symbol=event.symbol, reason=reason)
            return False

        self._processed.add(event.mint)
        self._logger.debug("sniper_candidate", mint=event.mint, symbol=event.symbol)
        return True

    async def get_trade(self, event: MarketEvent) -> TradeProposal | None:
        if not isinstance(event, NewTokenEvent):
            return None

        proposal = await self._sized_buy(event.mint, event.symbol)
        if proposal is None:
            return None

        log_strategy_signal(
            self._logger,
            strategy=self.name,
            action="buy",
            mint=event.mint,
            reason="new_token",
            symbol=event.symbol,
            amount_sol=proposal.amount,
        )
        return proposal


def _processed_ttl(config: SniperConfig) -> float:
    return max(_PROCESSED_TTL_SECONDS, config.max_age_seconds + _PROCESSED_TTL_MARGIN_SECONDS)
