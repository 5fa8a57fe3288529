"""Momentum entry strategy and the per-token trade window it reads from."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import ClassVar

from pydantic import Field

from pump_trader.config import Settings
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import MarketEvent, TokenTradeEvent, TradeProposal
from pump_trader.strategy.base import EntryStrategy, EntryStrategyConfig, StrategyConfig
from pump_trader.types import Clock
from pump_trader.utils.cache import BoundedDict
from pump_trader.utils.logging import log_strategy_signal

MAX_TRADE_HISTORY = 100
MAX_TRACKED_TOKENS = 5_000
SWEEP_INTERVAL_MS = 5 * 60 * 1000
RETENTION_BUFFER_MS = 60 * 60 * 1000


@dataclass(slots=True)
class TradeSample:
    action: str
    price: float
    amount_sol: float
    trader: str
    timestamp: float


@dataclass(slots=True)
class MomentumSignal:
    """Window statistics at the moment momentum was detected."""

    trade_count: int
    volume_sol: float
    oldest_price: float
    newest_price: float
    price_change_pct: float


@dataclass(slots=True)
class MomentumState:
    """Trade history for one token, newest first."""

    trades: list[TradeSample] = field(default_factory=list)
    last_trigger_ms: float | None = None
    symbol: str = ""
    last_signal: MomentumSignal | None = None


class MomentumTracker:
    """Sliding trade windows and trigger cooldowns keyed by mint.

    History is capped per token; tokens with no trade inside
    ``window + 1h`` are dropped by a sweep that runs at most every five minutes.
    The number of tracked tokens is also capped, least recently updated first out.
    """

    def __init__(
        self,
        *,
        started_at_ms: float,
        max_history: int = MAX_TRADE_HISTORY,
        max_tokens: int = MAX_TRACKED_TOKENS,
    ) -> None:
        self._max_history = max_history
        self._states: BoundedDict[str, MomentumState] = BoundedDict(max_tokens)
        self._last_sweep_ms = started_at_ms

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, mint: object) -> bool:
        return mint in self._states

    def get(self, mint: str) -> MomentumState | None:
        return self._states.get(mint)

    def record(self, event: TokenTradeEvent) -> MomentumState:
        state = self._states.get(event.mint) or MomentumState()
        state.trades.append(
            TradeSample(
                action=event.action,
                price=event.price,
                amount_sol=event.amount_sol,
                trader=event.trader,
                timestamp=event.timestamp,
            )
        )
        state.trades.sort(key=lambda t: t.timestamp, reverse=True)
        del state.trades[self._max_history :]
        if event.symbol:
            state.symbol = event.symbol
        self._states.set(event.mint, state)
        return state

    def maybe_sweep(self, now_ms: float, window_ms: float) -> int:
        """Drop stale tokens if the sweep interval has elapsed; returns the count removed."""
        if now_ms - self._last_sweep_ms < SWEEP_INTERVAL_MS:
            return 0
        self._last_sweep_ms = now_ms
        cutoff = now_ms - window_ms - RETENTION_BUFFER_MS
        stale = [
            mint
            for mint, state in self._states.items()
            if not any(t.timestamp > cutoff for t in state.trades)
        ]
        for mint in stale:
            self._states.delete(mint)
        return len(stale)

    def window_trades(self, mint: str, now_ms: float, window_ms: float) -> list[TradeSample]:
        state = self._states.get(mint)
        if state is None:
            return []
        return [t for t in state.trades if now_ms - t.timestamp < window_ms]

    def evaluate(
        self,
        mint: str,
        now_ms: float,
        *,
        window_ms: float,
        cooldown_ms: float,
        min_trade_count: int,
        min_volume: float,
        min_price_change_pct: float,
    ) -> MomentumSignal | None:
        """Momentum statistics if every threshold is met, else None. Pure."""
        state = self._states.get(mint)
        if state is None:
            return None
        if state.last_trigger_ms is not None and now_ms - state.last_trigger_ms < cooldown_ms:
            return None

        recent = self.window_trades(mint, now_ms, window_ms)
        if not recent or len(recent) < min_trade_count:
            return None

        volume = math.fsum(t.amount_sol for t in recent)
        if volume < min_volume:
            return None

        newest_price = recent[0].price
        oldest_price = recent[-1].price
        if oldest_price <= 0:
            return None
        change_pct = (newest_price - oldest_price) / oldest_price * 100
        if change_pct < min_price_change_pct:
            return None

        return MomentumSignal(
            trade_count=len(recent),
            volume_sol=volume,
            oldest_price=oldest_price,
            newest_price=newest_price,
            price_change_pct=change_pct,
        )

    def stamp_trigger(self, mint: str, now_ms: float, signal: MomentumSignal | None = None) -> None:
        state = self._states.get(mint)
        if state is None:
            return
        state.last_trigger_ms = now_ms
        state.last_signal = signal


class MomentumConfig(EntryStrategyConfig):
    min_trade_count: int = Field(default=5, ge=1)
    time_window_minutes: float = Field(default=5.0, gt=0.0)
    min_volume_threshold: float = Field(default=0.5, ge=0.0)
    price_increase_threshold: float = 5.0
    cooldown_period_minutes: float = Field(default=10.0, ge=0.0)


class MomentumStrategy(EntryStrategy):
    """Buys tokens whose recent trades show rising price on enough volume."""

    name: ClassVar[str] = "momentum"
    description: ClassVar[str] = (
        "Trades tokens showing strong price momentum based on volume and price action"
    )
    config_model: ClassVar[type[StrategyConfig]] = MomentumConfig

    def __init__(
        self,
        settings: Settings,
        risk_gate: RiskGate,
        config: MomentumConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(settings, risk_gate, config, clock=clock)
        self.tracker = MomentumTracker(started_at_ms=self._clock())

    @property
    def config(self) -> MomentumConfig:
        return self._config  # type: ignore[return-value]

    @property
    def window_ms(self) -> float:
        return self.config.time_window_minutes * 60 * 1000

    def ingest(self, event: MarketEvent) -> None:
        if not isinstance(event, TokenTradeEvent):
            return
        self.tracker.record(event)
        removed = self.tracker.maybe_sweep(self._clock(), self.window_ms)
        if removed:
            self._logger.debug("momentum_state_swept", removed=removed)

    def detect(self, mint: str) -> MomentumSignal | None:
        cfg = self.config
        return self.tracker.evaluate(
            mint,
            self._clock(),
            window_ms=self.window_ms,
            cooldown_ms=cfg.cooldown_period_minutes * 60 * 1000,
            min_trade_count=cfg.min_trade_count,
            min_volume=cfg.min_volume_threshold,
            min_price_change_pct=cfg.price_increase_threshold,
        )

    def should_trade(self, event: MarketEvent) -> bool:
        if not self.is_enabled or not isinstance(event, TokenTradeEvent):
            return False

        self.ingest(event)
        signal = self.detect(event.mint)
        if signal is None:
            return False

        # Stamped before sizing so overlapping events cannot trigger twice.
        self.tracker.stamp_trigger(event.mint, self._clock(), signal)
        return True

    async def get_trade(self, event: MarketEvent) -> TradeProposal | None:
        if not isinstance(event, TokenTradeEvent):
            return None
        state = self.tracker.get(event.mint)
        if state is None:
            return None

        symbol = state.symbol or event.mint[:8]
        proposal = await self._sized_buy(event.mint, symbol)
        if proposal is None:
            return None

        signal = state.last_signal
        log_strategy_signal(
            self._logger,
            strategy=self.name,
            action="buy",
            mint=event.mint,
            reason="momentum",
            symbol=symbol,
            amount_sol=proposal.amount,
            price_change_pct=round(signal.price_change_pct, 2) if signal else None,
            volume_sol=round(signal.volume_sol, 4) if signal else None,
        )
        return proposal
