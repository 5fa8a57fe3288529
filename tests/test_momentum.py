from __future__ import annotations

import pytest
from pydantic import ValidationError

from conftest import FakeClock
from pump_trader.config import Settings
from pump_trader.risk.rules import RiskGate
from pump_trader.schemas import TokenTradeEvent
from pump_trader.strategy.momentum import MomentumStrategy, MomentumTracker

WINDOW_MS = 5 * 60 * 1000


def _trade(mint: str, price: float, ts: float, amount_sol: float = 0.1) -> TokenTradeEvent:
    return TokenTradeEvent(
        mint=mint,
        action="buy",
        price=price,
        amount_sol=amount_sol,
        trader="trader1",
        timestamp=ts,
        symbol="MOMO",
    )


def _burst(strategy: MomentumStrategy, clock: FakeClock, prices: list[float], amount_sol: float = 0.1) -> list[bool]:
    results = []
    for price in prices:
        clock.advance(seconds=1)
        results.append(strategy.should_trade(_trade("m1", price, clock.now_ms, amount_sol)))
    return results


def test_five_rising_trades_trigger_once_then_cooldown(
    settings: Settings, risk_gate: RiskGate, clock: FakeClock
) -> None:
    strategy = MomentumStrategy(settings, risk_gate, clock=clock)

    results = _burst(strategy, clock, [1.00, 1.01, 1.03, 1.05, 1.06])
    assert results == [False, False, False, False, True]
    signal = strategy.tracker.get("m1").last_signal
    assert signal is not None
    assert signal.trade_count == 5
    assert signal.volume_sol == pytest.approx(0.5)
    assert signal.price_change_pct == pytest.approx(6.0)

    clock.advance(minutes=1)
    assert strategy.should_trade(_trade("m1", 1.10, clock.now_ms)) is False


def test_trigger_recurs_after_cooldown(settings: Settings, risk_gate: RiskGate, clock: FakeClock) -> None:
    strategy = MomentumStrategy(settings, risk_gate, clock=clock)
    assert _burst(strategy, clock, [1.00, 1.01, 1.03, 1.05, 1.06])[-1] is True

    clock.advance(minutes=11)
    assert _burst(strategy, clock, [2.00, 2.02, 2.04, 2.08, 2.20])[-1] is True


def test_thin_volume_or_small_move_does_not_trigger(
    settings: Settings, risk_gate: RiskGate, clock: FakeClock
) -> None:
    strategy = MomentumStrategy(settings, risk_gate, clock=clock)
    assert not any(_burst(strategy, clock, [1.00, 1.02, 1.04, 1.06, 1.08], amount_sol=0.05))

    other = MomentumStrategy(settings, risk_gate, clock=clock)
    assert not any(_burst(other, clock, [1.00, 1.01, 1.02, 1.03, 1.04]))


def test_window_excludes_trades_exactly_window_old() -> None:
    tracker = MomentumTracker(started_at_ms=0)
    now = 10 * 60 * 1000
    tracker.record(_trade("m1", 1.0, now - WINDOW_MS))
    tracker.record(_trade("m1", 1.1, now - WINDOW_MS + 1))

    assert [t.price for t in tracker.window_trades("m1", now, WINDOW_MS)] == [1.1]


def test_evaluate_is_pure_until_stamped() -> None:
    tracker = MomentumTracker(started_at_ms=0)
    now = 60_000
    for i, price in enumerate([1.00, 1.02, 1.04, 1.05, 1.06]):
        tracker.record(_trade("m1", price, now - (5 - i) * 1000))

    kwargs = dict(
        window_ms=WINDOW_MS,
        cooldown_ms=10 * 60 * 1000,
        min_trade_count=5,
        min_volume=0.5,
        min_price_change_pct=5.0,
    )
    first = tracker.evaluate("m1", now, **kwargs)
    assert first is not None
    assert tracker.evaluate("m1", now, **kwargs) is not None

    tracker.stamp_trigger("m1", now, first)
    assert tracker.evaluate("m1", now + 1000, **kwargs) is None


def test_history_is_capped_newest_first() -> None:
    tracker = MomentumTracker(started_at_ms=0, max_history=100)
    for i in range(150):
        tracker.record(_trade("m1", 1.0 + i, float(i)))

    trades = tracker.get("m1").trades
    assert len(trades) == 100
    assert trades[0].timestamp == 149.0
    assert trades[-1].timestamp == 50.0


def test_tracked_tokens_are_capped() -> None:
    tracker = MomentumTracker(started_at_ms=0, max_tokens=3)
    for i, mint in enumerate(["a", "b", "c", "d"]):
        tracker.record(_trade(mint, 1.0, float(i)))

    assert len(tracker) == 3
    assert "a" not in tracker
    assert "d" in tracker


def test_sweep_drops_stale_tokens_at_most_every_five_minutes() -> None:
    tracker = MomentumTracker(started_at_ms=0)
    now = 2 * 60 * 60 * 1000
    tracker.record(_trade("stale", 1.0, 0.0))
    tracker.record(_trade("fresh", 1.0, now - 1000))

    assert tracker.maybe_sweep(now, WINDOW_MS) == 1
    assert "stale" not in tracker
    assert "fresh" in tracker

    tracker.record(_trade("stale", 1.0, 0.0))
    assert tracker.maybe_sweep(now + 60_000, WINDOW_MS) == 0


def test_disabled_strategy_ignores_events(settings: Settings, risk_gate: RiskGate, clock: FakeClock) -> None:
    strategy = MomentumStrategy(settings, risk_gate, clock=clock)
    strategy.is_enabled = False
    assert not any(_burst(strategy, clock, [1.00, 1.01, 1.03, 1.05, 1.06]))
    assert "m1" not in strategy.tracker


def test_configure_merges_and_rejects_invalid(settings: Settings, risk_gate: RiskGate, clock: FakeClock) -> None:
    strategy = MomentumStrategy(settings, risk_gate, clock=clock)
    strategy.configure(min_trade_count=3, min_volume_threshold=0.25)
    assert strategy.config.min_trade_count == 3
    assert strategy.config.cooldown_period_minutes == 10.0

    with pytest.raises(ValidationError):
        strategy.configure(min_trade_count=0)
    with pytest.raises(ValidationError):
        strategy.configure(unknown_param=1)
    assert strategy.config.min_trade_count == 3

    assert _burst(strategy, clock, [1.00, 1.03, 1.06]) == [False, False, True]
