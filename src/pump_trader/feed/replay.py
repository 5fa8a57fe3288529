"""Recorded market events from JSONL files."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

from pump_trader.schemas import EventParseError, MarketEvent, NewTokenEvent, TokenTradeEvent, parse_event
from pump_trader.utils.logging import get_logger

logger = get_logger("pump_trader.feed.replay")


class ReplayClock:
    """Clock driven by recorded event times instead of the wall clock.

    Time only moves forward: each observed event advances it to the event's
    ``timestamp`` (trades) or ``createdAt`` (new tokens) when that is later.
    Windows, cooldowns and age limits then judge a recording as if it were live.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now_ms = start_ms

    def __call__(self) -> float:
        return self._now_ms

    def observe(self, event: MarketEvent) -> float:
        if isinstance(event, TokenTradeEvent):
            self._now_ms = max(self._now_ms, event.timestamp)
        elif isinstance(event, NewTokenEvent):
            self._now_ms = max(self._now_ms, event.created_at)
        return self._now_ms


def iter_replay_events(path: Path) -> Iterator[MarketEvent]:
    """Yield one event per ``{"type": ..., "data": {...}}`` line.

    Blank lines are skipped; malformed lines are logged and skipped.
    """
    with path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
                if not isinstance(payload, dict):
                    raise EventParseError("event_not_an_object")
                yield parse_event(payload)
            except (ValueError, EventParseError) as exc:
                logger.warning("replay_line_skipped", path=str(path), line=line_no, error=str(exc))


async def replay_events(path: Path, *, delay_seconds: float = 0.0) -> AsyncIterator[MarketEvent]:
    """Async wrapper for ``TradingEngine.run``."""
    for event in iter_replay_events(path):
        yield event
        await asyncio.sleep(delay_seconds)
