from __future__ import annotations

import json
from pathlib import Path

import pytest

from pump_trader.config import Settings
from pump_trader.feed.websocket import FeedExhaustedError, PumpPortalFeed
from pump_trader.schemas import NewTokenEvent, TokenTradeEvent

_NEW_TOKEN = json.dumps(
    {"type": "newToken", "data": {"mint": "m1", "name": "N", "symbol": "S", "createdAt": 1}}
)
_TRADE = json.dumps(
    {
        "type": "tokenTrade",
        "data": {"mint": "m1", "action": "buy", "price": 0.5, "amountSol": 0.1, "timestamp": 2},
    }
)


class _FakeSocket:
    def __init__(self, messages: list[str], error: Exception | None = None) -> None:
        self.messages = messages
        self.error = error
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        self.closed = True


class _Connector:
    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self, url: str) -> _FakeSocket:
        self.calls += 1
        result = self.results.pop(0) if self.results else OSError("unreachable")
        if isinstance(result, Exception):
            raise result
        return result


def _settings(tmp_path: Path, attempts: int = 3) -> Settings:
    return Settings(data_dir=tmp_path, ws_reconnect_interval=0, ws_max_reconnect_attempts=attempts)


@pytest.mark.asyncio
async def test_deferred_subscriptions_and_message_filtering(tmp_path: Path) -> None:
    socket = _FakeSocket(
        [
            json.dumps({"message": "Successfully subscribed to keys."}),
            "{not json",
            json.dumps({"type": "tokenTrade", "data": {"mint": "m1"}}),
            _NEW_TOKEN,
            _TRADE,
        ]
    )
    feed = PumpPortalFeed(_settings(tmp_path), connect=_Connector(socket))

    assert await feed.subscribe_new_tokens() is False
    assert await feed.subscribe_token_trades(["m1", "m2"]) is False

    events = []
    stream = feed.events()
    async for event in stream:
        events.append(event)
        if len(events) == 2:
            break
    await stream.aclose()

    assert [type(e) for e in events] == [NewTokenEvent, TokenTradeEvent]
    assert socket.sent == [
        {"method": "subscribeNewToken"},
        {"method": "subscribeTokenTrade", "keys": ["m1", "m2"]},
    ]
    assert socket.closed


@pytest.mark.asyncio
async def test_reconnect_replays_subscriptions(tmp_path: Path) -> None:
    first = _FakeSocket([_NEW_TOKEN], error=OSError("connection reset"))
    second = _FakeSocket([_TRADE])
    connector = _Connector(first, second)
    feed = PumpPortalFeed(_settings(tmp_path), connect=connector)
    await feed.subscribe_account_trades(["wallet1"])

    events = []
    stream = feed.events()
    async for event in stream:
        events.append(event)
        if len(events) == 1:
            assert await feed.subscribe_token_trades(["m1"]) is True
        if len(events) == 2:
            break
    await stream.aclose()

    assert connector.calls == 2
    assert {"method": "subscribeTokenTrade", "keys": ["m1"]} in first.sent
    assert second.sent == [
        {"method": "subscribeTokenTrade", "keys": ["m1"]},
        {"method": "subscribeAccountTrade", "keys": ["wallet1"]},
    ]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(tmp_path: Path) -> None:
    connector = _Connector()
    feed = PumpPortalFeed(_settings(tmp_path, attempts=2), connect=connector)

    with pytest.raises(FeedExhaustedError):
        async for _ in feed.events():
            pass
    assert connector.calls == 3


@pytest.mark.asyncio
async def test_unsubscribe_forgets_keys(tmp_path: Path) -> None:
    feed = PumpPortalFeed(_settings(tmp_path), connect=_Connector())
    await feed.subscribe_token_trades(["m1", "m2"])
    await feed.unsubscribe_token_trades(["m1", "unknown"])
    assert feed.subscribed_tokens == frozenset({"m2"})
    assert await feed.subscribe_token_trades(["m2"]) is False
