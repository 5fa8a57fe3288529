"""PumpPortal websocket data stream."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

import websockets
import websockets.exceptions

from pump_trader.config import Settings
from pump_trader.schemas import EventParseError, MarketEvent, parse_event
from pump_trader.utils.logging import get_logger

Connector = Callable[[str], Awaitable[Any]]


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url, ping_interval=30, ping_timeout=10)


class FeedExhaustedError(ConnectionError):
    """Raised when the stream cannot be re-established within the attempt limit."""


class PumpPortalFeed:
    """Market events from the PumpPortal stream.

    Subscriptions are remembered and replayed after every reconnect, so they can be
    requested before the first connection. Iterate ``events()`` to consume.
    """

    def __init__(self, settings: Settings, *, connect: Connector | None = None) -> None:
        self._url = settings.pumpportal_ws_url
        self._reconnect_interval = settings.ws_reconnect_interval
        self._max_attempts = settings.ws_max_reconnect_attempts
        self._connect = connect or _default_connect
        self._ws: Any = None
        self._running = False
        self._new_tokens = False
        self._tokens: set[str] = set()
        self._accounts: set[str] = set()
        self._logger = get_logger("pump_trader.feed.websocket")

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def subscribed_tokens(self) -> frozenset[str]:
        return frozenset(self._tokens)

    @property
    def subscribed_accounts(self) -> frozenset[str]:
        return frozenset(self._accounts)

    async def subscribe_new_tokens(self) -> bool:
        self._new_tokens = True
        return await self._send({"method": "subscribeNewToken"})

    async def unsubscribe_new_tokens(self) -> bool:
        self._new_tokens = False
        return await self._send({"method": "unsubscribeNewToken"})

    async def subscribe_token_trades(self, mints: Iterable[str]) -> bool:
        keys = [m for m in mints if m not in self._tokens]
        if not keys:
            return False
        self._tokens.update(keys)
        self._logger.info("subscribe_token_trades", count=len(keys))
        return await self._send({"method": "subscribeTokenTrade", "keys": keys})

    async def unsubscribe_token_trades(self, mints: Iterable[str]) -> bool:
        keys = [m for m in mints if m in self._tokens]
        if not keys:
            return False
        self._tokens.difference_update(keys)
        return await self._send({"method": "unsubscribeTokenTrade", "keys": keys})

    async def subscribe_account_trades(self, accounts: Iterable[str]) -> bool:
        keys = [a for a in accounts if a and a not in self._accounts]
        if not keys:
            return False
        self._accounts.update(keys)
        self._logger.info("subscribe_account_trades", count=len(keys))
        return await self._send({"method": "subscribeAccountTrade", "keys": keys})

    async def unsubscribe_account_trades(self, accounts: Iterable[str]) -> bool:
        keys = [a for a in accounts if a in self._accounts]
        if not keys:
            return False
        self._accounts.difference_update(keys)
        return await self._send({"method": "unsubscribeAccountTrade", "keys": keys})

    async def events(self) -> AsyncIterator[MarketEvent]:
        """Yield parsed events until ``close()`` or the reconnect limit is hit.

        Raises ``FeedExhaustedError`` after ``ws_max_reconnect_attempts``
        consecutive failed connections.
        """
        self._running = True
        failures = 0
        while self._running:
            try:
                self._ws = await self._connect(self._url)
                failures = 0
                self._logger.info("feed_connected", url=self._url)
                await self._resubscribe()
                async for message in self._ws:
                    if not self._running:
                        break
                    event = self._decode(message)
                    if event is not None:
                        yield event
            except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as exc:
                self._logger.warning("feed_disconnected", error=str(exc))
            finally:
                await self._drop_connection()

            if not self._running:
                break
            failures += 1
            if failures > self._max_attempts:
                self._logger.error("feed_reconnect_exhausted", attempts=self._max_attempts)
                raise FeedExhaustedError(f"reconnect_attempts_exhausted: {self._max_attempts}")
            self._logger.info(
                "feed_reconnecting",
                attempt=failures,
                max_attempts=self._max_attempts,
                delay_seconds=self._reconnect_interval,
            )
            await asyncio.sleep(self._reconnect_interval)

    async def close(self) -> None:
        self._running = False
        await self._drop_connection()
        self._logger.info("feed_closed")

    async def _resubscribe(self) -> None:
        if self._new_tokens:
            await self._send({"method": "subscribeNewToken"})
        if self._tokens:
            await self._send({"method": "subscribeTokenTrade", "keys": sorted(self._tokens)})
        if self._accounts:
            await self._send({"method": "subscribeAccountTrade", "keys": sorted(self._accounts)})

    async def _send(self, message: dict[str, Any]) -> bool:
        """Send now if connected; otherwise the subscription goes out on connect."""
        if self._ws is None:
            self._logger.debug("feed_send_deferred", method=message["method"])
            return False
        try:
            await self._ws.send(json.dumps(message))
        except (websockets.exceptions.WebSocketException, OSError) as exc:
            self._logger.error("feed_send_failed", method=message["method"], error=str(exc))
            return False
        return True

    def _decode(self, message: str | bytes) -> MarketEvent | None:
        try:
            payload = json.loads(message)
        except ValueError as exc:
            self._logger.error("feed_message_invalid_json", error=str(exc))
            return None
        if not isinstance(payload, dict) or "type" not in payload:
            # Subscription acknowledgements and other control messages.
            self._logger.debug("feed_control_message", payload=payload)
            return None
        try:
            return parse_event(payload)
        except EventParseError as exc:
            self._logger.error("feed_event_invalid", error=str(exc))
            return None

    async def _drop_connection(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (websockets.exceptions.WebSocketException, OSError) as exc:
            self._logger.debug("feed_close_failed", error=str(exc))
