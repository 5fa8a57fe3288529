"""Solana JSON-RPC wallet queries."""

from __future__ import annotations

import itertools
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pump_trader.config import Settings
from pump_trader.utils.logging import get_logger
from pump_trader.wallet.base import WalletQueryError

LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


class _RpcTransportError(WalletQueryError):
    """Network-level failure; safe to retry since every call is a read."""


class RpcWallet:
    """Balance and holdings of ``settings.wallet_public_key`` read over JSON-RPC."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._ids = itertools.count(1)
        self._logger = get_logger("pump_trader.wallet.rpc")

    @property
    def owner(self) -> str:
        if not self._settings.wallet_public_key:
            raise WalletQueryError("missing_wallet_public_key")
        return self._settings.wallet_public_key

    async def get_balance(self) -> float:
        result = await self._call("getBalance", [self.owner])
        lamports = result.get("value") if isinstance(result, dict) else result
        if not isinstance(lamports, int):
            raise WalletQueryError(f"unexpected_balance_result: {lamports!r}")
        return lamports / LAMPORTS_PER_SOL

    async def has_token(self, mint: str) -> bool:
        balance = await self.get_token_balance(mint)
        return balance is not None and balance > 0

    async def get_token_balance(self, mint: str) -> float | None:
        accounts = await self._token_accounts({"mint": mint})
        if not accounts:
            return None
        return sum(amount for _, amount in accounts)

    async def get_all_tokens(self) -> dict[str, float]:
        accounts = await self._token_accounts({"programId": TOKEN_PROGRAM_ID})
        holdings: dict[str, float] = {}
        for mint, amount in accounts:
            if amount > 0:
                holdings[mint] = holdings.get(mint, 0.0) + amount
        return holdings

    async def _token_accounts(self, account_filter: dict[str, str]) -> list[tuple[str, float]]:
        result = await self._call(
            "getTokenAccountsByOwner",
            [self.owner, account_filter, {"encoding": "jsonParsed"}],
        )
        rows = result.get("value", []) if isinstance(result, dict) else []
        parsed: list[tuple[str, float]] = []
        for row in rows:
            try:
                info = row["account"]["data"]["parsed"]["info"]
                token_amount = info["tokenAmount"]
                ui_amount = token_amount.get("uiAmount")
                if ui_amount is None:
                    ui_amount = int(token_amount["amount"]) / 10 ** int(token_amount["decimals"])
                parsed.append((str(info["mint"]), float(ui_amount)))
            except (KeyError, TypeError, ValueError) as exc:
                raise WalletQueryError(f"malformed_token_account: {exc}") from exc
        return parsed

    @retry(
        retry=retry_if_exception_type(_RpcTransportError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _call(self, method: str, params: list[Any]) -> Any:
        request = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(self._settings.rpc_endpoint, json=request)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, httpx.TimeoutException) as exc:
            self._logger.warning("rpc_request_failed", method=method, error=str(exc))
            raise _RpcTransportError(str(exc)) from exc
        except ValueError as exc:
            raise WalletQueryError(f"rpc_invalid_json: {exc}") from exc

        if not isinstance(body, dict):
            raise WalletQueryError("rpc_invalid_response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise WalletQueryError(f"rpc_error: {message}")
        return body.get("result")
