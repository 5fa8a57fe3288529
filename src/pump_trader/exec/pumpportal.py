"""PumpPortal trade API client."""

from __future__ import annotations

import time
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pump_trader.config import Settings
from pump_trader.exec.base import ExecutionAPIError
from pump_trader.schemas import ExecutionOutcome, TradeProposal
from pump_trader.utils.logging import get_logger


class _ConnectFailure(ExecutionAPIError):
    """The request never reached the API, so resending cannot double-trade."""


class PumpPortalExecutor:
    """Submits proposals to the hosted trade endpoint, which signs and sends them."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._logger = get_logger("pump_trader.exec.pumpportal")

    async def execute(self, proposal: TradeProposal) -> ExecutionOutcome:
        if not self._settings.pumpportal_api_key:
            return ExecutionOutcome.failed("missing_pumpportal_api_key")

        payload = {**proposal.to_payload(), "api-key": self._settings.pumpportal_api_key}
        started = time.perf_counter()
        try:
            response = await self._post(payload)
        except ExecutionAPIError as exc:
            self._logger.error(
                "trade_request_failed",
                mint=proposal.mint,
                action=proposal.action,
                error=str(exc),
            )
            return ExecutionOutcome.failed(str(exc))

        outcome = _outcome_from_response(response)
        self._logger.debug(
            "trade_request_completed",
            mint=proposal.mint,
            action=proposal.action,
            status_code=response.status_code,
            success=outcome.success,
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return outcome

    @retry(
        retry=retry_if_exception_type(_ConnectFailure),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout,
                transport=self._transport,
            ) as client:
                return await client.post(self._settings.pumpportal_trade_url, json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise _ConnectFailure(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ExecutionAPIError(str(exc)) from exc


def _outcome_from_response(response: httpx.Response) -> ExecutionOutcome:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    signature = body.get("signature")
    if response.status_code == 200 and isinstance(signature, str) and signature:
        return ExecutionOutcome(success=True, signature=signature)

    error = body.get("error") or body.get("errors")
    if not error:
        error = f"API returned status {response.status_code}"
    return ExecutionOutcome.failed(str(error))
