from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from tenacity import wait_none

from pump_trader.config import Settings
from pump_trader.exec.pumpportal import PumpPortalExecutor
from pump_trader.schemas import TradeProposal

_PROPOSAL = TradeProposal(
    action="buy",
    mint="mint1",
    amount=0.1,
    denominated_in_sol=True,
    slippage=1.0,
    priority_fee=0.00001,
)


def _executor(tmp_path: Path, handler, api_key: str = "key-123") -> PumpPortalExecutor:
    settings = Settings(data_dir=tmp_path, pumpportal_api_key=api_key)
    return PumpPortalExecutor(settings, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def _no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(PumpPortalExecutor._post.retry, "wait", wait_none())


@pytest.mark.asyncio
async def test_success_returns_signature(tmp_path: Path) -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"signature": "sig123"})

    outcome = await _executor(tmp_path, handler).execute(_PROPOSAL)

    assert outcome.success
    assert outcome.signature == "sig123"
    assert seen[0]["api-key"] == "key-123"
    assert seen[0]["denominatedInSol"] is True
    assert seen[0]["priorityFee"] == 0.00001
    assert seen[0]["pool"] == "pump"


@pytest.mark.asyncio
async def test_api_error_is_a_failed_outcome(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"errors": "Invalid mint"})

    outcome = await _executor(tmp_path, handler).execute(_PROPOSAL)
    assert not outcome.success
    assert outcome.error == "Invalid mint"


@pytest.mark.asyncio
async def test_ok_without_signature_fails(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    outcome = await _executor(tmp_path, handler).execute(_PROPOSAL)
    assert not outcome.success
    assert outcome.error == "API returned status 200"


@pytest.mark.asyncio
async def test_missing_api_key_short_circuits(tmp_path: Path) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"signature": "x"})

    outcome = await _executor(tmp_path, handler, api_key="").execute(_PROPOSAL)
    assert outcome.error == "missing_pumpportal_api_key"
    assert calls == 0


@pytest.mark.asyncio
async def test_connect_errors_are_retried(tmp_path: Path) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"signature": "sig-after-retry"})

    outcome = await _executor(tmp_path, handler).execute(_PROPOSAL)
    assert outcome.success
    assert calls == 3


@pytest.mark.asyncio
async def test_read_timeout_is_not_resent(tmp_path: Path) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ReadTimeout("slow", request=request)

    outcome = await _executor(tmp_path, handler).execute(_PROPOSAL)
    assert not outcome.success
    assert calls == 1
