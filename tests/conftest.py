from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from pump_trader.config import Settings
from pump_trader.portfolio.ledger import PositionLedger
from pump_trader.risk.rules import RiskGate
from pump_trader.wallet.base import WalletQueryError

# 2026-03-02 12:00:00 UTC
NOON_MS = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc).timestamp() * 1000


class FakeClock:
    def __init__(self, now_ms: float = NOON_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, *, seconds: float = 0.0, minutes: float = 0.0, hours: float = 0.0) -> None:
        self.now_ms += (seconds + minutes * 60 + hours * 3600) * 1000


class FakeWallet:
    def __init__(self, balance: float = 1.0, tokens: dict[str, float] | None = None) -> None:
        self.balance = balance
        self.tokens = dict(tokens or {})
        self.fail = False

    async def get_balance(self) -> float:
        if self.fail:
            raise WalletQueryError("rpc down")
        return self.balance

    async def has_token(self, mint: str) -> bool:
        if self.fail:
            raise WalletQueryError("rpc down")
        return self.tokens.get(mint, 0.0) > 0

    async def get_token_balance(self, mint: str) -> float | None:
        if self.fail:
            raise WalletQueryError("rpc down")
        return self.tokens.get(mint)

    async def get_all_tokens(self) -> dict[str, float]:
        if self.fail:
            raise WalletQueryError("rpc down")
        return {mint: qty for mint, qty in self.tokens.items() if qty > 0}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_dir=tmp_path / "data")


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def ledger(settings: Settings) -> PositionLedger:
    return PositionLedger(settings.data_dir)


@pytest.fixture
def risk_gate(settings: Settings, wallet: FakeWallet, ledger: PositionLedger, clock: FakeClock) -> RiskGate:
    return RiskGate(settings, wallet, ledger, clock=clock)
