"""Wallet query capability consumed by the risk gate and the engine."""

from __future__ import annotations

from typing import Protocol


class WalletQueryError(Exception):
    """Raised when a balance or holdings query cannot be answered."""


class WalletQuery(Protocol):
    """Read-only wallet queries."""

    async def get_balance(self) -> float:
        """SOL balance."""

    async def has_token(self, mint: str) -> bool:
        """Whether the wallet holds a nonzero balance of ``mint``."""

    async def get_token_balance(self, mint: str) -> float | None:
        """Token units held, ``None`` when unknown."""

    async def get_all_tokens(self) -> dict[str, float]:
        """All nonzero token balances keyed by mint."""
