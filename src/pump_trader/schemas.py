"""Wire schemas for market events, trade proposals and execution outcomes."""

from __future__ import annotations

import re
from typing import Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_PERCENT_RE = re.compile(r"^\d+(?:\.\d+)?%$")


class EventParseError(ValueError):
    """Raised when a known event type carries an invalid payload."""


class NewTokenEvent(BaseModel):
    """A token was created on the launchpad."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    event_type: ClassVar[str] = "newToken"

    mint: str = Field(min_length=1)
    name: str = ""
    symbol: str = ""
    created_at: float = Field(alias="createdAt", description="epoch ms")
    creator_address: str = Field(default="", alias="creatorAddress")


class TokenTradeEvent(BaseModel):
    """A single buy or sell observed on a token."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    event_type: ClassVar[str] = "tokenTrade"

    mint: str = Field(min_length=1)
    action: Literal["buy", "sell"]
    price: float = Field(ge=0.0)
    amount_sol: float = Field(ge=0.0, alias="amountSol")
    trader: str = ""
    signature: str | None = None
    timestamp: float = Field(description="epoch ms")
    symbol: str | None = None


class UnknownEvent(BaseModel):
    """Any event type the strategies do not recognize."""

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> str:
        return self.type


MarketEvent = Union[NewTokenEvent, TokenTradeEvent, UnknownEvent]

_EVENT_MODELS: dict[str, type[NewTokenEvent] | type[TokenTradeEvent]] = {
    NewTokenEvent.event_type: NewTokenEvent,
    TokenTradeEvent.event_type: TokenTradeEvent,
}


def parse_event(payload: dict[str, Any]) -> MarketEvent:
    """Parse a ``{"type": ..., "data": {...}}`` envelope into a typed event.

    Unrecognized types become ``UnknownEvent``; a recognized type with an invalid
    payload raises ``EventParseError``.
    """
    event_type = payload.get("type")
    if not isinstance(event_type, str):
        raise EventParseError("event_missing_type")
    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}

    model = _EVENT_MODELS.get(event_type)
    if model is None:
        return UnknownEvent(type=event_type, data=data)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise EventParseError(f"invalid_{event_type}: {exc.errors()[0]['msg']}") from exc


def event_to_envelope(event: MarketEvent) -> dict[str, Any]:
    """Inverse of ``parse_event`` for journaling and replay files."""
    if isinstance(event, UnknownEvent):
        return {"type": event.type, "data": dict(event.data)}
    return {"type": event.event_type, "data": event.model_dump(by_alias=True)}


class TradeProposal(BaseModel):
    """A buy or sell the engine wants the execution backend to perform."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    action: Literal["buy", "sell"]
    mint: str = Field(min_length=1)
    amount: float | str
    denominated_in_sol: bool = Field(alias="denominatedInSol")
    slippage: float = Field(ge=0.0)
    priority_fee: float = Field(ge=0.0, alias="priorityFee")
    pool: Literal["pump", "raydium", "auto"] = "pump"
    skip_preflight: bool = Field(default=False, alias="skipPreflight")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float | str) -> float | str:
        if isinstance(v, str):
            if not _PERCENT_RE.match(v):
                raise ValueError("amount_string_must_be_percentage")
            return v
        if v <= 0:
            raise ValueError("amount_must_be_positive")
        return float(v)

    @property
    def sol_amount(self) -> float | None:
        """Absolute SOL amount, or None for percentage-of-holdings sells."""
        if self.denominated_in_sol and not isinstance(self.amount, str):
            return float(self.amount)
        return None

    @property
    def percentage(self) -> float | None:
        """Percentage of holdings for ``"NN%"`` amounts."""
        if isinstance(self.amount, str):
            return float(self.amount.rstrip("%"))
        return None

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the execution API's camelCase keys."""
        return self.model_dump(by_alias=True)


class ExecutionOutcome(BaseModel):
    """Result reported by the execution backend for one proposal."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    signature: str | None = None
    error: str | None = None
    token_amount: float | None = Field(default=None, ge=0.0)
    price: float | None = Field(default=None, ge=0.0)

    @classmethod
    def failed(cls, error: str) -> "ExecutionOutcome":
        return cls(success=False, error=error)
