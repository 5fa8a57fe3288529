"""Ordered dispatch of market events to strategies."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from pump_trader.schemas import MarketEvent
from pump_trader.strategy.base import Strategy
from pump_trader.types import StrategyMatch
from pump_trader.utils.logging import get_logger


class StrategyPipeline:
    """Runs strategies in registration order; the first proposal wins.

    A strategy that raises abstains for that event and the next one is tried.
    """

    def __init__(self) -> None:
        self._strategies: dict[str, Strategy] = {}
        self._logger = get_logger("pump_trader.strategy.pipeline")

    def register_strategy(self, strategy: Strategy) -> None:
        if strategy.name in self._strategies:
            raise ValueError(f"strategy_already_registered: {strategy.name}")
        self._strategies[strategy.name] = strategy
        self._logger.info(
            "strategy_registered",
            strategy=strategy.name,
            description=strategy.description,
            enabled=strategy.is_enabled,
        )

    def get_strategies(self) -> list[Strategy]:
        return list(self._strategies.values())

    def get_enabled_strategies(self) -> list[Strategy]:
        return [s for s in self._strategies.values() if s.is_enabled]

    def get_strategy(self, name: str) -> Strategy | None:
        return self._strategies.get(name)

    async def process_event(self, event: MarketEvent) -> StrategyMatch | None:
        """Return the first accepting strategy and its proposal, if any."""
        for strategy in self.get_enabled_strategies():
            try:
                if not strategy.should_trade(event):
                    continue
                proposal = await strategy.get_trade(event)
            except Exception as exc:  # noqa: BLE001 - a faulty strategy only abstains.
                self._logger.exception(
                    "strategy_failed",
                    strategy=strategy.name,
                    event_type=event.event_type,
                    error=str(exc),
                )
                continue

            if proposal is not None:
                self._logger.debug(
                    "strategy_proposal",
                    strategy=strategy.name,
                    proposal=proposal.to_payload(),
                )
                return StrategyMatch(strategy=strategy, proposal=proposal)
        return None

    def configure_strategy(self, name: str, **params: Any) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            self._logger.warning("strategy_not_found", strategy=name, operation="configure")
            return False
        try:
            strategy.configure(**params)
        except ValidationError as exc:
            self._logger.error("strategy_configure_failed", strategy=name, error=str(exc))
            return False
        return True

    def set_strategy_enabled(self, name: str, enabled: bool) -> bool:
        strategy = self._strategies.get(name)
        if strategy is None:
            self._logger.warning(
                "strategy_not_found",
                strategy=name,
                operation="enable" if enabled else "disable",
            )
            return False
        strategy.is_enabled = enabled
        self._logger.info("strategy_toggled", strategy=name, enabled=enabled)
        return True
