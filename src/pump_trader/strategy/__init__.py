"""Strategy package exports."""

from pump_trader.strategy.base import EntryStrategy, Strategy, StrategyConfig
from pump_trader.strategy.exit import PositionManagementConfig, PositionManagementStrategy
from pump_trader.strategy.momentum import MomentumConfig, MomentumStrategy, MomentumTracker
from pump_trader.strategy.pipeline import StrategyPipeline
from pump_trader.strategy.sniper import SniperConfig, SniperStrategy

__all__ = [
    "EntryStrategy",
    "MomentumConfig",
    "MomentumStrategy",
    "MomentumTracker",
    "PositionManagementConfig",
    "PositionManagementStrategy",
    "SniperConfig",
    "SniperStrategy",
    "Strategy",
    "StrategyConfig",
    "StrategyPipeline",
]
