"""Pump Trader - event-driven strategy, risk and position engine for pump.fun tokens."""

__version__ = "0.1.0"
