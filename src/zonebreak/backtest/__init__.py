"""Trade simulation for breakout entries."""

from .exits import ExitSimulation, Trade, simple_moving_average, simulate_sma_exits

__all__ = [
    "ExitSimulation",
    "Trade",
    "simple_moving_average",
    "simulate_sma_exits",
]
