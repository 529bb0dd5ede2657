"""Parameter search and trade statistics for breakout strategies."""

from .metrics import TradeMetrics, compute_trade_metrics
from .optimizer import (
    BreakoutGridSpec,
    FloatRange,
    OptimizationOutcome,
    OptimizationResult,
    ParameterEvaluation,
    ParameterRange,
    default_breakout_grid_spec,
    evaluate_parameter_grid,
    generate_breakout_parameter_grid,
    optimize_breakout_parameters,
    select_best_evaluation,
    sma_period_grid,
)

__all__ = [
    "BreakoutGridSpec",
    "FloatRange",
    "OptimizationOutcome",
    "OptimizationResult",
    "ParameterEvaluation",
    "ParameterRange",
    "TradeMetrics",
    "compute_trade_metrics",
    "default_breakout_grid_spec",
    "evaluate_parameter_grid",
    "generate_breakout_parameter_grid",
    "optimize_breakout_parameters",
    "select_best_evaluation",
    "sma_period_grid",
]
