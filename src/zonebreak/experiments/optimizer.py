"""Grid search over breakout thresholds and moving-average exit periods."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

import pandas as pd

from ..analysis.breakouts import BreakoutParams, detect_breakouts
from ..analysis.errors import DataError, DataErrorKind, NoQualifyingConfigurationError
from ..analysis.zones import ZoneProfile, build_zone_profile
from ..backtest.exits import Trade, simple_moving_average, simulate_sma_exits
from ..data.schemas import PriceBar
from .metrics import TradeMetrics, compute_trade_metrics

MAX_PARAMETER_COMBINATIONS = 10_000
DEFAULT_MIN_SIGNALS = 4.0

# (band start, band end exclusive, step); the last band includes its end.
SMA_PERIOD_BANDS: tuple[tuple[int, int, int], ...] = (
    (3, 14, 1),
    (14, 20, 2),
    (20, 40, 3),
    (40, 50, 4),
    (50, 100, 5),
    (100, 201, 10),
)


@dataclass(slots=True)
class ParameterRange:
    """Inclusive integer range definition with step."""

    minimum: int
    maximum: int
    step: int = 1

    def values(self) -> List[int]:
        if self.step <= 0:
            raise ValueError("Range step must be positive")
        if self.maximum < self.minimum:
            raise ValueError("Range maximum must be >= minimum")
        count = ((self.maximum - self.minimum) // self.step) + 1
        return [self.minimum + idx * self.step for idx in range(count)]


@dataclass(slots=True)
class FloatRange:
    """Inclusive float range definition with step."""

    minimum: float
    maximum: float
    step: float

    def values(self) -> List[float]:
        if self.step <= 0:
            raise ValueError("Range step must be positive")
        if self.maximum < self.minimum:
            raise ValueError("Range maximum must be >= minimum")
        values: List[float] = []
        current = self.minimum
        epsilon = self.step / 10
        while current <= self.maximum + epsilon:
            values.append(round(current, 6))
            current += self.step
        return values


@dataclass(slots=True)
class BreakoutGridSpec:
    breakout_threshold: FloatRange = field(
        default_factory=lambda: FloatRange(0.04, 0.08, 0.02))
    lookback_zones: ParameterRange = field(
        default_factory=lambda: ParameterRange(3, 7, 2))
    reset_threshold: FloatRange = field(
        default_factory=lambda: FloatRange(0.03, 0.05, 0.02))
    timeout_slots: ParameterRange = field(
        default_factory=lambda: ParameterRange(5, 8, 3))
    sma_min_period: int = 3
    sma_max_period: int = 200


def default_breakout_grid_spec() -> BreakoutGridSpec:
    return BreakoutGridSpec()


def sma_period_grid(minimum: int = 3, maximum: int = 200) -> List[int]:
    """Geometrically spaced SMA periods: +1 below 14, +2 below 20, +3 below 40,
    +4 below 50, +5 below 100 and +10 up to 200."""

    if minimum <= 0 or maximum < minimum:
        raise ValueError("SMA period bounds must satisfy 0 < minimum <= maximum")
    periods: List[int] = []
    for start, stop, step in SMA_PERIOD_BANDS:
        periods.extend(p for p in range(start, stop, step) if minimum <= p <= maximum)
    return periods


def generate_breakout_parameter_grid(spec: BreakoutGridSpec) -> List[BreakoutParams]:
    """Enumerate parameter tuples in threshold, lookback, reset, timeout order."""

    thresholds = spec.breakout_threshold.values()
    lookbacks = spec.lookback_zones.values()
    resets = spec.reset_threshold.values()
    timeouts = spec.timeout_slots.values()

    combinations = len(thresholds) * len(lookbacks) * len(resets) * len(timeouts)
    if combinations > MAX_PARAMETER_COMBINATIONS:
        raise ValueError(
            f"Parameter grid too large ({combinations} combinations). Please narrow your ranges."
        )

    parameters: List[BreakoutParams] = []
    for threshold in thresholds:
        for lookback in lookbacks:
            for reset in resets:
                for timeout in timeouts:
                    parameters.append(
                        BreakoutParams(
                            breakout_threshold=float(threshold),
                            lookback_zones=int(lookback),
                            reset_threshold=float(reset),
                            timeout_slots=int(timeout),
                        )
                    )
    if not parameters:
        raise ValueError(
            "No parameter combinations generated; check grid ranges.")
    return parameters


@dataclass(frozen=True, slots=True)
class ParameterEvaluation:
    """Outcome of one ``(breakout params, SMA period)`` pair."""

    params: BreakoutParams
    sma_period: int
    breakout_count: int
    trades: tuple[Trade, ...]
    metrics: TradeMetrics

    @property
    def total_pl(self) -> float:
        return self.metrics.total_pl

    @property
    def total_signals(self) -> float:
        return self.metrics.total_signals

    def label(self) -> str:
        return f"{self.params.label()}|sma={self.sma_period}"


@dataclass(slots=True)
class OptimizationResult:
    """Best configuration found by the grid search."""

    breakout_params: BreakoutParams
    sma_period: int
    total_pl: float
    total_signals: float
    trades: List[Trade]
    metrics: TradeMetrics

    @classmethod
    def from_evaluation(cls, evaluation: ParameterEvaluation) -> "OptimizationResult":
        return cls(
            breakout_params=evaluation.params,
            sma_period=evaluation.sma_period,
            total_pl=evaluation.total_pl,
            total_signals=evaluation.total_signals,
            trades=list(evaluation.trades),
            metrics=evaluation.metrics,
        )

    def to_payload(self) -> Dict[str, object]:
        return {
            "breakoutParams": self.breakout_params.to_payload(),
            "smaPeriod": self.sma_period,
            "totalPL": self.total_pl,
            "totalSignals": self.total_signals,
            "trades": [trade.to_payload() for trade in self.trades],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OptimizationResult":
        trades = [Trade.from_payload(item) for item in payload.get("trades") or []]
        metrics = compute_trade_metrics(trades)
        return cls(
            breakout_params=BreakoutParams.from_payload(payload["breakoutParams"]),
            sma_period=int(payload["smaPeriod"]),
            total_pl=float(payload.get("totalPL", metrics.total_pl)),
            total_signals=float(payload.get("totalSignals", metrics.total_signals)),
            trades=trades,
            metrics=metrics,
        )


@dataclass(slots=True)
class OptimizationOutcome:
    best: OptimizationResult
    evaluations: List[ParameterEvaluation] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        records = []
        for evaluation in self.evaluations:
            records.append(
                {
                    "params": evaluation.params.label(),
                    "breakout_threshold": evaluation.params.breakout_threshold,
                    "lookback_zones": evaluation.params.lookback_zones,
                    "reset_threshold": evaluation.params.reset_threshold,
                    "timeout_slots": evaluation.params.timeout_slots,
                    "sma_period": evaluation.sma_period,
                    "breakouts": evaluation.breakout_count,
                    "total_pl": evaluation.total_pl,
                    "total_signals": evaluation.total_signals,
                    "win_rate": evaluation.metrics.win_rate,
                }
            )
        if not records:
            return pd.DataFrame(columns=["params", "sma_period"])
        return pd.DataFrame.from_records(records)


def evaluate_parameter_grid(
    bars: Sequence[PriceBar],
    parameter_grid: Sequence[BreakoutParams],
    sma_periods: Sequence[int],
    *,
    profile: ZoneProfile | None = None,
) -> List[ParameterEvaluation]:
    """Simulate every grid pair, params outer and periods inner, in the given order.

    Periods longer than the series are skipped since their SMA never forms.
    """

    profile = profile if profile is not None else build_zone_profile(bars)
    closes = [bar.close for bar in bars]
    usable_periods = [period for period in sma_periods if period <= len(bars)]
    sma_cache = {period: simple_moving_average(closes, period) for period in usable_periods}

    evaluations: List[ParameterEvaluation] = []
    for params in parameter_grid:
        breakouts = detect_breakouts(profile, params)
        for period in usable_periods:
            simulation = simulate_sma_exits(
                bars, breakouts, period, sma=sma_cache[period])
            evaluations.append(
                ParameterEvaluation(
                    params=params,
                    sma_period=period,
                    breakout_count=len(breakouts),
                    trades=tuple(simulation.trades),
                    metrics=compute_trade_metrics(simulation.trades),
                )
            )
    return evaluations


def select_best_evaluation(
    evaluations: Sequence[ParameterEvaluation],
    *,
    min_signals: float = DEFAULT_MIN_SIGNALS,
) -> ParameterEvaluation:
    """Highest total P/L among pairs with at least ``min_signals``; first found wins ties."""

    best: ParameterEvaluation | None = None
    best_signals = 0.0
    for evaluation in evaluations:
        best_signals = max(best_signals, evaluation.total_signals)
        if evaluation.total_signals < min_signals:
            continue
        if best is None or evaluation.total_pl > best.total_pl:
            best = evaluation
    if best is None:
        raise NoQualifyingConfigurationError(
            f"No configuration reached {min_signals:g} signals "
            f"({len(evaluations)} evaluated, best had {best_signals:g})",
            evaluated=len(evaluations),
            best_signals=best_signals,
        )
    return best


def optimize_breakout_parameters(
    bars: Sequence[PriceBar],
    *,
    profile: ZoneProfile | None = None,
    parameter_grid: Sequence[BreakoutParams] | None = None,
    grid_spec: BreakoutGridSpec | None = None,
    sma_periods: Sequence[int] | None = None,
    min_signals: float = DEFAULT_MIN_SIGNALS,
) -> OptimizationOutcome:
    """Find the breakout/SMA configuration with the best realized P/L.

    Raises :class:`DataError` when the series is shorter than the smallest
    SMA period and :class:`NoQualifyingConfigurationError` when no pair meets
    ``min_signals``.
    """

    if parameter_grid is not None and grid_spec is not None:
        raise ValueError(
            "Specify either parameter_grid or grid_spec, not both.")

    spec = grid_spec or default_breakout_grid_spec()
    parameters = list(parameter_grid) if parameter_grid is not None else generate_breakout_parameter_grid(spec)
    if not parameters:
        raise ValueError(
            "Parameter grid must contain at least one configuration.")
    periods = list(sma_periods) if sma_periods is not None else sma_period_grid(
        spec.sma_min_period, spec.sma_max_period)
    if not periods:
        raise ValueError("At least one SMA period is required")

    smallest = min(periods)
    if len(bars) < smallest:
        raise DataError(
            DataErrorKind.INSUFFICIENT_BARS,
            f"{len(bars)} bars is fewer than the smallest SMA period ({smallest})",
        )

    evaluations = evaluate_parameter_grid(bars, parameters, periods, profile=profile)
    best = select_best_evaluation(evaluations, min_signals=min_signals)
    return OptimizationOutcome(
        best=OptimizationResult.from_evaluation(best),
        evaluations=evaluations,
    )


__all__ = [
    "BreakoutGridSpec",
    "FloatRange",
    "OptimizationOutcome",
    "OptimizationResult",
    "ParameterEvaluation",
    "ParameterRange",
    "default_breakout_grid_spec",
    "evaluate_parameter_grid",
    "generate_breakout_parameter_grid",
    "optimize_breakout_parameters",
    "select_best_evaluation",
    "sma_period_grid",
]
