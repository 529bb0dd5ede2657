"""Per-symbol analysis: zones, breakouts, resistance and the exit optimizer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Sequence

from ..analysis.breakouts import Breakout, BreakoutParams, detect_breakouts, latest_breakout
from ..analysis.errors import DataError, DataErrorKind
from ..analysis.resistance import ResistanceLevels, locate_resistance
from ..analysis.zones import DateSlot, build_zone_profile
from ..data.schemas import PriceBar, normalize_price_bars
from ..experiments.optimizer import (
    DEFAULT_MIN_SIGNALS,
    BreakoutGridSpec,
    OptimizationResult,
    default_breakout_grid_spec,
    generate_breakout_parameter_grid,
    optimize_breakout_parameters,
    sma_period_grid,
)

logger = logging.getLogger(__name__)


def build_zone_legend(slot: DateSlot | None, price: float | None = None) -> List[Dict[str, Any]]:
    """Zones of ``slot`` from the top down, flagging the one holding ``price``."""

    if slot is None:
        return []
    price = slot.representative_price if price is None else price
    current = slot.zone_index_for(price)
    legend = []
    for index in range(len(slot.zones) - 1, -1, -1):
        zone = slot.zones[index]
        legend.append(
            {
                "minPrice": zone.min_price,
                "maxPrice": zone.max_price,
                "volumeWeight": zone.volume_weight,
                "isCurrent": index == current,
            }
        )
    return legend


@dataclass(slots=True)
class ScanResult:
    """Everything computed for one ``(symbol, lookback)`` scan."""

    symbol: str
    lookback_days: int
    bar_count: int
    start_date: date
    end_date: date
    last_price: float
    breakouts: List[Breakout]
    resistance: ResistanceLevels | None
    optimization: OptimizationResult
    zone_legend: List[Dict[str, Any]] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def latest_breakout(self) -> Breakout | None:
        return latest_breakout(self.breakouts)

    def to_payload(self) -> Dict[str, Any]:
        latest = self.latest_breakout
        return {
            "symbol": self.symbol,
            "lookbackDays": self.lookback_days,
            "barCount": self.bar_count,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "lastPrice": self.last_price,
            "breakouts": [breakout.to_payload() for breakout in self.breakouts],
            "latestBreakout": latest.to_payload() if latest else None,
            "resistance": self.resistance.to_payload() if self.resistance else None,
            "optimization": self.optimization.to_payload(),
            "zoneLegend": list(self.zone_legend),
            "analyzedAt": self.analyzed_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ScanResult":
        resistance = payload.get("resistance")
        analyzed_at = payload.get("analyzedAt")
        return cls(
            symbol=str(payload["symbol"]).upper(),
            lookback_days=int(payload["lookbackDays"]),
            bar_count=int(payload["barCount"]),
            start_date=date.fromisoformat(str(payload["startDate"])),
            end_date=date.fromisoformat(str(payload["endDate"])),
            last_price=float(payload["lastPrice"]),
            breakouts=[Breakout.from_payload(item) for item in payload.get("breakouts") or []],
            resistance=ResistanceLevels.from_payload(resistance) if resistance else None,
            optimization=OptimizationResult.from_payload(payload["optimization"]),
            zone_legend=list(payload.get("zoneLegend") or []),
            analyzed_at=(
                datetime.fromisoformat(str(analyzed_at)) if analyzed_at
                else datetime.now(timezone.utc)
            ),
        )


def analyze_price_history(
    symbol: str,
    bars: Sequence[PriceBar],
    lookback_days: int,
    *,
    detector_params: BreakoutParams | None = None,
    grid_spec: BreakoutGridSpec | None = None,
    sma_periods: Sequence[int] | None = None,
    min_signals: float = DEFAULT_MIN_SIGNALS,
) -> ScanResult:
    """Run the full breakout analysis for one symbol.

    Raises :class:`DataError` for empty, short or flat series and
    :class:`NoQualifyingConfigurationError` when the optimizer finds nothing
    with enough signals. Both are per-symbol failures.
    """

    symbol = symbol.strip().upper()
    ordered = normalize_price_bars(bars)
    if not ordered:
        raise DataError(DataErrorKind.EMPTY_SERIES, f"No price data for {symbol}")

    spec = grid_spec or default_breakout_grid_spec()
    periods = list(sma_periods) if sma_periods is not None else sma_period_grid(
        spec.sma_min_period, spec.sma_max_period)
    if not periods:
        raise ValueError("At least one SMA period is required")
    minimum_bars = min(periods) + 1
    if len(ordered) < minimum_bars:
        raise DataError(
            DataErrorKind.INSUFFICIENT_BARS,
            f"{symbol} has {len(ordered)} bars; at least {minimum_bars} are required",
        )

    closes = [bar.close for bar in ordered]
    if max(closes) == min(closes):
        raise DataError(
            DataErrorKind.ZERO_PRICE_RANGE,
            f"{symbol} closed at {closes[0]:g} on every bar",
        )

    profile = build_zone_profile(ordered)
    breakouts = detect_breakouts(profile, detector_params or BreakoutParams())
    latest = latest_breakout(breakouts)
    resistance = locate_resistance(latest, profile) if latest else None

    outcome = optimize_breakout_parameters(
        ordered,
        profile=profile,
        parameter_grid=generate_breakout_parameter_grid(spec),
        sma_periods=periods,
        min_signals=min_signals,
    )
    logger.debug(
        f"{symbol}: {len(breakouts)} breakouts, best {outcome.best.breakout_params.label()}"
        f" sma={outcome.best.sma_period} pl={outcome.best.total_pl:.2f}"
    )

    return ScanResult(
        symbol=symbol,
        lookback_days=lookback_days,
        bar_count=len(ordered),
        start_date=ordered[0].date,
        end_date=ordered[-1].date,
        last_price=ordered[-1].close,
        breakouts=breakouts,
        resistance=resistance,
        optimization=outcome.best,
        zone_legend=build_zone_legend(profile.latest),
    )


__all__ = ["ScanResult", "analyze_price_history", "build_zone_legend"]
