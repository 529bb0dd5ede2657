"""Moving-average slope exits for breakout entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, List, Mapping, Sequence

import pandas as pd

from ..analysis.breakouts import Breakout
from ..data.schemas import PriceBar

OPEN_TRADE_SIGNAL_WEIGHT = 0.5


@dataclass(frozen=True, slots=True)
class Trade:
    """One long round trip. Open trades are valued at the last close of the series."""

    entry_date: date
    entry_price: float
    exit_date: date | None
    exit_price: float | None
    pl_percent: float
    is_open: bool = False

    def to_payload(self) -> dict[str, float | str | bool | None]:
        return {
            "entryDate": self.entry_date.isoformat(),
            "entryPrice": self.entry_price,
            "exitDate": self.exit_date.isoformat() if self.exit_date else None,
            "exitPrice": self.exit_price,
            "plPercent": self.pl_percent,
            "isOpen": self.is_open,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Trade":
        exit_date = payload.get("exitDate")
        exit_price = payload.get("exitPrice")
        return cls(
            entry_date=date.fromisoformat(str(payload["entryDate"])),
            entry_price=float(payload["entryPrice"]),
            exit_date=date.fromisoformat(str(exit_date)) if exit_date else None,
            exit_price=float(exit_price) if exit_price is not None else None,
            pl_percent=float(payload["plPercent"]),
            is_open=bool(payload.get("isOpen", False)),
        )


@dataclass(slots=True)
class ExitSimulation:
    sma_period: int
    trades: List[Trade] = field(default_factory=list)

    @property
    def total_pl(self) -> float:
        return sum(trade.pl_percent for trade in self.trades)

    @property
    def closed_count(self) -> int:
        return sum(1 for trade in self.trades if not trade.is_open)

    @property
    def open_count(self) -> int:
        return sum(1 for trade in self.trades if trade.is_open)

    @property
    def total_signals(self) -> float:
        return self.closed_count + OPEN_TRADE_SIGNAL_WEIGHT * self.open_count


def simple_moving_average(closes: Sequence[float], period: int) -> List[float | None]:
    """SMA per bar; ``None`` for the first ``period - 1`` bars."""

    if period <= 0:
        raise ValueError("period must be positive")
    rolling = pd.Series(closes, dtype="float64").rolling(
        window=period, min_periods=period).mean()
    return [None if pd.isna(value) else float(value) for value in rolling]


def _pl_percent(entry_price: float, exit_price: float) -> float:
    if entry_price == 0:
        return 0.0
    return (exit_price - entry_price) / entry_price * 100


def simulate_sma_exits(
    bars: Sequence[PriceBar],
    entries: Iterable[Breakout | date],
    period: int,
    *,
    sma: Sequence[float | None] | None = None,
) -> ExitSimulation:
    """Enter at each breakout's close, exit when the SMA turns down.

    ``bars`` must be ascending. A breakout while a position is held is
    ignored. On every bar the exit check runs before the entry check. ``sma``
    may be passed in when the same period is simulated repeatedly.
    """

    if sma is None:
        sma = simple_moving_average([bar.close for bar in bars], period)
    elif len(sma) != len(bars):
        raise ValueError("sma must align with bars")

    entry_dates = {
        entry.date if isinstance(entry, Breakout) else entry for entry in entries}
    simulation = ExitSimulation(sma_period=period)

    holding = False
    entry_price = 0.0
    entry_date: date | None = None

    for idx, bar in enumerate(bars):
        if holding and idx > 0:
            current, previous = sma[idx], sma[idx - 1]
            if current is not None and previous is not None and current < previous:
                simulation.trades.append(
                    Trade(
                        entry_date=entry_date,
                        entry_price=entry_price,
                        exit_date=bar.date,
                        exit_price=bar.close,
                        pl_percent=_pl_percent(entry_price, bar.close),
                    )
                )
                holding = False
                entry_date = None

        if not holding and bar.date in entry_dates:
            holding = True
            entry_price = bar.close
            entry_date = bar.date

    if holding and bars:
        last = bars[-1]
        simulation.trades.append(
            Trade(
                entry_date=entry_date,
                entry_price=entry_price,
                exit_date=last.date,
                exit_price=last.close,
                pl_percent=_pl_percent(entry_price, last.close),
                is_open=True,
            )
        )
    return simulation


__all__ = [
    "ExitSimulation",
    "Trade",
    "simple_moving_average",
    "simulate_sma_exits",
]
