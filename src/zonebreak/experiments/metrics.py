"""Reusable helpers for summarising simulated trades."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..backtest.exits import OPEN_TRADE_SIGNAL_WEIGHT, Trade


@dataclass(slots=True)
class TradeMetrics:
    """Container for standard trade statistics."""

    total_pl: float
    win_rate: float
    closed_trades: int
    open_trades: int
    total_signals: float
    market_change: float


def compute_trade_metrics(trades: Sequence[Trade]) -> TradeMetrics:
    """Compute the canonical set of metrics for one simulated trade list.

    ``win_rate`` is measured over closed trades only; ``market_change`` is
    the buy-and-hold move from the first entry to the last exit.
    """

    closed = [trade for trade in trades if not trade.is_open]
    open_count = len(trades) - len(closed)
    winners = sum(1 for trade in closed if trade.pl_percent > 0)
    win_rate = winners / len(closed) * 100 if closed else 0.0

    market_change = 0.0
    if trades:
        start_price = trades[0].entry_price
        end_price = trades[-1].exit_price
        if start_price and end_price is not None:
            market_change = (end_price - start_price) / start_price * 100

    return TradeMetrics(
        total_pl=float(sum(trade.pl_percent for trade in trades)),
        win_rate=float(win_rate),
        closed_trades=len(closed),
        open_trades=open_count,
        total_signals=len(closed) + OPEN_TRADE_SIGNAL_WEIGHT * open_count,
        market_change=float(market_change),
    )


__all__ = [
    "TradeMetrics",
    "compute_trade_metrics",
]
