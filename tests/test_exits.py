from datetime import date, timedelta

import pytest

from zonebreak.analysis.breakouts import Breakout
from zonebreak.backtest.exits import Trade, simple_moving_average, simulate_sma_exits
from zonebreak.data.schemas import PriceBar
from zonebreak.experiments.metrics import compute_trade_metrics

START = date(2024, 2, 1)


def _bars(closes):
    return [
        PriceBar(date=START + timedelta(days=idx), open=close, high=close, low=close, close=close, volume=1_000)
        for idx, close in enumerate(closes)
    ]


def test_simple_moving_average_pads_with_none() -> None:
    assert simple_moving_average([1.0, 2.0, 3.0, 4.0], 2) == [None, 1.5, 2.5, 3.5]
    assert simple_moving_average([1.0, 2.0], 3) == [None, None]
    with pytest.raises(ValueError):
        simple_moving_average([1.0], 0)


def test_exit_on_first_downturn_of_sma() -> None:
    bars = _bars([100, 104, 108, 112, 115, 110])

    simulation = simulate_sma_exits(bars, [START], 2)

    assert len(simulation.trades) == 1
    trade = simulation.trades[0]
    assert trade.entry_date == START
    assert trade.entry_price == 100
    assert trade.exit_date == START + timedelta(days=5)
    assert trade.exit_price == 110
    assert trade.pl_percent == pytest.approx(10.0)
    assert not trade.is_open
    assert simulation.total_signals == 1.0


def test_open_trade_valued_at_last_close() -> None:
    bars = _bars([50, 51, 52, 55])
    breakout = Breakout(0, START + timedelta(days=1), 51.0, 0.1, 0.4, 0.3)

    simulation = simulate_sma_exits(bars, [breakout], 2)

    assert simulation.trades == [
        Trade(
            entry_date=START + timedelta(days=1),
            entry_price=51,
            exit_date=START + timedelta(days=3),
            exit_price=55,
            pl_percent=pytest.approx((55 - 51) / 51 * 100),
            is_open=True,
        )
    ]
    assert simulation.open_count == 1
    assert simulation.total_signals == 0.5


def test_entries_while_holding_are_ignored() -> None:
    bars = _bars([100, 101, 102, 103, 104, 103])
    entries = [START, START + timedelta(days=2), START + timedelta(days=3)]

    simulation = simulate_sma_exits(bars, entries, 2)

    assert [trade.entry_date for trade in simulation.trades] == [START]


def test_exit_runs_before_entry_on_the_same_bar() -> None:
    bars = _bars([100, 104, 108, 112, 115, 110])
    simulation = simulate_sma_exits(bars, [START, START + timedelta(days=5)], 2)

    assert len(simulation.trades) == 2
    closed, reopened = simulation.trades
    assert closed.exit_date == START + timedelta(days=5)
    assert reopened.entry_date == START + timedelta(days=5)
    assert reopened.is_open
    assert reopened.pl_percent == 0.0
    assert simulation.total_signals == 1.5
    assert simulation.total_pl == pytest.approx(10.0)


def test_no_entries_no_trades() -> None:
    simulation = simulate_sma_exits(_bars([1, 2, 3]), [], 2)
    assert simulation.trades == []
    assert simulation.total_pl == 0


def test_precomputed_sma_must_align() -> None:
    with pytest.raises(ValueError):
        simulate_sma_exits(_bars([1, 2, 3]), [], 2, sma=[None, 1.5])


def test_trade_metrics_summary() -> None:
    trades = [
        Trade(START, 100.0, START + timedelta(days=3), 110.0, 10.0),
        Trade(START + timedelta(days=5), 110.0, START + timedelta(days=7), 104.5, -5.0),
        Trade(START + timedelta(days=9), 104.5, START + timedelta(days=10), 120.0, 14.83, is_open=True),
    ]

    metrics = compute_trade_metrics(trades)

    assert metrics.total_pl == pytest.approx(19.83)
    assert metrics.win_rate == pytest.approx(50.0)
    assert metrics.closed_trades == 2
    assert metrics.open_trades == 1
    assert metrics.total_signals == 2.5
    assert metrics.market_change == pytest.approx(20.0)
    assert Trade.from_payload(trades[2].to_payload()) == trades[2]


def test_trade_metrics_empty() -> None:
    metrics = compute_trade_metrics([])
    assert metrics.total_pl == 0.0
    assert metrics.total_signals == 0
    assert metrics.win_rate == 0.0
