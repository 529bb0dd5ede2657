import asyncio
from datetime import date, timedelta

import pytest

from zonebreak.data.schemas import PriceBar
from zonebreak.data.stores import ParquetBarStore


def _bars(count: int, start: date = date(2024, 1, 1)) -> list[PriceBar]:
    return [
        PriceBar(
            date=start + timedelta(days=idx),
            open=100 + idx,
            high=101 + idx,
            low=99 + idx,
            close=100.5 + idx,
            volume=1_000 * (idx + 1),
        )
        for idx in range(count)
    ]


def test_save_and_load_roundtrip(tmp_path):
    store = ParquetBarStore(tmp_path / "bars")
    bars = _bars(5)

    path = store.save("aapl", reversed(bars))

    assert path.name == "AAPL_1d.parquet"
    loaded = store.load("AAPL")
    assert loaded == bars
    assert store.list_symbols() == ["AAPL"]


def test_load_missing_symbol_raises(tmp_path):
    store = ParquetBarStore(tmp_path)
    with pytest.raises(FileNotFoundError):
        store.load("MSFT")


def test_store_serves_price_history_window(tmp_path):
    store = ParquetBarStore(tmp_path)
    store.save("MSFT", _bars(30))

    recent = asyncio.run(store.fetch_price_history("msft", 10))
    missing = asyncio.run(store.fetch_price_history("NVDA", 10))

    assert len(recent) == 10
    assert recent[-1].date == date(2024, 1, 30)
    assert recent[0].date == date(2024, 1, 21)
    assert missing == []
