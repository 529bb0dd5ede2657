"""Local persistence helpers for daily price history."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from ..schemas import PriceBar, PriceBarFrame


class ParquetBarStore:
    """Read/write helper that persists daily bars as one Parquet file per symbol.

    Also usable as a price history source for offline scans.
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, symbol: str) -> Path:
        return self.root / f"{symbol.strip().upper()}_1d.parquet"

    def save(self, symbol: str, bars: Iterable[PriceBar]) -> Path:
        frame = PriceBarFrame.from_bars(bars)
        path = self.path_for(symbol)
        frame.to_parquet(path, engine="pyarrow", index=False)
        return path

    def load(self, symbol: str) -> list[PriceBar]:
        path = self.path_for(symbol)
        if not path.exists():
            raise FileNotFoundError(path)
        df = pd.read_parquet(path, engine="pyarrow")
        return PriceBarFrame.to_bars(df)

    def list_symbols(self) -> List[str]:
        """Return symbols with stored bars."""

        symbols: set[str] = set()
        for path in self.root.glob("*_1d.parquet"):
            symbol = path.stem[: -len("_1d")]
            if symbol:
                symbols.add(symbol.upper())
        return sorted(symbols)

    async def fetch_price_history(self, symbol: str, days: int) -> list[PriceBar]:
        """Return stored bars within ``days`` calendar days of the latest bar."""

        try:
            bars = self.load(symbol)
        except FileNotFoundError:
            return []
        if not bars or days <= 0:
            return bars
        cutoff = bars[-1].date - timedelta(days=days)
        return [bar for bar in bars if bar.date > cutoff]
