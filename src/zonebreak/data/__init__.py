"""Data layer exports for the zone-break project."""

from .providers import (
    PriceHistorySource,
    RankedSymbolSource,
    StockApiClient,
    UpstreamError,
    normalize_ranked_symbols,
)
from .schemas import PriceBar, PriceBarFrame, normalize_price_bars, parse_price_payload
from .stores import ParquetBarStore, ScanStateStore, StorageQuotaError

__all__ = [
    "ParquetBarStore",
    "PriceBar",
    "PriceBarFrame",
    "PriceHistorySource",
    "RankedSymbolSource",
    "ScanStateStore",
    "StockApiClient",
    "StorageQuotaError",
    "UpstreamError",
    "normalize_price_bars",
    "normalize_ranked_symbols",
    "parse_price_payload",
]
