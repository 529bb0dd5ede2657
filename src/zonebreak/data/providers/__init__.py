"""Provider implementations for price history and ranked symbol lists."""

from .base import PriceHistorySource, RankedSymbolSource, UpstreamError, normalize_ranked_symbols
from .http import StockApiClient

__all__ = [
    "PriceHistorySource",
    "RankedSymbolSource",
    "StockApiClient",
    "UpstreamError",
    "normalize_ranked_symbols",
]
