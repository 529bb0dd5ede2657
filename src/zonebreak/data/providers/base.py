"""Collaborator interfaces for price history and ranked symbol sources."""

from __future__ import annotations

from typing import Any, Protocol

from ..schemas import PriceBar


class UpstreamError(RuntimeError):
    """Failure reported by (or while reaching) an upstream data service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_server_error(self) -> bool:
        """True for 5xx responses, which indicate systemic unavailability."""

        return self.status_code is not None and self.status_code >= 500


class PriceHistorySource(Protocol):
    """Interface for anything able to produce a symbol's daily bars."""

    async def fetch_price_history(self, symbol: str, days: int) -> list[PriceBar]:
        """Return bars for ``symbol`` covering ``days`` calendar days, in any order.

        An empty list means "no data"; upstream failures raise :class:`UpstreamError`.
        """

        raise NotImplementedError


class RankedSymbolSource(Protocol):
    """Interface for sources of ranked (e.g. by market cap) ticker lists."""

    async def fetch_ranked_symbols(self, limit: int) -> list[str]:
        """Return up to ``limit`` uppercase ticker symbols in rank order."""

        raise NotImplementedError


def normalize_ranked_symbols(payload: Any) -> list[str]:
    """Normalize ``[str]``, ``[{"symbol": str}]`` or ``{"symbols": [...]}`` to uppercase tickers."""

    if isinstance(payload, dict):
        payload = payload.get("symbols")
    if not isinstance(payload, (list, tuple)):
        return []

    symbols: list[str] = []
    seen: set[str] = set()
    for item in payload:
        if isinstance(item, str):
            raw = item
        elif isinstance(item, dict):
            raw = item.get("symbol")
        else:
            raw = None
        if not raw or not isinstance(raw, str):
            continue
        normalized = raw.strip().upper()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        symbols.append(normalized)
    return symbols


__all__ = [
    "PriceHistorySource",
    "RankedSymbolSource",
    "UpstreamError",
    "normalize_ranked_symbols",
]
