"""HTTP client for the stock analysis API (price history and ranked symbols)."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Optional

import requests

from ...config import AppSettings
from ..schemas import PriceBar, parse_price_payload
from .base import PriceHistorySource, RankedSymbolSource, UpstreamError, normalize_ranked_symbols

logger = logging.getLogger(__name__)


class StockApiClient(PriceHistorySource, RankedSymbolSource):
    """Thin wrapper around the ``/analyze`` and ``/top-market-cap`` endpoints.

    The blocking ``requests`` calls are exposed as coroutines through
    :func:`asyncio.to_thread` so a scan loop can await one fetch at a time.
    """

    def __init__(
            self,
            base_url: str,
            *,
            session: Optional[requests.Session] = None,
            rate_limit_per_minute: int = 0,
            timeout: int = 30,
    ) -> None:
        if not base_url:
            raise ValueError("StockApiClient requires a base_url.")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.rate_limit_per_minute = rate_limit_per_minute
        self.timeout = timeout
        self._call_timestamps: deque[float] = deque()

    @classmethod
    def from_settings(cls, settings: AppSettings, *, session: Optional[requests.Session] = None) -> "StockApiClient":
        return cls(
            settings.require_api_base_url(),
            session=session,
            rate_limit_per_minute=settings.api_rate_limit_per_minute,
            timeout=settings.api_timeout_seconds,
        )

    def close(self) -> None:
        self.session.close()

    def _throttle(self) -> None:
        if self.rate_limit_per_minute <= 0:
            return
        now = time.monotonic()
        window = 60.0
        while self._call_timestamps and now - self._call_timestamps[0] > window:
            self._call_timestamps.popleft()
        if len(self._call_timestamps) >= self.rate_limit_per_minute:
            sleep_time = window - (now - self._call_timestamps[0]) + 0.01
            if sleep_time > 0:
                time.sleep(sleep_time)
            self._throttle()
        else:
            self._call_timestamps.append(now)

    def _request(self, path: str, params: dict[str, Any]) -> Any | None:
        """GET ``path`` and return the decoded JSON body, or ``None`` on 404."""

        self._throttle()
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc

        status = getattr(response, "status_code", 200)
        if status == 404:
            logger.info(f"No data at {url} for {params}")
            return None
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise UpstreamError(
                f"{url} responded with HTTP {status}", status_code=status) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"{url} returned a malformed body", status_code=status) from exc

    def price_history(self, symbol: str, days: int) -> list[PriceBar]:
        """Blocking fetch of a symbol's bars. Order follows the upstream payload."""

        if days <= 0:
            raise ValueError("days must be positive")
        payload = self._request(
            "/analyze", {"symbol": symbol.strip().upper(), "days": int(days)})
        if not payload:
            return []
        return parse_price_payload(payload)

    def ranked_symbols(self, limit: int) -> list[str]:
        """Blocking fetch of the ranked symbol list, normalized to uppercase tickers."""

        if limit <= 0:
            raise ValueError("limit must be positive")
        payload = self._request("/top-market-cap", {"limit": int(limit)})
        return normalize_ranked_symbols(payload)[:limit]

    async def fetch_price_history(self, symbol: str, days: int) -> list[PriceBar]:
        return await asyncio.to_thread(self.price_history, symbol, days)

    async def fetch_ranked_symbols(self, limit: int) -> list[str]:
        return await asyncio.to_thread(self.ranked_symbols, limit)


__all__ = ["StockApiClient"]
