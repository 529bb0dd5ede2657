"""Bounded, time-limited LRU cache of scan results keyed by symbol and lookback."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 20
DEFAULT_TTL = timedelta(hours=12)

T = TypeVar("T")
CacheKey = tuple[str, int]


@dataclass(slots=True)
class CacheRecord:
    value: Any
    stored_at: float
    last_accessed_at: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    size: int
    max_entries: int
    ttl_seconds: float
    hits: int
    misses: int
    evictions: int
    expirations: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_payload(self) -> dict[str, float | int]:
        return {
            "size": self.size,
            "maxEntries": self.max_entries,
            "ttlSeconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hitRate": self.hit_rate,
        }


class ResultCache(Generic[T]):
    """Least-recently-used cache with a fixed time-to-live per entry.

    Reads refresh recency but not age: an entry expires ``ttl`` after it was
    stored no matter how often it is read.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: timedelta = DEFAULT_TTL,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if ttl.total_seconds() <= 0:
            raise ValueError("ttl must be positive")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock or time.time
        self._records: "OrderedDict[CacheKey, CacheRecord]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @staticmethod
    def key(symbol: str, lookback_days: int) -> CacheKey:
        return symbol.strip().upper(), int(lookback_days)

    def _is_expired(self, record: CacheRecord, now: float) -> bool:
        return now - record.stored_at >= self.ttl.total_seconds()

    def get(self, symbol: str, lookback_days: int) -> T | None:
        key = self.key(symbol, lookback_days)
        record = self._records.get(key)
        if record is None:
            self._misses += 1
            return None
        now = self._clock()
        if self._is_expired(record, now):
            del self._records[key]
            self._expirations += 1
            self._misses += 1
            return None
        record.last_accessed_at = now
        self._records.move_to_end(key)
        self._hits += 1
        return record.value

    def put(self, symbol: str, lookback_days: int, value: T) -> None:
        key = self.key(symbol, lookback_days)
        now = self._clock()
        if key in self._records:
            self._records.move_to_end(key)
        elif len(self._records) >= self.max_entries:
            evicted, _ = self._records.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted least recently used result {evicted[0]}:{evicted[1]}")
        self._records[key] = CacheRecord(value=value, stored_at=now, last_accessed_at=now)

    def invalidate(self, symbol: str, lookback_days: int | None = None) -> int:
        """Drop one key, or every lookback cached for ``symbol``."""

        symbol = symbol.strip().upper()
        if lookback_days is not None:
            return 1 if self._records.pop(self.key(symbol, lookback_days), None) else 0
        keys = [key for key in self._records if key[0] == symbol]
        for key in keys:
            del self._records[key]
        return len(keys)

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [key for key, record in self._records.items() if self._is_expired(record, now)]
        for key in expired:
            del self._records[key]
        self._expirations += len(expired)
        if expired:
            logger.info(f"Removed {len(expired)} expired cached results")
        return len(expired)

    def clear(self) -> None:
        self._records.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._records),
            max_entries=self.max_entries,
            ttl_seconds=self.ttl.total_seconds(),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
        )

    def keys(self) -> list[CacheKey]:
        """Keys from least to most recently used."""

        return list(self._records)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        record = self._records.get(self.key(str(key[0]), int(key[1])))
        return record is not None and not self._is_expired(record, self._clock())

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(list(self._records))


__all__ = ["CacheRecord", "CacheStats", "DEFAULT_MAX_ENTRIES", "DEFAULT_TTL", "ResultCache"]
