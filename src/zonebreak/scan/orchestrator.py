"""Sequential scan queue driven by one cooperative event loop.

Exactly one symbol is fetched and analysed at a time. ``pause()``,
``resume()``, ``clear()`` and queue edits may be called from other tasks on
the same loop; they take effect between symbols, and a symbol already in
flight always runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence

from ..analysis.errors import DataError, DataErrorKind
from ..config import AppSettings
from ..data.providers import PriceHistorySource, RankedSymbolSource, StockApiClient, UpstreamError
from ..data.schemas import PriceBar
from ..data.stores.local import ParquetBarStore
from ..data.stores.state import ScanStateStore
from ..experiments.optimizer import DEFAULT_MIN_SIGNALS
from .cache import ResultCache
from .pipeline import ScanResult, analyze_price_history
from .queue import QueueEntry, QueueStatus

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 1095
DEFAULT_RANKED_LIMIT = 500
NO_DATA_MESSAGE = "no data"
SCAN_CANCELLED_MESSAGE = "scan cancelled"

Analyzer = Callable[[str, Sequence[PriceBar], int], ScanResult]


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PAUSED = "paused"


@dataclass(slots=True)
class ScanRunSummary:
    """What one call to :meth:`ScanOrchestrator.run` did, in processing order."""

    processed: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    cached: List[str] = field(default_factory=list)
    requeued: List[str] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str | None = None
    warnings: List[str] = field(default_factory=list)


def _normalize_symbols(symbols: Iterable[str]) -> List[str]:
    ordered: List[str] = []
    seen: set[str] = set()
    for raw in symbols:
        if not isinstance(raw, str):
            continue
        symbol = raw.strip().upper()
        if symbol and symbol not in seen:
            seen.add(symbol)
            ordered.append(symbol)
    return ordered


class ScanOrchestrator:
    """Owns the scan queue and its entries.

    Failures of a single symbol are attached to its entry and the run moves
    on. A 5xx from the price source aborts the whole run since further
    requests would fail the same way; the remaining queued symbols go back
    to ``pending``.
    """

    def __init__(
        self,
        price_source: PriceHistorySource,
        *,
        ranked_source: Optional[RankedSymbolSource] = None,
        cache: Optional[ResultCache[ScanResult]] = None,
        store: Optional[ScanStateStore] = None,
        analyzer: Optional[Analyzer] = None,
        min_signals: float = DEFAULT_MIN_SIGNALS,
        default_lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        ranked_limit: int = DEFAULT_RANKED_LIMIT,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if default_lookback_days <= 0:
            raise ValueError("default_lookback_days must be positive")
        self.price_source = price_source
        self.ranked_source = ranked_source
        self.cache = cache
        self.store = store
        self.default_lookback_days = default_lookback_days
        self.ranked_limit = ranked_limit
        self._analyzer: Analyzer = analyzer or partial(analyze_price_history, min_signals=min_signals)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._entries: Dict[str, QueueEntry] = {}
        self._queue: Deque[str] = deque()
        self._state = ScanState.IDLE
        self._running = False
        self._in_flight: str | None = None
        self._discard_in_flight = False
        # bound to the loop of the active run; None while idle
        self._resume_event: asyncio.Event | None = None

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        price_source: Optional[PriceHistorySource] = None,
        ranked_source: Optional[RankedSymbolSource] = None,
    ) -> "ScanOrchestrator":
        settings.data_paths.ensure()
        if price_source is None and settings.api_base_url:
            client = StockApiClient.from_settings(settings)
            price_source = client
            ranked_source = ranked_source or client
        elif price_source is None:
            logger.info(f"No price API configured; scanning bars under {settings.data_paths.raw}")
            price_source = ParquetBarStore(settings.data_paths.raw)
        return cls(
            price_source,
            ranked_source=ranked_source,
            cache=ResultCache(settings.cache_max_entries, settings.cache_ttl),
            store=ScanStateStore(settings.data_paths.state, quota_bytes=settings.storage_quota_bytes),
            min_signals=settings.min_signal_count,
            default_lookback_days=settings.default_lookback_days,
            ranked_limit=settings.ranked_symbol_limit,
        )

    # ------------------------------------------------------------------
    # Inspection

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> str | None:
        return self._in_flight

    @property
    def entries(self) -> List[QueueEntry]:
        """Copies of every entry in insertion order."""

        return [replace(entry) for entry in self._entries.values()]

    def entry(self, symbol: str) -> QueueEntry | None:
        found = self._entries.get(symbol.strip().upper())
        return replace(found) if found is not None else None

    def queued_symbols(self) -> List[str]:
        return list(self._queue)

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in QueueStatus}
        for entry in self._entries.values():
            counts[entry.status.value] += 1
        return counts

    # ------------------------------------------------------------------
    # Queue edits

    def _add_entry(self, symbol: str, lookback_days: int) -> QueueEntry:
        entry = QueueEntry(symbol=symbol, lookback_days=lookback_days)
        self._entries[symbol] = entry
        self._schedule(entry)
        return entry

    def _schedule(self, entry: QueueEntry) -> None:
        entry.reset()
        if self._running:
            entry.status = QueueStatus.QUEUED
            self._queue.append(entry.symbol)

    def enqueue(self, symbols: Iterable[str], lookback_days: int | None = None) -> List[str]:
        """Add new symbols as ``pending`` (``queued`` while a run is active).

        Symbols that already have an entry are left alone.
        """

        days = lookback_days or self.default_lookback_days
        added = []
        for symbol in _normalize_symbols(symbols):
            if symbol in self._entries:
                continue
            self._add_entry(symbol, days)
            added.append(symbol)
        if added:
            logger.info(f"Enqueued {len(added)} symbols ({days} day lookback)")
            self._persist()
        return added

    async def seed_from_ranked(self, limit: int | None = None, lookback_days: int | None = None) -> List[str]:
        """Enqueue the top ranked symbols, skipping those already scanned.

        Entries that previously failed are retried; pending or queued ones are
        left where they are. Upstream failures propagate to the caller.
        """

        if self.ranked_source is None:
            raise RuntimeError("No ranked symbol source configured")
        limit = limit or self.ranked_limit
        days = lookback_days or self.default_lookback_days
        symbols = await self.ranked_source.fetch_ranked_symbols(limit)

        added: List[str] = []
        skipped = 0
        for symbol in _normalize_symbols(symbols)[:limit]:
            existing = self._entries.get(symbol)
            if existing is None:
                self._add_entry(symbol, days)
                added.append(symbol)
            elif existing.status is QueueStatus.ERROR and symbol != self._in_flight:
                existing.lookback_days = days
                self._schedule(existing)
                added.append(symbol)
            else:
                skipped += 1
        logger.info(f"Seeded {len(added)} ranked symbols, skipped {skipped} already known")
        if added:
            self._persist()
        return added

    def remove(self, symbol: str) -> bool:
        """Drop one entry. The symbol currently being scanned cannot be removed."""

        symbol = symbol.strip().upper()
        if symbol not in self._entries or symbol == self._in_flight:
            return False
        del self._entries[symbol]
        try:
            self._queue.remove(symbol)
        except ValueError:
            pass
        self._delete_result(symbol)
        self._persist()
        return True

    def rescan(self, symbol: str) -> bool:
        """Send a finished entry back through the queue, bypassing the cache."""

        entry = self._entries.get(symbol.strip().upper())
        if entry is None or not entry.is_terminal:
            return False
        if self.cache is not None:
            self.cache.invalidate(entry.symbol, entry.lookback_days)
        self._schedule(entry)
        self._persist()
        return True

    def mark_important(self, symbol: str, important: bool = True) -> List[str]:
        """Flag an entry whose full result should be persisted."""

        entry = self._entries.get(symbol.strip().upper())
        if entry is None:
            return [f"Unknown symbol {symbol}"]
        entry.important = important
        warnings = self._persist(entry)
        if not important:
            warnings.extend(self._delete_result(entry.symbol))
        return warnings

    def clear(self) -> List[str]:
        """Discard every pending and queued entry.

        A symbol in flight finishes, but its result is thrown away and the
        entry is marked ``error``.
        """

        removed = []
        for symbol, entry in list(self._entries.items()):
            if symbol == self._in_flight:
                continue
            if entry.status in (QueueStatus.PENDING, QueueStatus.QUEUED):
                del self._entries[symbol]
                removed.append(symbol)
        self._queue.clear()
        if self._in_flight is not None:
            self._discard_in_flight = True
        # wake a paused run so it can notice the empty queue
        self._wake()
        logger.info(f"Cleared {len(removed)} queued symbols")
        self._persist()
        return removed

    # ------------------------------------------------------------------
    # Run control

    def pause(self) -> bool:
        if self._state is not ScanState.SCANNING:
            return False
        if self._resume_event is not None:
            self._resume_event.clear()
        self._set_state(ScanState.PAUSED)
        return True

    def resume(self) -> bool:
        if self._state is not ScanState.PAUSED:
            return False
        self._set_state(ScanState.SCANNING)
        self._wake()
        return True

    def _wake(self) -> None:
        if self._resume_event is not None:
            self._resume_event.set()

    def _set_state(self, state: ScanState) -> None:
        if state is not self._state:
            logger.info(f"Scan state {self._state.value} -> {state.value}")
            self._state = state

    async def run(self) -> ScanRunSummary:
        """Scan every pending entry in insertion order until the queue drains.

        Raises :class:`RuntimeError` if another run is active. Per-symbol
        problems are reported on the entries and in the returned summary.
        """

        if self._running:
            raise RuntimeError("A scan run is already in progress")
        self._running = True
        summary = ScanRunSummary()
        for entry in self._entries.values():
            if entry.status is QueueStatus.PENDING:
                entry.status = QueueStatus.QUEUED
                self._queue.append(entry.symbol)
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._set_state(ScanState.SCANNING)

        try:
            while self._queue:
                if self._state is ScanState.PAUSED:
                    summary.warnings.extend(self._persist())
                    await self._resume_event.wait()
                    if self._state is ScanState.PAUSED:
                        self._resume_event.clear()
                    continue

                symbol = self._queue[0]
                entry = self._entries[symbol]
                self._in_flight = symbol
                self._discard_in_flight = False
                try:
                    abort = await self._scan_entry(entry, summary)
                finally:
                    self._in_flight = None
                if self._queue and self._queue[0] == symbol:
                    self._queue.popleft()
                summary.processed.append(symbol)
                summary.warnings.extend(self._persist(entry))
                if abort:
                    logger.error(
                        f"Aborting scan after {symbol}: {entry.error}; "
                        f"{len(self._queue)} symbols returned to pending"
                    )
                    break
                # let pause/clear requests from other tasks land between symbols
                await asyncio.sleep(0)
        finally:
            while self._queue:
                symbol = self._queue.popleft()
                summary.requeued.append(symbol)
            for entry in self._entries.values():
                if entry.status in (QueueStatus.QUEUED, QueueStatus.LOADING):
                    entry.status = QueueStatus.PENDING
            self._running = False
            self._discard_in_flight = False
            self._resume_event = None
            self._set_state(ScanState.IDLE)
            summary.warnings.extend(self._persist())
        return summary

    async def _scan_entry(self, entry: QueueEntry, summary: ScanRunSummary) -> bool:
        """Scan one entry. Returns True when the run has to abort."""

        entry.status = QueueStatus.LOADING
        entry.error = None
        entry.error_kind = None

        cached = self.cache.get(entry.symbol, entry.lookback_days) if self.cache is not None else None
        if cached is not None:
            summary.cached.append(entry.symbol)
            self._complete(entry, cached, summary)
            return False

        try:
            bars = await self.price_source.fetch_price_history(entry.symbol, entry.lookback_days)
        except UpstreamError as exc:
            if self._discard_in_flight:
                self._cancel(entry, summary)
                return False
            if exc.is_server_error:
                self._fail(entry, f"upstream unavailable: {exc}", "upstream", summary)
                summary.aborted = True
                summary.abort_reason = entry.error
                return True
            self._fail(entry, str(exc), "upstream", summary)
            return False
        except Exception as exc:
            logger.exception(f"Unexpected failure fetching {entry.symbol}")
            if self._discard_in_flight:
                self._cancel(entry, summary)
            else:
                self._fail(entry, f"fetch failed: {exc}", "unexpected", summary)
            return False

        if self._discard_in_flight:
            self._cancel(entry, summary)
            return False
        if not bars:
            self._fail(entry, NO_DATA_MESSAGE, DataErrorKind.EMPTY_SERIES.value, summary)
            return False

        try:
            result = self._analyzer(entry.symbol, bars, entry.lookback_days)
        except DataError as exc:
            self._fail(entry, str(exc), exc.kind.value, summary)
            return False
        except Exception as exc:
            logger.exception(f"Analysis failed for {entry.symbol}")
            self._fail(entry, f"analysis failed: {exc}", "unexpected", summary)
            return False

        if self.cache is not None:
            self.cache.put(entry.symbol, entry.lookback_days, result)
        self._complete(entry, result, summary)
        return False

    def _complete(self, entry: QueueEntry, result: ScanResult, summary: ScanRunSummary) -> None:
        entry.status = QueueStatus.COMPLETED
        entry.result = result
        entry.last_scan_at = self._clock()
        summary.completed.append(entry.symbol)
        logger.info(f"Scanned {entry.symbol}: {len(result.breakouts)} breakouts")

    def _fail(self, entry: QueueEntry, message: str, kind: str, summary: ScanRunSummary) -> None:
        entry.status = QueueStatus.ERROR
        entry.error = message
        entry.error_kind = kind
        entry.result = None
        entry.last_scan_at = self._clock()
        summary.failed.append(entry.symbol)
        logger.warning(f"Scan of {entry.symbol} failed: {message}")

    def _cancel(self, entry: QueueEntry, summary: ScanRunSummary) -> None:
        entry.status = QueueStatus.ERROR
        entry.error = SCAN_CANCELLED_MESSAGE
        entry.error_kind = "cancelled"
        entry.result = None
        summary.cancelled.append(entry.symbol)
        logger.info(f"Discarded in-flight scan of {entry.symbol}")

    # ------------------------------------------------------------------
    # Persistence

    def _persist(self, entry: QueueEntry | None = None) -> List[str]:
        if self.store is None:
            return []
        warnings = self.store.save_entries([item.projection() for item in self._entries.values()])
        if (
            entry is not None
            and entry.important
            and entry.status is QueueStatus.COMPLETED
            and entry.result is not None
        ):
            warnings.extend(self.store.save_result(entry.symbol, entry.result.to_payload()))
        return warnings

    def _delete_result(self, symbol: str) -> List[str]:
        if self.store is None:
            return []
        try:
            self.store.delete_result(symbol)
        except OSError as exc:
            logger.warning(f"Failed to delete stored result for {symbol}: {exc}")
            return [f"Could not delete stored result for {symbol}: {exc}"]
        return []

    def restore(self) -> List[str]:
        """Load persisted entries; interrupted ones come back as ``pending``."""

        if self._running:
            raise RuntimeError("Cannot restore state while a scan run is active")
        if self.store is None:
            return []
        projections, warnings = self.store.load_entries()
        restored = 0
        for projection in projections:
            try:
                entry = QueueEntry.from_projection(
                    projection, default_lookback_days=self.default_lookback_days)
            except (TypeError, ValueError) as exc:
                warnings.append(f"Skipped persisted entry: {exc}")
                continue
            if entry.symbol in self._entries:
                continue
            if entry.important and entry.status is QueueStatus.COMPLETED:
                payload, load_warnings = self.store.load_result(entry.symbol)
                warnings.extend(load_warnings)
                if payload is not None:
                    try:
                        entry.result = ScanResult.from_payload(payload)
                    except (KeyError, TypeError, ValueError) as exc:
                        warnings.append(f"Stored result for {entry.symbol} is unreadable: {exc}")
            self._entries[entry.symbol] = entry
            restored += 1
        logger.info(f"Restored {restored} scan entries")
        return warnings


__all__ = [
    "NO_DATA_MESSAGE",
    "SCAN_CANCELLED_MESSAGE",
    "ScanOrchestrator",
    "ScanRunSummary",
    "ScanState",
]
