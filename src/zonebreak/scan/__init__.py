"""Scan queue, result cache and per-symbol analysis pipeline."""

from .cache import CacheStats, ResultCache
from .orchestrator import ScanOrchestrator, ScanRunSummary, ScanState
from .pipeline import ScanResult, analyze_price_history, build_zone_legend
from .queue import QueueEntry, QueueStatus

__all__ = [
    "CacheStats",
    "QueueEntry",
    "QueueStatus",
    "ResultCache",
    "ScanOrchestrator",
    "ScanResult",
    "ScanRunSummary",
    "ScanState",
    "analyze_price_history",
    "build_zone_legend",
]
