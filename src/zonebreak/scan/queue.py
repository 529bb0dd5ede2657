"""Scan queue entries and their lifecycle states."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:  # pragma: no cover - typing convenience
    from .pipeline import ScanResult


class QueueStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    LOADING = "loading"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({QueueStatus.COMPLETED, QueueStatus.ERROR})


@dataclass(slots=True)
class QueueEntry:
    """One symbol awaiting (or done with) a scan."""

    symbol: str
    lookback_days: int
    status: QueueStatus = QueueStatus.PENDING
    result: "ScanResult | None" = None
    error: str | None = None
    error_kind: str | None = None
    last_scan_at: datetime | None = None
    important: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def reset(self) -> None:
        self.status = QueueStatus.PENDING
        self.error = None
        self.error_kind = None

    def projection(self) -> dict[str, Any]:
        """Slim persisted form; the full result is stored separately."""

        return {
            "symbol": self.symbol,
            "status": self.status.value,
            "lastScanAt": self.last_scan_at.isoformat() if self.last_scan_at else None,
            "lookbackDays": self.lookback_days,
            "important": self.important,
            "error": self.error,
        }

    @classmethod
    def from_projection(cls, payload: Mapping[str, Any], *, default_lookback_days: int) -> "QueueEntry":
        symbol = str(payload.get("symbol") or "").strip().upper()
        if not symbol:
            raise ValueError("Persisted queue entry is missing a symbol")
        try:
            status = QueueStatus(payload.get("status") or QueueStatus.PENDING.value)
        except ValueError:
            status = QueueStatus.PENDING
        # an interrupted run never finished these
        if status in {QueueStatus.QUEUED, QueueStatus.LOADING}:
            status = QueueStatus.PENDING

        last_scan_at = None
        raw_timestamp = payload.get("lastScanAt")
        if raw_timestamp:
            try:
                last_scan_at = datetime.fromisoformat(str(raw_timestamp))
            except ValueError:
                last_scan_at = None

        lookback = payload.get("lookbackDays")
        return cls(
            symbol=symbol,
            lookback_days=int(lookback) if lookback else default_lookback_days,
            status=status,
            error=payload.get("error") if status is QueueStatus.ERROR else None,
            last_scan_at=last_scan_at,
            important=bool(payload.get("important", False)),
        )


__all__ = ["QueueEntry", "QueueStatus", "TERMINAL_STATUSES"]
