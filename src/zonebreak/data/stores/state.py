"""JSON persistence for scan queue projections and retained scan results."""

from __future__ import annotations

import errno
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

logger = logging.getLogger(__name__)

QUEUE_STATE_FILE = "scan_queue.json"
RESULTS_DIRNAME = "results"
STATE_VERSION = 1
# dropped in this order when a result does not fit the quota
SHEDDABLE_RESULT_FIELDS: tuple[str, ...] = ("zoneLegend",)
_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageQuotaError(OSError):
    """Raised when a write would exceed the configured storage quota."""


class ScanStateStore:
    """Symbol-keyed JSON store under one directory.

    ``scan_queue.json`` holds the slim queue projections; full results live
    in ``results/<SYMBOL>.json`` and are only written for entries the caller
    wants retained. Writes go through a temporary file and an atomic replace.
    """

    def __init__(self, root: Path, *, quota_bytes: int | None = None) -> None:
        self.root = Path(root)
        if quota_bytes is not None and quota_bytes <= 0:
            raise ValueError("quota_bytes must be positive")
        self.quota_bytes = quota_bytes

    @property
    def queue_path(self) -> Path:
        return self.root / QUEUE_STATE_FILE

    @property
    def results_dir(self) -> Path:
        return self.root / RESULTS_DIRNAME

    def result_path(self, symbol: str) -> Path:
        return self.results_dir / f"{symbol.strip().upper()}.json"

    def usage_bytes(self, *, exclude: Path | None = None) -> int:
        total = 0
        candidates = [self.queue_path]
        if self.results_dir.exists():
            candidates.extend(self.results_dir.glob("*.json"))
        for path in candidates:
            if exclude is not None and path == exclude:
                continue
            if path.exists():
                total += path.stat().st_size
        return total

    def _write_json(self, path: Path, payload: Any) -> None:
        text = json.dumps(payload, indent=2, sort_keys=True)
        encoded_size = len(text.encode("utf-8"))
        if self.quota_bytes is not None:
            projected = self.usage_bytes(exclude=path) + encoded_size
            if projected > self.quota_bytes:
                raise StorageQuotaError(
                    errno.ENOSPC,
                    f"Writing {path.name} needs {projected} bytes; quota is {self.quota_bytes}",
                )
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            if exc.errno in _QUOTA_ERRNOS:
                raise StorageQuotaError(exc.errno, f"Disk quota reached writing {path.name}") from exc
            raise

    def _read_json(self, path: Path, label: str) -> tuple[Any, List[str]]:
        warnings: List[str] = []
        if not path.exists():
            return None, warnings
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle), warnings
        except (OSError, ValueError) as exc:
            warnings.append(f"Failed to read {label}: {exc}")
            return None, warnings

    def load_entries(self) -> tuple[List[Dict[str, Any]], List[str]]:
        """Persisted queue projections in their saved order."""

        payload, warnings = self._read_json(self.queue_path, "scan queue state")
        if payload is None:
            return [], warnings
        raw_entries = payload.get("entries") if isinstance(payload, dict) else None
        if not isinstance(raw_entries, list):
            warnings.append("Scan queue state file contained unexpected content; ignoring.")
            return [], warnings

        entries: List[Dict[str, Any]] = []
        for item in raw_entries:
            if isinstance(item, dict) and item.get("symbol"):
                entries.append(dict(item))
            else:
                warnings.append("Skipped malformed scan queue entry.")
        return entries, warnings

    def save_entries(self, entries: Sequence[Mapping[str, Any]]) -> List[str]:
        warnings: List[str] = []
        state = {"version": STATE_VERSION, "entries": [dict(entry) for entry in entries]}
        try:
            self._write_json(self.queue_path, state)
        except OSError as exc:
            message = f"Failed to persist scan queue state: {exc}"
            logger.warning(message)
            warnings.append(message)
        return warnings

    def load_result(self, symbol: str) -> tuple[Dict[str, Any] | None, List[str]]:
        payload, warnings = self._read_json(self.result_path(symbol), f"stored result for {symbol}")
        if payload is None:
            return None, warnings
        if not isinstance(payload, dict):
            warnings.append(f"Stored result for {symbol} is malformed; ignoring.")
            return None, warnings
        return payload, warnings

    def save_result(self, symbol: str, payload: Mapping[str, Any]) -> List[str]:
        """Write one full result, shedding optional fields once if the quota is hit."""

        warnings: List[str] = []
        path = self.result_path(symbol)
        try:
            self._write_json(path, dict(payload))
            return warnings
        except StorageQuotaError as exc:
            first_error: OSError = exc
        except OSError as exc:
            message = f"Failed to persist result for {symbol}: {exc}"
            logger.warning(message)
            warnings.append(message)
            return warnings

        slimmed = {key: value for key, value in payload.items() if key not in SHEDDABLE_RESULT_FIELDS}
        if len(slimmed) == len(payload):
            message = f"Dropped result for {symbol}: {first_error}"
            logger.warning(message)
            warnings.append(message)
            return warnings

        shed = ", ".join(key for key in SHEDDABLE_RESULT_FIELDS if key in payload)
        logger.info(f"Storage quota reached for {symbol}; retrying without {shed}")
        warnings.append(f"Stored result for {symbol} without {shed} (storage quota).")
        try:
            self._write_json(path, slimmed)
        except OSError as exc:
            message = f"Dropped result for {symbol}: {exc}"
            logger.warning(message)
            warnings[-1] = message
        return warnings

    def delete_result(self, symbol: str) -> bool:
        path = self.result_path(symbol)
        if not path.exists():
            return False
        path.unlink()
        return True

    def stored_symbols(self) -> List[str]:
        if not self.results_dir.exists():
            return []
        return sorted(path.stem for path in self.results_dir.glob("*.json"))


__all__ = [
    "QUEUE_STATE_FILE",
    "SHEDDABLE_RESULT_FIELDS",
    "ScanStateStore",
    "StorageQuotaError",
]
