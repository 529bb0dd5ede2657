"""Failure kinds for series that cannot be analysed."""

from __future__ import annotations

from enum import Enum


class DataErrorKind(str, Enum):
    """Why a price series produced no analysis result."""

    EMPTY_SERIES = "empty_series"
    INSUFFICIENT_BARS = "insufficient_bars"
    ZERO_PRICE_RANGE = "zero_price_range"
    NO_QUALIFYING_CONFIGURATION = "no_qualifying_configuration"


class DataError(ValueError):
    """Non-fatal, per-symbol analysis failure tagged with a :class:`DataErrorKind`."""

    def __init__(self, kind: DataErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class NoQualifyingConfigurationError(DataError):
    """No grid configuration reached the minimum signal count."""

    def __init__(self, message: str, *, evaluated: int = 0, best_signals: float = 0.0) -> None:
        super().__init__(DataErrorKind.NO_QUALIFYING_CONFIGURATION, message)
        self.evaluated = evaluated
        self.best_signals = best_signals


__all__ = ["DataError", "DataErrorKind", "NoQualifyingConfigurationError"]
