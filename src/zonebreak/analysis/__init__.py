"""Zone building, breakout detection and resistance location."""

from .breakouts import (
    Breakout,
    BreakoutDetector,
    BreakoutParams,
    DetectorState,
    detect_breakouts,
    latest_breakout,
    recent_breakouts,
)
from .errors import DataError, DataErrorKind, NoQualifyingConfigurationError
from .resistance import ResistanceLevels, ResistanceZone, locate_resistance
from .zones import DateSlot, PriceZone, ZoneProfile, build_zone_profile

__all__ = [
    "Breakout",
    "BreakoutDetector",
    "BreakoutParams",
    "DataError",
    "DataErrorKind",
    "DateSlot",
    "DetectorState",
    "NoQualifyingConfigurationError",
    "PriceZone",
    "ResistanceLevels",
    "ResistanceZone",
    "ZoneProfile",
    "build_zone_profile",
    "detect_breakouts",
    "latest_breakout",
    "locate_resistance",
    "recent_breakouts",
]
