"""Volume-vacuum breakout detection over date slots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterable, List, Mapping, Sequence

from .zones import DateSlot, ZoneProfile


@dataclass(frozen=True, slots=True)
class BreakoutParams:
    """Tunable thresholds of the breakout state machine."""

    breakout_threshold: float = 0.06
    lookback_zones: int = 5
    reset_threshold: float = 0.03
    timeout_slots: int = 5

    def __post_init__(self) -> None:
        if not 0 < self.breakout_threshold <= 1:
            raise ValueError("breakout_threshold must be within (0, 1]")
        if self.lookback_zones <= 0:
            raise ValueError("lookback_zones must be positive")
        if not 0 <= self.reset_threshold <= 1:
            raise ValueError("reset_threshold must be within [0, 1]")
        if self.timeout_slots <= 0:
            raise ValueError("timeout_slots must be positive")

    def label(self) -> str:
        return (
            f"threshold={self.breakout_threshold:.3f}|lookback={self.lookback_zones}|"
            f"reset={self.reset_threshold:.3f}|timeout={self.timeout_slots}"
        )

    def to_payload(self) -> dict[str, float | int]:
        return {
            "breakoutThreshold": self.breakout_threshold,
            "lookbackZones": self.lookback_zones,
            "resetThreshold": self.reset_threshold,
            "timeoutSlots": self.timeout_slots,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BreakoutParams":
        return cls(
            breakout_threshold=float(payload["breakoutThreshold"]),
            lookback_zones=int(payload["lookbackZones"]),
            reset_threshold=float(payload["resetThreshold"]),
            timeout_slots=int(payload["timeoutSlots"]),
        )


class DetectorState(str, Enum):
    NEUTRAL = "neutral"
    IN_BREAKOUT = "in_breakout"


@dataclass(frozen=True, slots=True)
class Breakout:
    """Price rising into a zone holding far less volume than a zone just below it."""

    slot_index: int
    date: date
    price: float
    current_weight: float
    reference_weight: float
    weight_diff: float

    def to_payload(self) -> dict[str, float | int | str]:
        return {
            "slotIndex": self.slot_index,
            "date": self.date.isoformat(),
            "price": self.price,
            "currentWeight": self.current_weight,
            "referenceWeight": self.reference_weight,
            "weightDiff": self.weight_diff,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Breakout":
        return cls(
            slot_index=int(payload["slotIndex"]),
            date=date.fromisoformat(str(payload["date"])),
            price=float(payload["price"]),
            current_weight=float(payload["currentWeight"]),
            reference_weight=float(payload["referenceWeight"]),
            weight_diff=float(payload["weightDiff"]),
        )


class BreakoutDetector:
    """Two-state machine (neutral / in breakout) fed one slot at a time.

    At most one breakout is open at once. An open breakout ends when
    ``timeout_slots`` slots have passed since it fired, or when the weight of
    the current zone has re-accumulated by ``reset_threshold`` above the
    weight recorded at the breakout.
    """

    def __init__(self, params: BreakoutParams | None = None) -> None:
        self.params = params or BreakoutParams()
        self.state = DetectorState.NEUTRAL
        self.breakout_slot_index = -1
        self.breakout_zone_weight = 0.0
        self._previous_price: float | None = None

    def _enter_neutral(self) -> None:
        self.state = DetectorState.NEUTRAL
        self.breakout_slot_index = -1
        self.breakout_zone_weight = 0.0

    def step(self, slot: DateSlot) -> Breakout | None:
        previous_price = self._previous_price
        self._previous_price = slot.representative_price
        price = slot.representative_price

        zone_index = slot.zone_index_for(price)
        if zone_index is None:
            return None
        current_weight = slot.zones[zone_index].volume_weight

        if (
            self.state is DetectorState.IN_BREAKOUT
            and slot.index - self.breakout_slot_index >= self.params.timeout_slots
        ):
            self._enter_neutral()

        if (
            self.state is DetectorState.IN_BREAKOUT
            and current_weight >= self.breakout_zone_weight + self.params.reset_threshold
        ):
            self._enter_neutral()

        if self.state is not DetectorState.NEUTRAL or zone_index == 0:
            return None
        if previous_price is not None and price <= previous_price:
            return None

        depth = min(self.params.lookback_zones, zone_index)
        reference_weight = 0.0
        for offset in range(1, depth + 1):
            reference_weight = max(
                reference_weight, slot.zones[zone_index - offset].volume_weight)

        weight_diff = reference_weight - current_weight
        if current_weight >= reference_weight or weight_diff < self.params.breakout_threshold:
            return None

        self.state = DetectorState.IN_BREAKOUT
        self.breakout_slot_index = slot.index
        self.breakout_zone_weight = current_weight
        return Breakout(
            slot_index=slot.index,
            date=slot.end_date,
            price=price,
            current_weight=current_weight,
            reference_weight=reference_weight,
            weight_diff=weight_diff,
        )

    def run(self, slots: Iterable[DateSlot]) -> List[Breakout]:
        breakouts: List[Breakout] = []
        for slot in slots:
            breakout = self.step(slot)
            if breakout is not None:
                breakouts.append(breakout)
        return breakouts


def detect_breakouts(
    profile: ZoneProfile | Sequence[DateSlot],
    params: BreakoutParams | None = None,
) -> List[Breakout]:
    """Run a fresh detector over every slot, oldest first."""

    return BreakoutDetector(params).run(profile)


def latest_breakout(breakouts: Sequence[Breakout]) -> Breakout | None:
    return breakouts[-1] if breakouts else None


def recent_breakouts(
    breakouts: Iterable[Breakout],
    days: int = 10,
    *,
    today: date | None = None,
) -> List[Breakout]:
    """Breakouts dated within ``days`` calendar days of ``today``."""

    cutoff = (today or date.today()) - timedelta(days=days)
    return [breakout for breakout in breakouts if breakout.date >= cutoff]


__all__ = [
    "Breakout",
    "BreakoutDetector",
    "BreakoutParams",
    "DetectorState",
    "detect_breakouts",
    "latest_breakout",
    "recent_breakouts",
]
