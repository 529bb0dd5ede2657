"""Support and resistance zones around a breakout."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .breakouts import Breakout
from .zones import DateSlot, PriceZone, ZoneProfile

RESISTANCE_WEIGHT_MARGIN = 0.05


@dataclass(frozen=True, slots=True)
class ResistanceZone:
    min_price: float
    max_price: float
    volume_weight: float
    distance_percent: float

    def to_payload(self) -> dict[str, float]:
        return {
            "minPrice": self.min_price,
            "maxPrice": self.max_price,
            "volumeWeight": self.volume_weight,
            "distancePercent": self.distance_percent,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "ResistanceZone | None":
        if not payload:
            return None
        return cls(
            min_price=float(payload["minPrice"]),
            max_price=float(payload["maxPrice"]),
            volume_weight=float(payload["volumeWeight"]),
            distance_percent=float(payload["distancePercent"]),
        )


@dataclass(frozen=True, slots=True)
class ResistanceLevels:
    up: ResistanceZone | None = None
    down: ResistanceZone | None = None

    def to_payload(self) -> dict[str, dict[str, float] | None]:
        return {
            "upResist": self.up.to_payload() if self.up else None,
            "downResist": self.down.to_payload() if self.down else None,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ResistanceLevels":
        return cls(
            up=ResistanceZone.from_payload(payload.get("upResist")),
            down=ResistanceZone.from_payload(payload.get("downResist")),
        )


def _heaviest(zones: Iterable[PriceZone], floor: float) -> PriceZone | None:
    best: PriceZone | None = None
    for zone in zones:
        if zone.volume_weight <= floor:
            continue
        if best is None or zone.volume_weight > best.volume_weight:
            best = zone
    return best


def locate_resistance(
    breakout: Breakout,
    slot: DateSlot | ZoneProfile | None,
    *,
    margin: float = RESISTANCE_WEIGHT_MARGIN,
) -> ResistanceLevels:
    """Heaviest zone above and below the breakout price outweighing it by ``margin``.

    ``slot`` may be the breakout's own slot or the whole profile, in which case
    the slot is looked up by the breakout's slot index. Missing sides are ``None``.
    """

    if isinstance(slot, ZoneProfile):
        slot = slot.slot(breakout.slot_index)
    if slot is None or not slot.zones:
        return ResistanceLevels()

    price = breakout.price
    floor = breakout.current_weight + margin
    above = _heaviest((zone for zone in slot.zones if zone.midpoint > price), floor)
    below = _heaviest((zone for zone in slot.zones if zone.midpoint < price), floor)

    up = None
    if above is not None:
        up = ResistanceZone(
            min_price=above.min_price,
            max_price=above.max_price,
            volume_weight=above.volume_weight,
            distance_percent=(above.min_price - price) / price * 100 if price else 0.0,
        )
    down = None
    if below is not None:
        down = ResistanceZone(
            min_price=below.min_price,
            max_price=below.max_price,
            volume_weight=below.volume_weight,
            distance_percent=(price - below.max_price) / price * 100 if price else 0.0,
        )
    return ResistanceLevels(up=up, down=down)


__all__ = ["ResistanceLevels", "ResistanceZone", "locate_resistance"]
