"""Volume-weighted price zone histograms over cumulative date slots.

The series is cut into ``N = min(200, max(1, floor(bars / 2)))`` date slots.
Slot ``i`` sees every bar from the start of the series through its own last
bar, so later slots carry more history and, because the zone count scales
with the window's share of the global price range, finer zones.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Sequence

from ..data.schemas import PriceBar

MAX_DATE_SLOTS = 200
MIN_SLOT_SIZE = 2
MIN_PRICE_ZONES = 3
ZONE_RANGE_FRACTION = 0.03
FLAT_SERIES_EPSILON = 1e-6


@dataclass(frozen=True, slots=True)
class PriceZone:
    """Half-open price interval ``[min_price, max_price)`` with accumulated volume."""

    min_price: float
    max_price: float
    volume: int
    volume_weight: float

    @property
    def midpoint(self) -> float:
        return (self.min_price + self.max_price) / 2

    def to_payload(self) -> dict[str, float | int]:
        return {
            "minPrice": self.min_price,
            "maxPrice": self.max_price,
            "volume": self.volume,
            "volumeWeight": self.volume_weight,
        }


@dataclass(frozen=True, slots=True)
class DateSlot:
    """One date slot and the zone histogram of its cumulative window."""

    index: int
    start_date: date
    end_date: date
    as_of_index: int
    representative_price: float
    window_min: float
    window_max: float
    total_volume: int
    zones: tuple[PriceZone, ...]

    def zone_index_for(self, price: float) -> int | None:
        """Index of the zone holding ``price``; ``None`` when outside the window."""

        if not self.zones or price < self.window_min or price > self.window_max:
            return None
        window_range = self.window_max - self.window_min
        if window_range <= 0:
            return 0
        return _zone_index(price, self.window_min, window_range / len(self.zones), len(self.zones))

    def zone_for(self, price: float) -> PriceZone | None:
        index = self.zone_index_for(price)
        return None if index is None else self.zones[index]


@dataclass(frozen=True, slots=True)
class ZoneProfile:
    """All date slots built from one ascending series."""

    slots: tuple[DateSlot, ...]
    global_min: float
    global_max: float
    slot_count: int
    slot_size: int

    @property
    def global_range(self) -> float:
        return self.global_max - self.global_min

    @property
    def latest(self) -> DateSlot | None:
        return self.slots[-1] if self.slots else None

    def slot(self, index: int) -> DateSlot | None:
        for candidate in self.slots:
            if candidate.index == index:
                return candidate
        return None

    def __iter__(self) -> Iterator[DateSlot]:
        return iter(self.slots)

    def __len__(self) -> int:
        return len(self.slots)


EMPTY_PROFILE = ZoneProfile(slots=(), global_min=0.0, global_max=0.0, slot_count=0, slot_size=0)


def date_slot_count(total_bars: int) -> int:
    return min(MAX_DATE_SLOTS, max(1, total_bars // MIN_SLOT_SIZE))


def price_zone_count(window_range: float, global_range: float) -> int:
    """Zones for a window: finer when the window spans most of the global range."""

    if global_range <= 0:
        return MIN_PRICE_ZONES
    scaled = (window_range / global_range) / ZONE_RANGE_FRACTION
    # half-up rounding; ``round`` would bank to even
    return max(MIN_PRICE_ZONES, int(math.floor(scaled + 0.5)))


def _zone_index(price: float, window_min: float, height: float, count: int) -> int:
    index = int(math.floor((price - window_min) / height))
    if index >= count:
        return count - 1
    if index < 0:
        return 0
    return index


def build_zone_profile(bars: Sequence[PriceBar]) -> ZoneProfile:
    """Build the cumulative zone histogram for each date slot of an ascending series."""

    if not bars:
        return EMPTY_PROFILE

    closes = [bar.close for bar in bars]
    volumes = [bar.volume for bar in bars]
    global_min = min(closes)
    global_max = max(closes)
    global_range = global_max - global_min

    if global_range == 0:
        return _flat_profile(bars)

    slot_count = date_slot_count(len(bars))
    slot_size = math.ceil(len(bars) / slot_count)
    slots: list[DateSlot] = []

    for slot_index in range(slot_count):
        start = slot_index * slot_size
        end = min((slot_index + 1) * slot_size, len(bars))
        if start >= end:
            continue

        window_closes = closes[:end]
        window_min = min(window_closes)
        window_max = max(window_closes)
        window_range = window_max - window_min
        if window_range == 0:
            continue

        count = price_zone_count(window_range, global_range)
        height = window_range / count
        zone_volumes = [0] * count
        total_volume = 0
        for close, volume in zip(window_closes, volumes):
            zone_volumes[_zone_index(close, window_min, height, count)] += volume
            total_volume += volume

        zones = tuple(
            PriceZone(
                min_price=window_min + idx * height,
                max_price=window_min + (idx + 1) * height,
                volume=zone_volume,
                volume_weight=zone_volume / total_volume if total_volume > 0 else 0.0,
            )
            for idx, zone_volume in enumerate(zone_volumes)
        )
        slots.append(
            DateSlot(
                index=slot_index,
                start_date=bars[start].date,
                end_date=bars[end - 1].date,
                as_of_index=end,
                representative_price=closes[end - 1],
                window_min=window_min,
                window_max=window_max,
                total_volume=total_volume,
                zones=zones,
            )
        )

    return ZoneProfile(
        slots=tuple(slots),
        global_min=global_min,
        global_max=global_max,
        slot_count=slot_count,
        slot_size=slot_size,
    )


def _flat_profile(bars: Sequence[PriceBar]) -> ZoneProfile:
    price = bars[0].close
    total_volume = sum(bar.volume for bar in bars)
    zone = PriceZone(
        min_price=price,
        max_price=price + FLAT_SERIES_EPSILON,
        volume=total_volume,
        volume_weight=1.0 if total_volume > 0 else 0.0,
    )
    slot = DateSlot(
        index=0,
        start_date=bars[0].date,
        end_date=bars[-1].date,
        as_of_index=len(bars),
        representative_price=price,
        window_min=price,
        window_max=price,
        total_volume=total_volume,
        zones=(zone,),
    )
    return ZoneProfile(slots=(slot,), global_min=price, global_max=price, slot_count=1, slot_size=len(bars))


__all__ = [
    "DateSlot",
    "PriceZone",
    "ZoneProfile",
    "build_zone_profile",
    "date_slot_count",
    "price_zone_count",
]
