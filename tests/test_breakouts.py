from datetime import date, timedelta

import pytest

from zonebreak.analysis.breakouts import (
    Breakout,
    BreakoutDetector,
    BreakoutParams,
    DetectorState,
    detect_breakouts,
    latest_breakout,
    recent_breakouts,
)
from zonebreak.analysis.zones import DateSlot, PriceZone, build_zone_profile
from zonebreak.data.schemas import PriceBar

START = date(2024, 3, 1)
VACUUM = (0.6, 0.3, 0.1)


def _slot(index: int, price: float, weights=VACUUM) -> DateSlot:
    """Slot over [100, 100 + 10 * len(weights)] with one 10-wide zone per weight."""

    zones = tuple(
        PriceZone(
            min_price=100.0 + 10 * idx,
            max_price=110.0 + 10 * idx,
            volume=int(weight * 1_000),
            volume_weight=weight,
        )
        for idx, weight in enumerate(weights)
    )
    return DateSlot(
        index=index,
        start_date=START + timedelta(days=index),
        end_date=START + timedelta(days=index),
        as_of_index=index + 1,
        representative_price=price,
        window_min=100.0,
        window_max=100.0 + 10 * len(weights),
        total_volume=1_000,
        zones=zones,
    )


def _bars(closes, volumes):
    return [
        PriceBar(date=START + timedelta(days=idx), open=close, high=close, low=close, close=close, volume=volume)
        for idx, (close, volume) in enumerate(zip(closes, volumes))
    ]


def test_fires_when_rising_into_low_volume_zone() -> None:
    breakouts = detect_breakouts([_slot(0, 105.0), _slot(1, 115.0)])

    assert len(breakouts) == 1
    breakout = breakouts[0]
    assert breakout.slot_index == 1
    assert breakout.date == START + timedelta(days=1)
    assert breakout.price == 115.0
    assert breakout.current_weight == pytest.approx(0.3)
    assert breakout.reference_weight == pytest.approx(0.6)
    assert breakout.weight_diff == pytest.approx(0.3)


def test_lowest_zone_never_fires() -> None:
    assert detect_breakouts([_slot(0, 101.0), _slot(1, 105.0)]) == []


def test_falling_price_is_ignored() -> None:
    heavy_top = (0.1, 0.1, 0.8)
    assert detect_breakouts([_slot(0, 125.0, heavy_top), _slot(1, 115.0)]) == []


def test_first_slot_has_no_direction_filter() -> None:
    breakouts = detect_breakouts([_slot(0, 125.0)])
    assert [breakout.slot_index for breakout in breakouts] == [0]


def test_weight_gap_must_reach_threshold() -> None:
    assert detect_breakouts([_slot(0, 105.0), _slot(1, 115.0, (0.35, 0.30, 0.35))]) == []
    assert detect_breakouts([_slot(0, 105.0), _slot(1, 115.0, (0.35, 0.35, 0.30))]) == []


def test_lookback_limits_reference_zones() -> None:
    weights = (0.8, 0.12, 0.08)
    slots = [_slot(0, 105.0, weights), _slot(1, 125.0, weights)]

    assert detect_breakouts(slots, BreakoutParams(lookback_zones=1)) == []
    wide = detect_breakouts(slots, BreakoutParams(lookback_zones=2))
    assert len(wide) == 1
    assert wide[0].reference_weight == pytest.approx(0.8)


def test_timeout_returns_detector_to_neutral() -> None:
    params = BreakoutParams(timeout_slots=5, reset_threshold=1.0)
    slots = [_slot(0, 105.0)] + [_slot(idx, 110.0 + idx) for idx in range(1, 8)]

    breakouts = detect_breakouts(slots, params)

    assert [breakout.slot_index for breakout in breakouts] == [1, 6]


def test_reset_when_zone_reaccumulates_volume() -> None:
    slots = [
        _slot(0, 105.0),
        _slot(1, 111.0),
        _slot(2, 111.0, (0.5, 0.34, 0.16)),
        _slot(3, 112.0),
    ]

    with_reset = detect_breakouts(slots, BreakoutParams(reset_threshold=0.03))
    without_reset = detect_breakouts(slots, BreakoutParams(reset_threshold=0.5))

    assert [breakout.slot_index for breakout in with_reset] == [1, 3]
    assert [breakout.slot_index for breakout in without_reset] == [1]


def test_price_outside_window_is_skipped_but_tracked() -> None:
    detector = BreakoutDetector()
    assert detector.step(_slot(0, 95.0)) is None
    assert detector.step(_slot(1, 90.0)) is None
    # 90 was remembered, so 115 counts as rising
    assert detector.step(_slot(2, 115.0)) is not None
    assert detector.state is DetectorState.IN_BREAKOUT
    assert detector.breakout_slot_index == 2


def test_detects_breakout_from_built_profile() -> None:
    bars = _bars([110.0, 100.0, 102.0, 103.0], [10, 10, 5_000, 10])

    breakouts = detect_breakouts(build_zone_profile(bars))

    assert len(breakouts) == 1
    assert breakouts[0].slot_index == 1
    assert breakouts[0].price == 103.0
    assert breakouts[0].date == bars[-1].date


def test_steady_rise_produces_at_most_one_breakout() -> None:
    closes = [100.0 + idx for idx in range(120)]
    bars = _bars(closes, [1_000] * len(closes))
    assert len(detect_breakouts(build_zone_profile(bars))) <= 1


def test_detection_is_deterministic() -> None:
    closes = [100 + ((idx * 11) % 17) + idx * 0.3 for idx in range(80)]
    volumes = [1_000 + ((idx * 37) % 900) for idx in range(80)]
    profile = build_zone_profile(_bars(closes, volumes))
    assert detect_breakouts(profile) == detect_breakouts(profile)


def test_params_validation_and_payload() -> None:
    with pytest.raises(ValueError):
        BreakoutParams(breakout_threshold=0)
    with pytest.raises(ValueError):
        BreakoutParams(lookback_zones=0)
    with pytest.raises(ValueError):
        BreakoutParams(timeout_slots=0)

    params = BreakoutParams(0.08, 3, 0.05, 8)
    assert params.to_payload() == {
        "breakoutThreshold": 0.08,
        "lookbackZones": 3,
        "resetThreshold": 0.05,
        "timeoutSlots": 8,
    }
    assert BreakoutParams.from_payload(params.to_payload()) == params


def test_latest_and_recent_helpers() -> None:
    def breakout(day: int) -> Breakout:
        return Breakout(day, date(2024, 6, day), 10.0, 0.1, 0.3, 0.2)

    breakouts = [breakout(1), breakout(12), breakout(20)]

    assert latest_breakout(breakouts).date == date(2024, 6, 20)
    assert latest_breakout([]) is None
    recent = recent_breakouts(breakouts, days=10, today=date(2024, 6, 22))
    assert [item.date.day for item in recent] == [12, 20]
    assert Breakout.from_payload(breakouts[0].to_payload()) == breakouts[0]
