from datetime import timedelta

import pytest

from zonebreak.scan.cache import ResultCache


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_keys_are_symbol_and_lookback() -> None:
    cache = ResultCache(clock=FakeClock())
    cache.put("aapl", 365, "one-year")

    assert cache.get("AAPL", 365) == "one-year"
    assert cache.get("AAPL", 730) is None
    assert ("aapl", 365) in cache
    assert ("AAPL", 730) not in cache


def test_least_recently_used_entry_is_evicted() -> None:
    cache = ResultCache(max_entries=2, clock=FakeClock())
    cache.put("AAPL", 365, 1)
    cache.put("MSFT", 365, 2)
    assert cache.get("AAPL", 365) == 1

    cache.put("NVDA", 365, 3)

    assert cache.get("MSFT", 365) is None
    assert cache.keys() == [("AAPL", 365), ("NVDA", 365)]
    assert cache.stats().evictions == 1


def test_overwrite_does_not_evict() -> None:
    cache = ResultCache(max_entries=2, clock=FakeClock())
    cache.put("AAPL", 365, 1)
    cache.put("MSFT", 365, 2)
    cache.put("AAPL", 365, 10)

    assert len(cache) == 2
    assert cache.get("AAPL", 365) == 10
    assert cache.keys() == [("MSFT", 365), ("AAPL", 365)]


def test_entries_expire_from_storage_time() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl=timedelta(hours=12), clock=clock)
    cache.put("AAPL", 365, "result")

    clock.advance(11 * 3600)
    assert cache.get("AAPL", 365) == "result"
    # reading does not extend the lifetime
    clock.advance(3600)
    assert cache.get("AAPL", 365) is None
    assert len(cache) == 0
    assert cache.stats().expirations == 1


def test_clear_expired_and_stats() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl=timedelta(minutes=10), clock=clock)
    cache.put("AAPL", 365, 1)
    clock.advance(300)
    cache.put("MSFT", 365, 2)
    clock.advance(301)

    assert cache.clear_expired() == 1
    assert cache.keys() == [("MSFT", 365)]

    cache.get("MSFT", 365)
    cache.get("TSLA", 365)
    stats = cache.stats()
    assert stats.size == 1
    assert stats.max_entries == 20
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.hit_rate == pytest.approx(0.5)
    assert stats.to_payload()["hitRate"] == pytest.approx(0.5)

    cache.clear()
    assert len(cache) == 0


def test_invalidate_by_symbol() -> None:
    cache = ResultCache(clock=FakeClock())
    cache.put("AAPL", 365, 1)
    cache.put("AAPL", 730, 2)
    cache.put("MSFT", 365, 3)

    assert cache.invalidate("aapl", 365) == 1
    assert cache.invalidate("AAPL") == 1
    assert cache.keys() == [("MSFT", 365)]


def test_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        ResultCache(max_entries=0)
    with pytest.raises(ValueError):
        ResultCache(ttl=timedelta(0))
