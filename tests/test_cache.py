from __future__ import annotations

from datetime import UTC, datetime

import pytest

from screener.cache import CacheManager, RateLimiter, TtlCache
from screener.domain.models import Bar, IndicatorSnapshot, TickerMeta


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = TtlCache(ttl_seconds=10, capacity=5, clock=clock)
    cache.set("AAPL", 1)

    clock.now = 9.99
    assert cache.get("AAPL") == 1

    clock.now = 10.0
    assert cache.get("AAPL") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted() -> None:
    cache = TtlCache(ttl_seconds=60, capacity=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_purge_expired_and_invalidate() -> None:
    clock = FakeClock()
    cache = TtlCache(ttl_seconds=5, capacity=10, clock=clock)
    cache.set("old", 1)
    clock.now = 4.0
    cache.set("new", 2)
    clock.now = 6.0

    assert cache.purge_expired() == 1
    cache.invalidate("new")
    cache.invalidate("missing")
    assert len(cache) == 0


def test_cache_rejects_invalid_bounds() -> None:
    with pytest.raises(ValueError):
        TtlCache(ttl_seconds=0, capacity=1)
    with pytest.raises(ValueError):
        TtlCache(ttl_seconds=1, capacity=0)


def test_rate_limiter_only_records_allowed_requests() -> None:
    clock = FakeClock()
    limiter = RateLimiter(clock)

    assert limiter.should_rate_limit("AAPL", 1.0) is False
    clock.now = 0.5
    assert limiter.should_rate_limit("AAPL", 1.0) is True
    assert limiter.should_rate_limit("MSFT", 1.0) is False
    clock.now = 1.0
    # The refused request at 0.5 did not move the window.
    assert limiter.should_rate_limit("AAPL", 1.0) is False
    assert len(limiter) == 2


def test_cache_manager_groups_and_stats() -> None:
    clock = FakeClock()
    manager = CacheManager(bars_ttl_seconds=10, tickers_ttl_seconds=100, clock=clock)
    bar = Bar(
        symbol="AAPL",
        timestamp=datetime(2024, 1, 2, tzinfo=UTC),
        open=1.0,
        high=2.0,
        low=0.5,
        close=1.5,
        volume=10.0,
    )
    manager.cache_bars("AAPL", [bar])
    manager.cache_tickers([TickerMeta(symbol="AAPL")])
    manager.should_rate_limit("refresh:AAPL", 1.0)

    stats = manager.stats()
    assert stats.bars_entries == 1
    assert stats.ticker_entries == 1
    assert stats.indicator_entries == 0
    assert stats.rate_limit_entries == 1

    clock.now = 11.0
    assert manager.get_bars("AAPL") is None
    assert manager.get_tickers() == [TickerMeta(symbol="AAPL")]

    manager.clear()
    assert manager.stats().ticker_entries == 0
    assert manager.stats().rate_limit_entries == 0


def test_invalidate_bars_drops_symbol() -> None:
    manager = CacheManager(clock=FakeClock())
    manager.cache_bars("AAPL", [])

    manager.invalidate_bars("AAPL")

    assert manager.get_bars("AAPL") is None


def test_indicator_series_are_cached_per_symbol() -> None:
    clock = FakeClock()
    manager = CacheManager(indicators_ttl_seconds=5, clock=clock)
    snapshot = IndicatorSnapshot(symbol="AAPL", timestamp=datetime(2024, 1, 2, tzinfo=UTC), close=1.5)

    manager.cache_indicators("AAPL", [snapshot])

    assert manager.get_indicators("AAPL") == [snapshot]
    assert manager.get_indicators("MSFT") is None
    clock.now = 5.0
    assert manager.get_indicators("AAPL") is None
