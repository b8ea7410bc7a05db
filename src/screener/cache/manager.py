"""Caches for bars, indicator series and the ticker universe."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from screener.domain.models import Bar, IndicatorSnapshot, TickerMeta

from .ttl_cache import Clock, RateLimiter, TtlCache

logger = logging.getLogger(__name__)

TICKER_UNIVERSE_KEY = "universe"


@dataclass(frozen=True)
class CacheStats:
    bars_entries: int
    indicator_entries: int
    ticker_entries: int
    rate_limit_entries: int


class CacheManager:
    def __init__(
        self,
        bars_ttl_seconds: float = 300,
        indicators_ttl_seconds: float = 300,
        tickers_ttl_seconds: float = 3600,
        bars_capacity: int = 1000,
        indicators_capacity: int = 1000,
        tickers_capacity: int = 10,
        clock: Clock = time.monotonic,
    ) -> None:
        self._bars = TtlCache(bars_ttl_seconds, bars_capacity, clock)
        self._indicators = TtlCache(indicators_ttl_seconds, indicators_capacity, clock)
        self._tickers = TtlCache(tickers_ttl_seconds, tickers_capacity, clock)
        self._rate_limiter = RateLimiter(clock)

    def get_bars(self, symbol: str) -> list[Bar] | None:
        bars = self._bars.get(symbol)
        if bars is not None:
            logger.debug("bars cache hit for %s", symbol)
        return bars

    def cache_bars(self, symbol: str, bars: list[Bar]) -> None:
        self._bars.set(symbol, list(bars))

    def invalidate_bars(self, symbol: str) -> None:
        self._bars.invalidate(symbol)

    def get_indicators(self, symbol: str) -> list[IndicatorSnapshot] | None:
        snapshots = self._indicators.get(symbol)
        if snapshots is not None:
            logger.debug("indicator cache hit for %s", symbol)
        return snapshots

    def cache_indicators(self, symbol: str, snapshots: list[IndicatorSnapshot]) -> None:
        self._indicators.set(symbol, list(snapshots))

    def get_tickers(self, key: str = TICKER_UNIVERSE_KEY) -> list[TickerMeta] | None:
        return self._tickers.get(key)

    def cache_tickers(self, tickers: list[TickerMeta], key: str = TICKER_UNIVERSE_KEY) -> None:
        self._tickers.set(key, list(tickers))

    def should_rate_limit(self, key: str, min_interval_seconds: float) -> bool:
        limited = self._rate_limiter.should_rate_limit(key, min_interval_seconds)
        if limited:
            logger.debug("rate limited %s (min interval %.2fs)", key, min_interval_seconds)
        return limited

    def clear(self) -> None:
        self._bars.clear()
        self._indicators.clear()
        self._tickers.clear()
        self._rate_limiter.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            bars_entries=len(self._bars),
            indicator_entries=len(self._indicators),
            ticker_entries=len(self._tickers),
            rate_limit_entries=len(self._rate_limiter),
        )
