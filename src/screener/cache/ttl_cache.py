"""Bounded TTL cache and per-key rate limiter."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    inserted_at: float
    ttl_seconds: float

    def is_valid(self, now: float) -> bool:
        return now - self.inserted_at < self.ttl_seconds


class TtlCache:
    """Key/value cache where entries expire `ttl_seconds` after insertion.

    Expired entries read as absent and are dropped on access. When the number
    of stored entries exceeds `capacity`, the least recently used one is
    evicted.
    """

    def __init__(self, ttl_seconds: float, capacity: int, clock: Clock = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.ttl_seconds = float(ttl_seconds)
        self.capacity = int(capacity)
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(
            value=value,
            inserted_at=self._clock(),
            ttl_seconds=self.ttl_seconds,
        )
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RateLimiter:
    """Remembers the last allowed request instant per key."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._last_request: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last_request)

    def should_rate_limit(self, key: str, min_interval_seconds: float) -> bool:
        """Return True to refuse the request; otherwise record it and return False."""
        now = self._clock()
        last = self._last_request.get(key)
        if last is not None and now - last < min_interval_seconds:
            return True
        self._last_request[key] = now
        return False

    def clear(self) -> None:
        self._last_request.clear()
