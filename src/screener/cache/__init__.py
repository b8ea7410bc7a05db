"""In-process caching and rate limiting."""

from .manager import CacheManager, CacheStats
from .ttl_cache import CacheEntry, RateLimiter, TtlCache

__all__ = [
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "RateLimiter",
    "TtlCache",
]
