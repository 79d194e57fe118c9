"""
ResponseCache - In-memory map from request URL to (payload, fetch time).

Features:
- One entry per distinct URL string (query string included)
- Entry age measured on a monotonic clock
- No TTL policy: callers decide what "fresh" and "stale" mean
- Optional oldest-first eviction when a max size is configured
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger


@dataclass
class CacheEntry:
    """A single cached response."""

    key: str
    data: Any
    fetched_at: float

    def age(self, now: float) -> float:
        """Seconds elapsed since the entry was stored."""
        return now - self.fetched_at


class ResponseCache:
    """
    URL-keyed response cache.

    Usage:
        cache = ResponseCache()

        entry = cache.get(url)
        if entry and cache.age(entry) < fresh_ttl:
            return entry.data

        data = await fetch(url)
        cache.put(url, data)
    """

    def __init__(
        self,
        max_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry] = {}
        self._max_size = max_size
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats()

    def now(self) -> float:
        """Current reading of the cache clock."""
        return self._clock()

    def get(self, url: str) -> CacheEntry | None:
        """
        Look up the entry for url, whatever its age.

        Hit and miss counters record presence only. Whether a present entry
        was fresh enough to serve is counted by FallbackResolver.
        """
        entry = self._memory.get(url)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {url[:80]}")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {url[:80]} (age {entry.age(self._clock()):.1f}s)")
        return entry

    def put(self, url: str, data: Any) -> CacheEntry:
        """Store data for url, overwriting any previous entry."""
        if (
            self._max_size is not None
            and len(self._memory) >= self._max_size
            and url not in self._memory
        ):
            self._evict_oldest()

        entry = CacheEntry(key=url, data=data, fetched_at=self._clock())
        self._memory[url] = entry
        self._log(f"SET: {url[:80]}")
        return entry

    def age(self, entry: CacheEntry) -> float:
        return entry.age(self._clock())

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, url: str) -> bool:
        return url in self._memory

    def _evict_oldest(self) -> None:
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].fetched_at,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:80]}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[ResponseCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics. Hits count present entries, including expired ones."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int | None = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
