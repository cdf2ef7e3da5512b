"""Bounded LRU cache with optional TTL, plus an async loading wrapper.

Used internally to memoise similarity and conflict-resolution results.
Cache operations never raise: absence is always reported as ``None``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class _LoadAbandoned(Exception):
    """Set on a shared load whose owning task was cancelled."""


@dataclass
class _CacheEntry(Generic[V]):
    value: V
    timestamp: float


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time snapshot of cache counters."""
    name: str
    size: int
    max_size: int
    hits: int
    misses: int
    puts: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


class BoundedCache(Generic[K, V]):
    """Fixed-capacity LRU cache with optional per-entry TTL.

    Recency is refreshed on both ``get`` and ``put``. An entry read after
    its TTL has elapsed is removed and counted as a miss and an eviction.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float | None = None,
        name: str = "cache",
        clock: Callable[[], float] = time.time,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock

        self._entries: OrderedDict[K, _CacheEntry[V]] = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._puts = 0
        self._evictions = 0

    def _is_expired(self, entry: _CacheEntry[V], now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.timestamp > self.ttl_seconds

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                self._evictions += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = _CacheEntry(value, self._clock())
            self._puts += 1

            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("[Cache:%s] Evicted %r", self.name, evicted)

    def remove(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                self._evictions += 1
                return None
            return entry.value

    def contains_key(self, key: K) -> bool:
        """Membership test that honours TTL without touching counters or recency."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._is_expired(entry, self._clock())

    def __contains__(self, key: object) -> bool:
        return self.contains_key(key)  # type: ignore[arg-type]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Physically remove every expired entry. Returns the number removed."""
        if self.ttl_seconds is None:
            return 0
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        if expired:
            logger.debug("[Cache:%s] Purged %d expired entries", self.name, len(expired))
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self.name,
                size=len(self._entries),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                puts=self._puts,
                evictions=self._evictions,
            )

    def log_stats(self, level: int = logging.INFO) -> None:
        s = self.stats()
        logger.log(
            level,
            "[Cache:%s] size=%d/%d hits=%d misses=%d puts=%d evictions=%d hit_rate=%.2f",
            s.name, s.size, s.max_size, s.hits, s.misses, s.puts, s.evictions, s.hit_rate,
        )


class LoadingCache(Generic[K, V]):
    """BoundedCache that computes missing values with an async loader.

    Concurrent misses for the same key share a single loader call. A
    loader exception propagates to every waiter and nothing is cached;
    a ``None`` result is returned but not cached. If the task running the
    loader is cancelled, the other waiters start a fresh load instead.
    """

    def __init__(
        self,
        loader: Callable[[K], Awaitable[V | None]],
        max_size: int = 1000,
        ttl_seconds: float | None = None,
        name: str = "loading-cache",
        clock: Callable[[], float] = time.time,
    ):
        self._loader = loader
        self._cache: BoundedCache[K, V] = BoundedCache(max_size, ttl_seconds, name, clock)
        self._in_flight: dict[K, asyncio.Future] = {}

    @property
    def cache(self) -> BoundedCache[K, V]:
        return self._cache

    async def get(self, key: K) -> V | None:
        while True:
            value = self._cache.get(key)
            if value is not None:
                return value

            pending = self._in_flight.get(key)
            if pending is None:
                return await self._load(key)
            try:
                return await asyncio.shield(pending)
            except _LoadAbandoned:
                logger.debug("[Cache:%s] Load of %r was cancelled, retrying", self._cache.name, key)

    async def _load(self, key: K) -> V | None:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await self._loader(key)
        except asyncio.CancelledError:
            future.set_exception(_LoadAbandoned(key))
            future.exception()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future does not warn
            future.exception()
            raise
        else:
            if value is not None:
                self._cache.put(key, value)
            future.set_result(value)
            return value
        finally:
            self._in_flight.pop(key, None)

    def put(self, key: K, value: V) -> None:
        self._cache.put(key, value)

    def invalidate(self, key: K) -> None:
        self._cache.remove(key)

    def invalidate_all(self) -> None:
        self._cache.clear()

    def cleanup_expired(self) -> int:
        return self._cache.cleanup_expired()

    def stats(self) -> CacheStats:
        return self._cache.stats()
