"""
tagcache - Memory Store

In-process cache store with per-key TTL and an optional LRU size bound.
Suitable for single-process deployments and tests.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any

from ..interface import Store

logger = logging.getLogger(__name__)


class MemoryStore(Store):
    """
    In-memory cache store.

    Features:
    - Per-key TTL support
    - Atomic add (set-if-absent) under an asyncio lock
    - Native batch operations
    - Optional LRU eviction when max_size is set
    """

    def __init__(self, prefix: str = "", max_size: int | None = None):
        """
        Initialize memory store.

        Args:
            prefix: Key prefix applied to every entry
            max_size: Maximum number of entries (None = unbounded)
        """
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.prefix = prefix
        self.max_size = max_size

        # Cache storage: key -> (value, expiry_time)
        self._cache: OrderedDict[str, tuple[Any, float | None]] = OrderedDict()

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

        self._lock = asyncio.Lock()

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _expiry(ttl: int | None) -> float | None:
        return time.time() + ttl if ttl and ttl > 0 else None

    @staticmethod
    def _is_expired(expiry: float | None) -> bool:
        if expiry is None:
            return False
        return time.time() >= expiry

    def _read(self, cache_key: str) -> Any | None:
        """Read a live entry; caller holds the lock."""
        entry = self._cache.get(cache_key)
        if entry is None:
            self._misses += 1
            return None

        value, expiry = entry
        if self._is_expired(expiry):
            del self._cache[cache_key]
            self._misses += 1
            return None

        self._cache.move_to_end(cache_key)
        self._hits += 1
        return value

    def _write(self, cache_key: str, value: Any, expiry: float | None) -> None:
        """Write an entry, evicting the least recently used one if full; caller holds the lock."""
        if self.max_size is not None and cache_key not in self._cache and len(self._cache) >= self.max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted key from memory store: {evicted_key}")

        self._cache[cache_key] = (value, expiry)
        self._cache.move_to_end(cache_key)
        self._sets += 1

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return self._read(self._make_key(key))

    async def put(self, key: str, value: Any, ttl: int) -> None:
        async with self._lock:
            self._write(self._make_key(key), value, self._expiry(ttl))

    async def forever(self, key: str, value: Any) -> None:
        async with self._lock:
            self._write(self._make_key(key), value, None)

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        async with self._lock:
            cache_key = self._make_key(key)
            entry = self._cache.get(cache_key)
            if entry is not None and not self._is_expired(entry[1]):
                return False

            self._write(cache_key, value, self._expiry(ttl))
            return True

    async def increment(self, key: str, by: int = 1) -> int:
        """Increment a counter, keeping the entry's current expiry."""
        async with self._lock:
            cache_key = self._make_key(key)
            entry = self._cache.get(cache_key)

            if entry is None or self._is_expired(entry[1]):
                current, expiry = 0, None
            else:
                current, expiry = entry

            if not isinstance(current, int):
                raise TypeError(f"Cannot increment non-integer value stored at '{key}'")

            new_value = current + by
            self._write(cache_key, new_value, expiry)
            return new_value

    async def forget(self, key: str) -> None:
        async with self._lock:
            if self._cache.pop(self._make_key(key), None) is not None:
                self._deletes += 1

    async def flush(self) -> None:
        async with self._lock:
            size = len(self._cache)
            self._cache.clear()
            logger.info(f"Flushed {size} entries from memory store")

    def get_prefix(self) -> str:
        return self.prefix

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        async with self._lock:
            return {key: self._read(self._make_key(key)) for key in keys}

    async def put_many(self, items: dict[str, Any], ttl: int | None) -> None:
        async with self._lock:
            expiry = self._expiry(ttl)
            for key, value in items.items():
                self._write(self._make_key(key), value, expiry)

    async def forget_many(self, keys: list[str]) -> None:
        async with self._lock:
            for key in keys:
                if self._cache.pop(self._make_key(key), None) is not None:
                    self._deletes += 1

    async def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        async with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "backend": "memory",
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "prefix": self.prefix,
            }

    async def close(self) -> None:
        logger.debug("Memory store closed")
