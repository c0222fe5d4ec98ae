"""
tagcache - Cache Repository

Application-facing cache API over exactly one store. Derived operations
(remember, pull, add, batch helpers) are built here from the store's
primitives; optional store capabilities are used when the store provides
them.

Usage:
    repo = Repository(MemoryStore())

    await repo.put("greeting", "hello", ttl=60)
    users = await repo.remember("users", 300, load_users)

    posts = repo.tags("posts", "feed")
    await posts.put("latest", [1, 2, 3], ttl=60)
    await posts.flush()  # orphan everything tagged posts+feed
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from .interface import Store
from .lock import DEFAULT_POLL_INTERVAL, Lock
from .tags import TaggedStore, TagSet

logger = logging.getLogger(__name__)

Producer = Callable[[], Any] | Callable[[], Awaitable[Any]]


async def _resolve(producer: Any) -> Any:
    """Call a sync or async producer and return its value."""
    value = producer()
    if inspect.isawaitable(value):
        value = await value
    return value


class Repository:
    """Cache facade bound to a single store."""

    def __init__(self, store: Store, lock_poll_interval: float = DEFAULT_POLL_INTERVAL):
        self._store = store
        self.lock_poll_interval = lock_poll_interval

    @property
    def store(self) -> Store:
        return self._store

    def get_store(self) -> Store:
        return self._store

    @property
    def base_store(self) -> Store:
        """The underlying store with every tagged view unwrapped."""
        store = self._store
        while isinstance(store, TaggedStore):
            store = store.store
        return store

    # ------------ Reads ------------

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a value, or ``default`` when missing or expired.

        A callable default is invoked (sync or async) only on a miss. Classes
        are callables too: ``get(key, dict)`` returns ``{}`` on a miss. Wrap a
        callable in a lambda to get the callable itself back.
        """
        value = await self._store.get(key)
        if value is not None:
            return value

        if callable(default):
            return await _resolve(default)
        return default

    async def has(self, key: str) -> bool:
        return await self._store.get(key) is not None

    async def missing(self, key: str) -> bool:
        return not await self.has(key)

    async def pull(self, key: str, default: Any = None) -> Any:
        """Retrieve a value and remove it from the cache."""
        value = await self.get(key, default)
        await self.forget(key)
        return value

    # ------------ Writes ------------

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (None or 0 = no expiry)
        """
        if ttl is not None and ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")

        if not ttl:
            await self._store.forever(key, value)
            return

        await self._store.put(key, value, ttl)

    async def forever(self, key: str, value: Any) -> None:
        await self._store.forever(key, value)

    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store a value only if the key is not already present.

        Uses the store's atomic set-if-absent when available. Otherwise falls
        back to a read-then-write, which can race with concurrent writers.

        Returns:
            True if the value was written
        """
        if ttl is not None and ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")

        added = await self._store.add(key, value, ttl or 0)
        if added is not NotImplemented:
            return bool(added)

        logger.debug(
            "Store %s has no atomic add, using read-then-write for '%s'",
            type(self._store).__name__,
            key,
            extra={"key": key},
        )
        if await self.has(key):
            return False

        await self.put(key, value, ttl)
        return True

    async def increment(self, key: str, by: int = 1) -> int:
        return await self._store.increment(key, by)

    async def decrement(self, key: str, by: int = 1) -> int:
        return await self._store.decrement(key, by)

    async def remember(self, key: str, ttl: int | None, producer: Producer) -> Any:
        """
        Return the cached value, or produce, store and return it.

        The producer is not called on a cache hit.
        """
        value = await self._store.get(key)
        if value is not None:
            return value

        value = await _resolve(producer)
        await self.put(key, value, ttl)
        return value

    async def remember_forever(self, key: str, producer: Producer) -> Any:
        return await self.remember(key, None, producer)

    async def forget(self, key: str) -> None:
        await self._store.forget(key)

    async def flush(self) -> None:
        """Flush the store, or reset the tags when this repository is tagged."""
        await self._store.flush()

    # ------------ Batch operations ------------

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """
        Retrieve multiple values.

        Every requested key is present in the result; misses map to None.
        """
        keys = list(keys)
        if not keys:
            return {}

        results = await self._store.get_many(keys)
        if results is NotImplemented:
            return {key: await self._store.get(key) for key in keys}

        return {key: results.get(key) for key in keys}

    async def put_many(self, items: dict[str, Any], ttl: int | None = None) -> None:
        """Store multiple values with the same TTL (None or 0 = no expiry)."""
        if ttl is not None and ttl < 0:
            raise ValueError(f"TTL must be non-negative, got {ttl}")
        if not items:
            return

        if await self._store.put_many(items, ttl or None) is not NotImplemented:
            return

        for key, value in items.items():
            await self.put(key, value, ttl)

    async def forget_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return

        if await self._store.forget_many(keys) is not NotImplemented:
            return

        for key in keys:
            await self._store.forget(key)

    # ------------ Tags and locks ------------

    def tags(self, *names: str | Iterable[str]) -> Repository:
        """
        Return a repository scoped to the given tags.

        Accepts ``tags("a", "b")`` or ``tags(["a", "b"])``.
        """
        tag_names: list[str] = []
        for name in names:
            if isinstance(name, str):
                tag_names.append(name)
            else:
                tag_names.extend(name)

        if not tag_names:
            raise ValueError("At least one tag name is required")

        base = self.base_store
        return Repository(TaggedStore(base, TagSet(base, tag_names)), self.lock_poll_interval)

    def lock(self, name: str, ttl: int = 0, owner: str | None = None) -> Lock:
        """Return a lock on the untagged store; locks are global by name."""
        return Lock(self.base_store, name, ttl, owner, poll_interval=self.lock_poll_interval)

    def restore_lock(self, name: str, owner: str) -> Lock:
        """Rebind a lock to an owner id obtained from a previous ``Lock.owner``."""
        return self.lock(name, 0, owner)
