"""
tagcache - Cache Lock

Owned, TTL-bounded mutual exclusion built from store primitives.

A lock is held exactly when the store entry at ``name`` equals this lock's
owner id. Ownership lives in the store, so two Lock instances sharing a name
and owner are interchangeable.

Stores without an atomic ``add`` get a check-then-write fallback that is NOT
atomic across processes. Callers that need strict mutual exclusion must use a
store that implements ``add`` (memory, database, redis).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from ..errors import LockTimeoutError
from .interface import Store

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25

LockCallback = Callable[[], Any] | Callable[[], Awaitable[Any]]


class Lock:
    """
    Named lock stored in a cache store.

    Example:
        lock = repository.lock("reports:rebuild", ttl=10)
        if await lock.acquire():
            try:
                ...
            finally:
                await lock.release()

        # Or let the lock release itself:
        await lock.block(5, rebuild_reports)
    """

    def __init__(
        self,
        store: Store,
        name: str,
        ttl: int = 0,
        owner: str | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """
        Args:
            store: Store holding the lock entry (never a tagged view)
            name: Lock name, used as the store key
            ttl: Seconds until the lock expires on its own (0 = never)
            owner: Owner id; a random one is generated when omitted
            poll_interval: Seconds between attempts in ``block``
        """
        if ttl < 0:
            raise ValueError("Lock ttl must be non-negative")
        if poll_interval <= 0:
            raise ValueError("Lock poll_interval must be positive")

        self.store = store
        self.name = name
        self.ttl = ttl
        self._owner = owner or uuid4().hex
        self.poll_interval = poll_interval
        self._fallback_warned = False

    @property
    def owner(self) -> str:
        """Owner id written into the store when this lock is acquired."""
        return self._owner

    async def acquire(self) -> bool:
        """Try once to acquire the lock."""
        acquired = await self.store.add(self.name, self._owner, self.ttl)
        if acquired is not NotImplemented:
            return bool(acquired)

        if not self._fallback_warned:
            logger.warning(
                "Store has no atomic add; lock '%s' uses a non-atomic check-then-write",
                self.name,
                extra={"lock": self.name, "store": type(self.store).__name__},
            )
            self._fallback_warned = True

        if await self.store.get(self.name) is not None:
            return False

        if self.ttl > 0:
            await self.store.put(self.name, self._owner, self.ttl)
        else:
            await self.store.forever(self.name, self._owner)
        return True

    async def release(self) -> bool:
        """Release the lock only if this owner still holds it."""
        if await self.store.get(self.name) != self._owner:
            logger.debug("Lock '%s' is not held by owner %s", self.name, self._owner)
            return False

        await self.store.forget(self.name)
        return True

    async def force_release(self) -> None:
        """Release the lock regardless of its current owner."""
        await self.store.forget(self.name)
        logger.info("Force released lock '%s'", self.name, extra={"lock": self.name})

    async def is_owned_by_current_process(self) -> bool:
        return await self.store.get(self.name) == self._owner

    async def _run_and_release(self, callback: LockCallback) -> Any:
        try:
            result = callback()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            await self.release()

    async def get(self, callback: LockCallback | None = None) -> Any:
        """
        Try once to acquire the lock.

        Without a callback, returns whether the lock was acquired. With a
        callback, runs it only on success and releases the lock afterwards,
        returning the callback's result (False if not acquired).
        """
        acquired = await self.acquire()

        if acquired and callback is not None:
            return await self._run_and_release(callback)

        return acquired

    async def block(self, timeout: float, callback: LockCallback | None = None) -> Any:
        """
        Poll for the lock until acquired or ``timeout`` seconds have elapsed.

        The deadline is checked between attempts, so the wait may exceed
        ``timeout`` by up to one poll interval.

        Raises:
            LockTimeoutError: If the lock was not acquired in time
        """
        started = time.monotonic()

        while not await self.acquire():
            if time.monotonic() - started >= timeout:
                logger.warning(
                    "Timed out waiting for lock '%s' after %ss",
                    self.name,
                    timeout,
                    extra={"lock": self.name, "timeout": timeout},
                )
                raise LockTimeoutError(self.name, timeout)

            await asyncio.sleep(self.poll_interval)

        if callback is not None:
            return await self._run_and_release(callback)

        return True
