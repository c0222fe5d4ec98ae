"""
tagcache - Store Interface

Defines the capability contract every cache store must implement.

Required primitives are abstract. Optional capabilities (atomic add and the
batch operations) are concrete members that return ``NotImplemented`` when a
store does not support them; callers branch on that result and fall back to
the single-key primitives.
"""

from abc import ABC, abstractmethod
from typing import Any


class Store(ABC):
    """
    Abstract base class for cache stores.

    A ``get`` on an absent or expired key returns None and never raises for
    absence. Stores that override ``add`` must make it atomic with respect to
    concurrent callers of the same backend.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Retrieve a value from the store.

        Args:
            key: Cache key

        Returns:
            Stored value if present and not expired, None otherwise
        """

    @abstractmethod
    async def put(self, key: str, value: Any, ttl: int) -> None:
        """
        Store a value for ``ttl`` seconds.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (always positive)
        """

    @abstractmethod
    async def increment(self, key: str, by: int = 1) -> int:
        """
        Add ``by`` to the integer stored at ``key`` and return the new value.

        A missing key counts as zero.
        """

    async def decrement(self, key: str, by: int = 1) -> int:
        """Subtract ``by`` from the integer stored at ``key``."""
        return await self.increment(key, -by)

    @abstractmethod
    async def forever(self, key: str, value: Any) -> None:
        """Store a value with no expiry."""

    @abstractmethod
    async def forget(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""

    @abstractmethod
    async def flush(self) -> None:
        """Remove every entry owned by this store."""

    @abstractmethod
    def get_prefix(self) -> str:
        """Return the key prefix this store applies to every key."""

    # ------------ Optional capabilities ------------

    async def add(self, key: str, value: Any, ttl: int) -> Any:
        """
        Atomically store a value only if the key is absent.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds (0 or less = no expiry)

        Returns:
            True if written, False if the key already existed,
            NotImplemented if the store has no atomic set-if-absent
        """
        return NotImplemented

    async def get_many(self, keys: list[str]) -> Any:
        """
        Retrieve multiple values in one call.

        Returns:
            Mapping with every requested key (None for misses),
            or NotImplemented if unsupported
        """
        return NotImplemented

    async def put_many(self, items: dict[str, Any], ttl: int | None) -> Any:
        """
        Store multiple values with the same TTL (None = no expiry).

        Returns:
            None, or NotImplemented if unsupported
        """
        return NotImplemented

    async def forget_many(self, keys: list[str]) -> Any:
        """
        Remove multiple keys in one call.

        Returns:
            None, or NotImplemented if unsupported
        """
        return NotImplemented

    async def close(self) -> None:
        """
        Close the store and release resources.

        Should be called during graceful shutdown.
        """
        return None
