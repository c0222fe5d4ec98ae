"""
tagcache - Tag Sets and Tagged Store

Tag-based invalidation without tracking membership. Each tag has a version
id persisted in the shared store. Keys written through a tagged view are
prefixed with the concatenation of the current ids; resetting the tags
orphans every key written under the previous namespace. Orphaned entries are
not deleted, they expire through their own TTL or linger until the backend
reclaims them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

from .interface import Store

logger = logging.getLogger(__name__)


class TagSet:
    """An ordered collection of tag names backed by per-tag version ids."""

    def __init__(self, store: Store, names: Iterable[str]):
        self.store = store
        self.names = list(names)

    def _normalized_names(self) -> list[str]:
        # Same set of names in any order yields the same namespace.
        return sorted(set(self.names))

    @staticmethod
    def tag_key(name: str) -> str:
        """Key under which a tag's version id is persisted."""
        return f"tag:{name}:key"

    @staticmethod
    def _generate_id() -> str:
        return uuid4().hex

    async def tag_id(self, name: str) -> str:
        """Get the version id for a tag, creating it on first access."""
        key = self.tag_key(name)
        tag_id = await self.store.get(key)

        if not tag_id:
            tag_id = self._generate_id()
            await self.store.forever(key, tag_id)
            logger.debug("Created id for tag '%s'", name, extra={"tag": name})

        return str(tag_id)

    async def tag_ids(self) -> list[str]:
        return [await self.tag_id(name) for name in self._normalized_names()]

    async def get_namespace(self) -> str:
        """Combine the current ids of all tags into a key prefix."""
        return "|".join(await self.tag_ids()) + ":"

    async def reset_tag(self, name: str) -> str:
        """Assign a fresh id to one tag and return it."""
        tag_id = self._generate_id()
        await self.store.forever(self.tag_key(name), tag_id)
        return tag_id

    async def reset(self) -> None:
        """Assign fresh ids to every tag, orphaning previously tagged keys."""
        for name in self._normalized_names():
            await self.reset_tag(name)

        logger.info("Reset cache tags %s", self.names, extra={"tags": self.names})


class TaggedStore(Store):
    """
    Store view that scopes every key to a TagSet namespace.

    The namespace is resolved on every call and never cached, so concurrent
    views over the same tags always agree. ``flush`` resets the tags instead
    of flushing the shared store.
    """

    def __init__(self, store: Store, tags: TagSet):
        self.store = store
        self.tags = tags

    async def tagged_item_key(self, key: str) -> str:
        """Return the fully prefixed key for ``key`` under the current namespace."""
        return await self.tags.get_namespace() + key

    async def get(self, key: str) -> Any | None:
        return await self.store.get(await self.tagged_item_key(key))

    async def put(self, key: str, value: Any, ttl: int) -> None:
        await self.store.put(await self.tagged_item_key(key), value, ttl)

    async def add(self, key: str, value: Any, ttl: int) -> Any:
        return await self.store.add(await self.tagged_item_key(key), value, ttl)

    async def increment(self, key: str, by: int = 1) -> int:
        return await self.store.increment(await self.tagged_item_key(key), by)

    async def decrement(self, key: str, by: int = 1) -> int:
        return await self.store.decrement(await self.tagged_item_key(key), by)

    async def forever(self, key: str, value: Any) -> None:
        await self.store.forever(await self.tagged_item_key(key), value)

    async def forget(self, key: str) -> None:
        await self.store.forget(await self.tagged_item_key(key))

    async def flush(self) -> None:
        await self.tags.reset()

    def get_prefix(self) -> str:
        return self.store.get_prefix()

    # ------------ Batch operations (one namespace snapshot per call) ------------

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        namespace = await self.tags.get_namespace()
        prefixed = [namespace + key for key in keys]

        results = await self.store.get_many(prefixed)
        if results is NotImplemented:
            return {key: await self.store.get(ns_key) for key, ns_key in zip(keys, prefixed)}

        return {key: results.get(ns_key) for key, ns_key in zip(keys, prefixed)}

    async def put_many(self, items: dict[str, Any], ttl: int | None) -> None:
        namespace = await self.tags.get_namespace()
        prefixed = {namespace + key: value for key, value in items.items()}

        if await self.store.put_many(prefixed, ttl) is not NotImplemented:
            return

        for ns_key, value in prefixed.items():
            if ttl:
                await self.store.put(ns_key, value, ttl)
            else:
                await self.store.forever(ns_key, value)

    async def forget_many(self, keys: list[str]) -> None:
        namespace = await self.tags.get_namespace()
        prefixed = [namespace + key for key in keys]

        if await self.store.forget_many(prefixed) is not NotImplemented:
            return

        for ns_key in prefixed:
            await self.store.forget(ns_key)

    async def close(self) -> None:
        # The wrapped store is shared and closed by its owner.
        return None
