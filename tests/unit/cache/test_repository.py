"""
tagcache - Repository Tests

Tests the cache facade against a full-featured store (memory) and a store
with only the required primitives, covering both the native and fallback
code paths.
"""

import asyncio
from typing import Any

import pytest

from tagcache.cache.backends.memory import MemoryStore
from tagcache.cache.lock import Lock
from tagcache.cache.repository import Repository
from tagcache.cache.tags import TaggedStore


class TestRepositoryBasics:
    """Single-key reads and writes."""

    async def test_put_and_get(self, repo: Repository) -> None:
        await repo.put("key1", "value1", ttl=60)
        assert await repo.get("key1") == "value1"

    async def test_get_missing_returns_default(self, repo: Repository) -> None:
        assert await repo.get("missing") is None
        assert await repo.get("missing", "fallback") == "fallback"

    async def test_get_callable_default_only_on_miss(self, repo: Repository) -> None:
        calls: list[str] = []

        async def fallback() -> str:
            calls.append("called")
            return "computed"

        assert await repo.get("missing", fallback) == "computed"

        await repo.put("present", "stored", ttl=60)
        assert await repo.get("present", fallback) == "stored"
        assert calls == ["called"]

    async def test_get_class_default_is_called(self, repo: Repository) -> None:
        assert await repo.get("missing", dict) == {}
        assert await repo.get("missing", lambda: dict) is dict

    async def test_put_expires_after_ttl(self, repo: Repository) -> None:
        await repo.put("key1", "value1", ttl=1)
        assert await repo.get("key1") == "value1"

        await asyncio.sleep(1.2)

        assert await repo.get("key1", "gone") == "gone"

    async def test_put_without_ttl_stores_forever(self, repo: Repository) -> None:
        await repo.put("key1", "value1")
        await repo.put("key2", "value2", ttl=0)

        await asyncio.sleep(0.1)
        assert await repo.get("key1") == "value1"
        assert await repo.get("key2") == "value2"

    async def test_put_rejects_negative_ttl(self, repo: Repository) -> None:
        with pytest.raises(ValueError):
            await repo.put("key1", "value1", ttl=-1)

    async def test_has_and_missing(self, repo: Repository) -> None:
        assert await repo.has("key1") is False
        assert await repo.missing("key1") is True

        await repo.forever("key1", "value1")

        assert await repo.has("key1") is True
        assert await repo.missing("key1") is False

    async def test_forget(self, repo: Repository) -> None:
        await repo.put("key1", "value1", ttl=60)
        await repo.forget("key1")
        assert await repo.get("key1") is None

        # Forgetting a missing key is a no-op
        await repo.forget("key1")

    async def test_flush(self, repo: Repository) -> None:
        await repo.put("key1", "value1", ttl=60)
        await repo.forever("key2", "value2")

        await repo.flush()

        assert await repo.get("key1") is None
        assert await repo.get("key2") is None

    async def test_various_types(self, repo: Repository, sample_cache_data: dict[str, Any]) -> None:
        for key, value in sample_cache_data.items():
            await repo.put(key, value, ttl=60)

        for key, expected in sample_cache_data.items():
            assert await repo.get(key) == expected


class TestRepositoryDerived:
    """Derived operations built from store primitives."""

    async def test_add_only_when_absent(self, repo: Repository) -> None:
        assert await repo.add("key1", "first", ttl=60) is True
        assert await repo.add("key1", "second", ttl=60) is False
        assert await repo.get("key1") == "first"

    async def test_add_after_expiry(self, repo: Repository) -> None:
        assert await repo.add("key1", "first", ttl=1) is True
        await asyncio.sleep(1.2)
        assert await repo.add("key1", "second", ttl=60) is True
        assert await repo.get("key1") == "second"

    async def test_add_uses_atomic_store_add(self, memory_store: MemoryStore) -> None:
        repo = Repository(memory_store)
        results = await asyncio.gather(*(repo.add("race", i, ttl=60) for i in range(10)))
        assert results.count(True) == 1

    async def test_add_falls_back_to_read_then_write(self, minimal_store: Any) -> None:
        repo = Repository(minimal_store)
        assert await repo.add("key1", "value1", ttl=60) is True
        assert minimal_store.calls == ["get", "put"]

    async def test_increment_and_decrement(self, repo: Repository) -> None:
        await repo.put("counter", 10, ttl=60)
        assert await repo.increment("counter", 5) == 15
        assert await repo.decrement("counter", 3) == 12
        assert await repo.get("counter") == 12

    async def test_increment_missing_key_starts_at_zero(self, repo: Repository) -> None:
        assert await repo.increment("hits") == 1
        assert await repo.increment("hits") == 2
        assert await repo.decrement("misses") == -1

    async def test_remember_calls_producer_once(self, repo: Repository) -> None:
        calls = 0

        async def producer() -> dict[str, int]:
            nonlocal calls
            calls += 1
            return {"answer": 42}

        first = await repo.remember("answer", 60, producer)
        second = await repo.remember("answer", 60, producer)

        assert first == second == {"answer": 42}
        assert calls == 1

    async def test_remember_accepts_sync_producer(self, repo: Repository) -> None:
        assert await repo.remember("sync", 60, lambda: "plain") == "plain"
        assert await repo.get("sync") == "plain"

    async def test_remember_recomputes_after_expiry(self, repo: Repository) -> None:
        values = iter(["first", "second"])

        assert await repo.remember("key1", 1, lambda: next(values)) == "first"
        await asyncio.sleep(1.2)
        assert await repo.remember("key1", 1, lambda: next(values)) == "second"

    async def test_remember_forever(self, repo: Repository) -> None:
        calls: list[int] = []

        def producer() -> str:
            calls.append(1)
            return "forever"

        assert await repo.remember_forever("key1", producer) == "forever"
        assert await repo.remember_forever("key1", producer) == "forever"
        assert len(calls) == 1

    async def test_remember_does_not_store_on_producer_error(self, repo: Repository) -> None:
        async def failing() -> str:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await repo.remember("key1", 60, failing)

        assert await repo.has("key1") is False

    async def test_pull(self, repo: Repository) -> None:
        await repo.put("key1", "value1", ttl=60)

        assert await repo.pull("key1") == "value1"
        assert await repo.get("key1") is None
        assert await repo.pull("key1", "default") == "default"


class TestRepositoryBatch:
    """Batch operations, native and fallback."""

    async def test_put_get_forget_many(self, repo: Repository) -> None:
        await repo.put_many({"a": 1, "b": 2, "c": 3}, ttl=60)

        assert await repo.get_many(["a", "b", "c", "missing"]) == {
            "a": 1,
            "b": 2,
            "c": 3,
            "missing": None,
        }

        await repo.forget_many(["a", "b"])

        assert await repo.get_many(["a", "b", "c"]) == {"a": None, "b": None, "c": 3}

    async def test_put_many_without_ttl(self, repo: Repository) -> None:
        await repo.put_many({"a": 1, "b": 2})
        assert await repo.get_many(["a", "b"]) == {"a": 1, "b": 2}

    async def test_put_many_with_ttl_expires(self, repo: Repository) -> None:
        await repo.put_many({"a": 1, "b": 2}, ttl=1)
        await asyncio.sleep(1.2)
        assert await repo.get_many(["a", "b"]) == {"a": None, "b": None}

    async def test_empty_batches(self, repo: Repository) -> None:
        assert await repo.get_many([]) == {}
        await repo.put_many({})
        await repo.forget_many([])

    async def test_fallback_issues_single_key_calls(self, minimal_store: Any) -> None:
        repo = Repository(minimal_store)

        await repo.put_many({"a": 1, "b": 2}, ttl=60)
        assert minimal_store.calls == ["put", "put"]

        minimal_store.calls.clear()
        await repo.get_many(["a", "b"])
        assert minimal_store.calls == ["get", "get"]

        minimal_store.calls.clear()
        await repo.forget_many(["a", "b"])
        assert minimal_store.calls == ["forget", "forget"]


class TestRepositoryTagsAndLocks:
    """Factories for tagged views and locks."""

    async def test_tags_returns_tagged_repository(self, repo: Repository) -> None:
        tagged = repo.tags("users", "posts")

        assert isinstance(tagged, Repository)
        assert isinstance(tagged.store, TaggedStore)
        assert tagged.store.tags.names == ["users", "posts"]

    async def test_tags_accepts_list(self, repo: Repository) -> None:
        tagged = repo.tags(["users", "posts"])
        assert tagged.store.tags.names == ["users", "posts"]

    async def test_tags_requires_a_name(self, repo: Repository) -> None:
        with pytest.raises(ValueError):
            repo.tags()

    async def test_nested_tags_use_base_store(self, repo: Repository) -> None:
        nested = repo.tags("a").tags("b")
        assert nested.store.store is repo.store

    async def test_lock_on_tagged_repository_is_global(self, repo: Repository) -> None:
        lock = repo.tags("users").lock("jobs:sync", 10)

        assert isinstance(lock, Lock)
        assert lock.store is repo.store
        assert await lock.acquire() is True
        assert await repo.lock("jobs:sync", 10).acquire() is False

    async def test_restore_lock(self, repo: Repository) -> None:
        original = repo.lock("jobs:sync", 10)
        await original.acquire()

        restored = repo.restore_lock("jobs:sync", original.owner)

        assert restored.owner == original.owner
        assert await restored.release() is True
        assert await repo.has("jobs:sync") is False
