"""
tagcache - Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
"""

import logging
import os
import time
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from tagcache.cache import manager as manager_module
from tagcache.cache.backends.memory import MemoryStore
from tagcache.cache.interface import Store
from tagcache.cache.repository import Repository

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"


class MinimalStore(Store):
    """
    Store implementing only the required primitives.

    Has no atomic add and no batch operations, so every caller exercises
    its fallback path.
    """

    def __init__(self) -> None:
        self.entries: dict[str, tuple[Any, float | None]] = {}
        self.calls: list[str] = []

    async def get(self, key: str) -> Any | None:
        self.calls.append("get")
        entry = self.entries.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if expiry is not None and time.time() >= expiry:
            del self.entries[key]
            return None
        return value

    async def put(self, key: str, value: Any, ttl: int) -> None:
        self.calls.append("put")
        self.entries[key] = (value, time.time() + ttl)

    async def increment(self, key: str, by: int = 1) -> int:
        self.calls.append("increment")
        current = await self.get(key) or 0
        expiry = self.entries[key][1] if key in self.entries else None
        self.entries[key] = (current + by, expiry)
        return current + by

    async def forever(self, key: str, value: Any) -> None:
        self.calls.append("forever")
        self.entries[key] = (value, None)

    async def forget(self, key: str) -> None:
        self.calls.append("forget")
        self.entries.pop(key, None)

    async def flush(self) -> None:
        self.calls.append("flush")
        self.entries.clear()

    def get_prefix(self) -> str:
        return ""


@pytest.fixture
def minimal_store() -> MinimalStore:
    return MinimalStore()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture(params=["memory", "minimal"])
def store(request: pytest.FixtureRequest) -> Store:
    """Run a test against a full-featured store and a primitives-only store."""
    if request.param == "memory":
        return MemoryStore()
    return MinimalStore()


@pytest.fixture
def repo(store: Store) -> Repository:
    return Repository(store, lock_poll_interval=0.25)


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """SQLite database URL in a per-test temporary directory."""
    return f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"


@pytest.fixture
def test_redis_url() -> str:
    """Get Redis URL for testing (database 15 for isolation)."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")


@pytest_asyncio.fixture
async def closing_repositories() -> AsyncGenerator[list[Repository], None]:
    """Collect repositories whose stores must be closed after the test."""
    repositories: list[Repository] = []
    yield repositories
    for repository in repositories:
        await repository.store.close()


@pytest.fixture(autouse=True)
def reset_default_manager() -> Generator[None, None, None]:
    """Drop the process-wide cache manager after each test to prevent state leakage."""
    tagcache_logger = logging.getLogger("tagcache")
    handlers, level = list(tagcache_logger.handlers), tagcache_logger.level

    yield

    manager_module._default_manager = None
    tagcache_logger.handlers[:] = handlers
    tagcache_logger.setLevel(level)


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }
