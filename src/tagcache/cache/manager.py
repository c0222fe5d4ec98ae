"""
tagcache - Cache Manager

Resolves named stores from configuration and hands out repositories.

Key points:
- Driver registry: driver kind -> factory(store_config, settings) -> Store,
  validated at registration, explicit failure for unknown kinds
- Built-in drivers: memory (always available), redis and database (lazy import)
- Process-wide default manager only through init_cache() / get_cache() /
  close_cache(), called from the application's composition root

Examples:
    from tagcache import CacheSettings, init_cache, get_cache, close_cache

    init_cache(CacheSettings())
    repo = get_cache().store()
    await repo.put("key", "value", ttl=60)
    await close_cache()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock as ThreadLock
from typing import Any

from ..config import CacheSettings, StoreConfig, StoreDriver
from ..errors import ConfigurationError, UnknownDriverError
from ..logging_config import configure_logging
from .backends.memory import MemoryStore
from .interface import Store
from .lock import Lock
from .repository import Repository

logger = logging.getLogger(__name__)

DriverFactory = Callable[[StoreConfig, CacheSettings], Store]


def _store_prefix(config: StoreConfig, settings: CacheSettings) -> str:
    return config.prefix if config.prefix is not None else settings.prefix


def _create_memory_store(config: StoreConfig, settings: CacheSettings) -> Store:
    """Internal helper to construct a memory store."""
    return MemoryStore(prefix=_store_prefix(config, settings), max_size=config.max_size)


def _create_redis_store(config: StoreConfig, settings: CacheSettings) -> Store:
    """Internal helper to construct a redis store with lazy import."""
    if not config.redis_url:
        raise ConfigurationError(
            "redis_url must be set for the redis driver",
            details={"env": "REDIS_URL", "driver": "redis"},
        )

    # Lazy import to avoid hard dependency when memory store is used
    try:
        from .backends.redis import RedisStore
    except ImportError as e:
        logger.error(
            "Redis driver selected but redis client is not installed",
            extra={"package": "redis>=5.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Redis driver selected but redis client is unavailable. Install with: pip install 'redis>=5.0.0'",
            details={"package": "redis>=5.0.0", "error": str(e), "driver": "redis"},
        ) from e

    return RedisStore(
        redis_url=config.redis_url,
        prefix=_store_prefix(config, settings),
        max_connections=config.redis_max_connections,
        socket_timeout=config.redis_socket_timeout,
    )


def _create_database_store(config: StoreConfig, settings: CacheSettings) -> Store:
    """Internal helper to construct a database store with lazy import."""
    if not config.database_url:
        raise ConfigurationError(
            "database_url must be set for the database driver",
            details={"env": "CACHE_DATABASE_URL", "driver": "database"},
        )

    try:
        from .backends.database import DatabaseStore
    except ImportError as e:
        logger.error(
            "Database driver selected but SQLAlchemy is not installed",
            extra={"package": "sqlalchemy[asyncio]", "error": str(e)},
        )
        raise ConfigurationError(
            "Database driver selected but SQLAlchemy is unavailable. Install with: pip install 'sqlalchemy[asyncio]'",
            details={"package": "sqlalchemy[asyncio]", "error": str(e), "driver": "database"},
        ) from e

    return DatabaseStore(
        database_url=config.database_url,
        table=config.table,
        prefix=_store_prefix(config, settings),
    )


class DriverRegistry:
    """Maps driver kinds to store factories."""

    def __init__(self, include_builtins: bool = True):
        self._factories: dict[str, DriverFactory] = {}
        self._lock = ThreadLock()

        if include_builtins:
            self.register(StoreDriver.MEMORY.value, _create_memory_store)
            self.register(StoreDriver.REDIS.value, _create_redis_store)
            self.register(StoreDriver.DATABASE.value, _create_database_store)

    @staticmethod
    def _normalize(kind: str) -> str:
        return kind.strip().lower()

    def register(self, kind: str, factory: DriverFactory, *, overwrite: bool = False) -> None:
        """
        Register a store factory for a driver kind.

        Raises:
            ConfigurationError: If the kind is empty, the factory is not
                callable, or the kind is taken and ``overwrite`` is False
        """
        key = self._normalize(kind)
        if not key:
            raise ConfigurationError("Cache driver kind must be non-empty")
        if not callable(factory):
            raise ConfigurationError(
                f"Factory for cache driver [{key}] is not callable",
                details={"driver": key, "factory_type": type(factory).__name__},
            )

        with self._lock:
            if key in self._factories and not overwrite:
                raise ConfigurationError(f"Cache driver already registered: {key}", details={"driver": key})
            self._factories[key] = factory

        logger.debug("Registered cache driver '%s'", key)

    def resolve(self, kind: str) -> DriverFactory:
        key = self._normalize(kind)
        with self._lock:
            factory = self._factories.get(key)
            supported = sorted(self._factories)

        if factory is None:
            raise UnknownDriverError(kind, supported)
        return factory

    def kinds(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)


class CacheManager:
    """
    Named-store resolver.

    Repositories are created on first use and memoized by store name. The
    manager proxies the common operations to the default store.
    """

    def __init__(self, config: CacheSettings | None = None, registry: DriverRegistry | None = None):
        self.config = config or CacheSettings()
        self.registry = registry or DriverRegistry()
        self._repositories: dict[str, Repository] = {}

    def store(self, name: str | None = None) -> Repository:
        """
        Get the repository for a named store (default store when omitted).

        Raises:
            ConfigurationError: If the store is not configured or its driver is unknown
        """
        store_name = name or self.config.default

        if store_name not in self._repositories:
            self._repositories[store_name] = self._resolve(store_name)

        return self._repositories[store_name]

    def _resolve(self, name: str) -> Repository:
        store_config = self.config.stores.get(name)
        if store_config is None:
            raise ConfigurationError(
                f"Cache store [{name}] is not defined",
                details={"store": name, "configured": sorted(self.config.stores)},
            )

        factory = self.registry.resolve(store_config.driver)

        logger.info(
            "Creating cache store '%s' with driver: %s",
            name,
            store_config.driver,
            extra={"store": name, "driver": store_config.driver},
        )
        return Repository(factory(store_config, self.config), lock_poll_interval=self.config.lock_poll_interval)

    def extend(self, driver: str, factory: DriverFactory) -> CacheManager:
        """Register a custom driver, replacing any existing one of the same kind."""
        self.registry.register(driver, factory, overwrite=True)
        return self

    def list_stores(self) -> list[str]:
        """Names of stores resolved so far."""
        return list(self._repositories)

    async def close(self) -> None:
        """
        Close all resolved stores and release resources.

        Every store is closed even if an earlier one fails; the first failure
        is re-raised afterwards.
        """
        first_error: Exception | None = None

        for name, repository in list(self._repositories.items()):
            try:
                await repository.store.close()
                logger.info("Closed cache store: %s", name)
            except Exception as e:
                logger.error(
                    "Error closing cache store '%s': %s",
                    name,
                    e,
                    extra={"store": name, "error": str(e)},
                    exc_info=True,
                )
                first_error = first_error or e

        self._repositories.clear()

        if first_error is not None:
            raise first_error

    # ------------ Default store proxies ------------

    async def get(self, key: str, default: Any = None) -> Any:
        return await self.store().get(key, default)

    async def put(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self.store().put(key, value, ttl)

    async def has(self, key: str) -> bool:
        return await self.store().has(key)

    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return await self.store().add(key, value, ttl)

    async def forever(self, key: str, value: Any) -> None:
        await self.store().forever(key, value)

    async def forget(self, key: str) -> None:
        await self.store().forget(key)

    async def flush(self) -> None:
        await self.store().flush()

    async def increment(self, key: str, by: int = 1) -> int:
        return await self.store().increment(key, by)

    async def decrement(self, key: str, by: int = 1) -> int:
        return await self.store().decrement(key, by)

    async def pull(self, key: str, default: Any = None) -> Any:
        return await self.store().pull(key, default)

    async def remember(self, key: str, ttl: int | None, producer: Any) -> Any:
        return await self.store().remember(key, ttl, producer)

    async def remember_forever(self, key: str, producer: Any) -> Any:
        return await self.store().remember_forever(key, producer)

    def tags(self, *names: Any) -> Repository:
        return self.store().tags(*names)

    def lock(self, name: str, ttl: int = 0, owner: str | None = None) -> Lock:
        return self.store().lock(name, ttl, owner)


# Process-wide manager, set only by init_cache() at the composition root
_default_manager: CacheManager | None = None


def init_cache(
    config: CacheSettings | None = None,
    registry: DriverRegistry | None = None,
    *,
    setup_logging: bool = True,
) -> CacheManager:
    """
    Create the process-wide cache manager.

    Unless ``setup_logging`` is False, the ``tagcache`` logger is configured
    from the settings (``LOG_LEVEL``, and JSON output outside development).

    Raises:
        ConfigurationError: If a manager is already initialized
    """
    global _default_manager

    if _default_manager is not None:
        raise ConfigurationError("Cache already initialized; call close_cache() first")

    _default_manager = CacheManager(config, registry)
    if setup_logging:
        configure_logging(settings=_default_manager.config)
    logger.info("Cache initialized with default store '%s'", _default_manager.config.default)
    return _default_manager


def get_cache() -> CacheManager:
    """
    Get the process-wide cache manager.

    Raises:
        ConfigurationError: If init_cache() has not been called
    """
    if _default_manager is None:
        raise ConfigurationError("Cache system not configured. Call init_cache() at application startup.")
    return _default_manager


async def close_cache() -> None:
    """
    Close and clear the process-wide cache manager.

    MUST be called during graceful shutdown. Safe to call when not initialized.
    """
    global _default_manager

    manager, _default_manager = _default_manager, None
    if manager is None:
        logger.debug("No cache manager to close")
        return

    await manager.close()
    logger.info("Cache closed")
