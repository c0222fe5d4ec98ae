"""
tagcache - Storage-agnostic caching with tags and locks

Usage:
    from tagcache import Repository, MemoryStore

    cache = Repository(MemoryStore())
    await cache.put("key", "value", ttl=60)
    value = await cache.get("key")
"""

__version__ = "1.0.0"

from .cache import (
    CacheManager,
    DriverRegistry,
    Lock,
    Repository,
    Store,
    TaggedStore,
    TagSet,
    close_cache,
    get_cache,
    init_cache,
)
from .cache.backends import MemoryStore
from .config import CacheSettings, StoreConfig, StoreDriver, load_config
from .errors import (
    BackendUnavailableError,
    CacheError,
    ConfigurationError,
    LockTimeoutError,
    TagCacheError,
    UnknownDriverError,
)
from .logging_config import configure_logging

__all__ = [
    "__version__",
    # Core
    "Store",
    "Repository",
    "TagSet",
    "TaggedStore",
    "Lock",
    "MemoryStore",
    # Manager
    "CacheManager",
    "DriverRegistry",
    "init_cache",
    "get_cache",
    "close_cache",
    # Config
    "CacheSettings",
    "StoreConfig",
    "StoreDriver",
    "load_config",
    "configure_logging",
    # Errors
    "TagCacheError",
    "ConfigurationError",
    "UnknownDriverError",
    "CacheError",
    "BackendUnavailableError",
    "LockTimeoutError",
]
