"""
tagcache - Cache Module

Coordination layer over pluggable stores:
- interface.py: Store contract every backend implements
- repository.py: Application-facing facade with derived operations
- tags.py: Tag-versioned namespaces for group invalidation
- lock.py: Owned, TTL-bounded locks built from store primitives
- manager.py: Driver registry, named stores and the process-wide manager
- backends/: Store implementations (memory eager, redis and database lazy)
"""

from .interface import Store
from .lock import Lock
from .manager import (
    CacheManager,
    DriverRegistry,
    close_cache,
    get_cache,
    init_cache,
)
from .repository import Repository
from .tags import TaggedStore, TagSet

__all__ = [
    # Contract
    "Store",
    # Core
    "Repository",
    "TagSet",
    "TaggedStore",
    "Lock",
    # Manager
    "CacheManager",
    "DriverRegistry",
    "init_cache",
    "get_cache",
    "close_cache",
]
