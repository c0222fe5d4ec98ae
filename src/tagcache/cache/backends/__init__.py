"""
tagcache - Cache Stores

Exports the available store implementations.

Redis and database stores are lazy-loaded via manager.py to avoid import
overhead and optional dependency failures.
"""

from .memory import MemoryStore

__all__ = [
    "MemoryStore",
]
