"""
tagcache - Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import load_config
from .schemas import (
    CacheSettings,
    Environment,
    LogLevel,
    StoreConfig,
    StoreDriver,
)

__all__ = [
    # Loader
    "load_config",
    # Main config
    "CacheSettings",
    # Enums
    "Environment",
    "StoreDriver",
    "LogLevel",
    # Config sections
    "StoreConfig",
]
