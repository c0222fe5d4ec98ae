"""
tagcache - Configuration Loader

Loads and validates configuration from environment variables and .env files.
Returns a fresh CacheSettings on every call; the composition root decides
what to keep.
"""

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import CacheSettings

logger = logging.getLogger(__name__)


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name)
    return int(raw) if raw else None


def load_config(env_file: str | None = None) -> CacheSettings:
    """
    Load configuration from environment variables and .env file.

    A single store is configured from the environment; its name comes from
    CACHE_STORE and its driver from CACHE_DRIVER (auto-detected as redis when
    REDIS_URL is set, database when CACHE_DATABASE_URL is set, else memory).

    Args:
        env_file: Path to .env file (default: .env in the working directory)

    Returns:
        Validated CacheSettings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        load_dotenv(env_path, override=True)
    else:
        logger.debug("No .env file found, using environment variables only")

    redis_url = os.getenv("REDIS_URL")
    database_url = os.getenv("CACHE_DATABASE_URL")
    if redis_url:
        detected_driver = "redis"
    elif database_url:
        detected_driver = "database"
    else:
        detected_driver = "memory"

    driver = os.getenv("CACHE_DRIVER", detected_driver)
    store_name = os.getenv("CACHE_STORE", driver)

    try:
        config_dict: dict[str, Any] = {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "default": store_name,
            "prefix": os.getenv("CACHE_PREFIX", ""),
            "lock_poll_interval": float(os.getenv("CACHE_LOCK_POLL_INTERVAL", "0.25")),
            "stores": {
                store_name: {
                    "driver": driver,
                    "max_size": _optional_int("CACHE_MAX_SIZE"),
                    "redis_url": redis_url,
                    "redis_max_connections": int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
                    "redis_socket_timeout": int(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
                    "database_url": database_url,
                    "table": os.getenv("CACHE_TABLE", "cache"),
                },
            },
        }
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid numeric cache setting: {e}",
            details={"error": str(e)},
        ) from e

    try:
        settings = CacheSettings(**config_dict)
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(), "config_dict_keys": list(config_dict.keys())},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors()},
        ) from e

    logger.info(
        f"Configuration loaded successfully (environment: {settings.environment})",
        extra={"environment": settings.environment, "default_store": settings.default},
    )
    return settings
