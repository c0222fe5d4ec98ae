"""
tagcache - Configuration Schemas

Typed configuration models using Pydantic for validation and type safety.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class StoreDriver(str, Enum):
    """Built-in store drivers."""

    MEMORY = "memory"
    REDIS = "redis"
    DATABASE = "database"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreConfig(BaseModel):
    """Configuration for one named store."""

    # Plain string so custom drivers registered via CacheManager.extend() validate too
    driver: str = Field(default=StoreDriver.MEMORY.value, min_length=1, description="Driver kind for this store")
    prefix: str | None = Field(default=None, description="Key prefix (overrides the global prefix)")

    # Memory-specific
    max_size: int | None = Field(default=None, ge=1, description="Max entries for the memory store (None = unbounded)")

    # Redis-specific
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    redis_max_connections: int = Field(default=10, ge=1, description="Redis connection pool size")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    # Database-specific
    database_url: str | None = Field(default=None, description="SQLAlchemy async database URL")
    table: str = Field(default="cache", min_length=1, description="Cache table name")

    # Extra options passed through to custom driver factories
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("driver")
    @classmethod
    def normalize_driver(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def validate_driver_settings(self) -> "StoreConfig":
        """Ensure connection settings exist for the built-in network drivers."""
        if self.driver == StoreDriver.REDIS.value and not self.redis_url:
            raise ValueError("redis_url is required when driver is 'redis'")
        if self.driver == StoreDriver.DATABASE.value and not self.database_url:
            raise ValueError("database_url is required when driver is 'database'")
        return self


class CacheSettings(BaseModel):
    """Root configuration for tagcache."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    default: str = Field(default="memory", description="Name of the default store")
    prefix: str = Field(default="", description="Global key prefix applied to every store")
    lock_poll_interval: float = Field(default=0.25, gt=0, description="Seconds between lock acquire attempts")

    stores: dict[str, StoreConfig] = Field(
        default_factory=lambda: {"memory": StoreConfig(driver=StoreDriver.MEMORY.value)},
        description="Named store configurations",
    )

    @model_validator(mode="after")
    def validate_default_store(self) -> "CacheSettings":
        if self.default not in self.stores:
            raise ValueError(f"Default cache store '{self.default}' is not defined in stores")
        return self

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
