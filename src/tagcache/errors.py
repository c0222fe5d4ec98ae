"""
tagcache - Core Error Types

Defines the exception hierarchy for the cache core and its stores.
All exceptions inherit from TagCacheError for consistent error handling.
"""

from typing import Any


class TagCacheError(Exception):
    """Base exception for all tagcache errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging or API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(TagCacheError):
    """Raised when configuration is invalid, missing, or the cache is not wired."""

    pass


class UnknownDriverError(ConfigurationError):
    """Raised when a store driver kind has no registered factory."""

    def __init__(self, driver: str, supported: list[str] | None = None):
        message = f"Cache driver [{driver}] is not supported"
        super().__init__(message, {"driver": driver, "supported": supported or []})
        self.driver = driver


class CacheError(TagCacheError):
    """Base exception for cache runtime errors."""

    pass


class BackendUnavailableError(CacheError):
    """Raised by a store when the underlying backend call fails."""

    def __init__(self, backend: str, operation: str, details: dict[str, Any] | None = None):
        message = f"Cache backend '{backend}' failed during {operation}"
        error_details = dict(details or {})
        error_details.update({"backend": backend, "operation": operation})
        super().__init__(message, error_details)
        self.backend = backend
        self.operation = operation


class LockTimeoutError(CacheError):
    """Raised when a lock could not be acquired within the blocking timeout."""

    def __init__(self, lock_name: str, timeout: float):
        message = f"Could not acquire cache lock [{lock_name}] within {timeout} seconds"
        super().__init__(message, {"lock": lock_name, "timeout": timeout})
        self.lock_name = lock_name
        self.timeout = timeout
