"""
tagcache - Redis Store

Asynchronous Redis store with:
- JSON serialization for values
- Per-key TTL via SET EX
- Atomic add via SET NX
- Batch operations using MGET, pipelines and variadic DEL

Requires: redis>=5.0 with asyncio support

Example:
    store = RedisStore(redis_url="redis://localhost:6379/0", prefix="app:")
    repo = Repository(store)
    await repo.put("greeting", {"msg": "hello"}, ttl=60)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ...errors import BackendUnavailableError
from ..interface import Store

logger = logging.getLogger(__name__)

try:
    # redis-py asyncio client (v4+)
    from redis.asyncio import Redis
    from redis.exceptions import RedisError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis async client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e


class RedisStore(Store):
    """
    Redis cache store.

    Notes:
    - Keys are prefixed with the configured prefix.
    - Values are stored as UTF-8 JSON strings; integers stay INCRBY-compatible.
    - Backend failures are logged and re-raised as BackendUnavailableError.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "",
        max_connections: int = 10,
        socket_timeout: int = 5,
        client: Redis | None = None,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            redis_url: Connection URL, e.g., redis://localhost:6379/0 or rediss:// for TLS
            prefix: Prefix for all keys
            max_connections: Connection pool size
            socket_timeout: Socket timeout in seconds
            client: Pre-built client to use instead of ``redis_url``
        """
        if client is None and not redis_url:
            raise ValueError("redis_url or client is required")

        self.prefix = prefix
        self._owns_client = client is None

        # Lazy connection; connects on first command
        self._client = client or Redis.from_url(  # type: ignore[call-overload]
            url=redis_url,
            decode_responses=True,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
        )

    # ------------ Helpers ------------

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _to_json(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def _from_json(data: str | bytes | None) -> Any | None:
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return json.loads(data)
        except ValueError as e:
            logger.warning(
                f"Failed to decode JSON from cache, returning raw data: {e}",
                extra={"data_preview": data[:100], "error": str(e)},
            )
            return data

    def _unavailable(self, operation: str, error: Exception, **details: Any) -> BackendUnavailableError:
        logger.error(
            f"Redis {operation} failed: {error}",
            extra={"prefix": self.prefix, "operation": operation, "error": str(error), **details},
            exc_info=True,
        )
        return BackendUnavailableError("redis", operation, {"error": str(error), **details})

    # ------------ Core Interface ------------

    async def get(self, key: str) -> Any | None:
        try:
            data = await self._client.get(self._make_key(key))
        except RedisError as e:
            raise self._unavailable("get", e, key=key) from e
        return self._from_json(data)

    async def put(self, key: str, value: Any, ttl: int) -> None:
        payload = self._to_json(value)
        try:
            await self._client.set(self._make_key(key), payload, ex=ttl if ttl > 0 else None)
        except RedisError as e:
            raise self._unavailable("put", e, key=key, ttl=ttl) from e

    async def forever(self, key: str, value: Any) -> None:
        payload = self._to_json(value)
        try:
            await self._client.set(self._make_key(key), payload)
        except RedisError as e:
            raise self._unavailable("forever", e, key=key) from e

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        payload = self._to_json(value)
        try:
            result = await self._client.set(self._make_key(key), payload, ex=ttl if ttl > 0 else None, nx=True)
        except RedisError as e:
            raise self._unavailable("add", e, key=key, ttl=ttl) from e
        return bool(result)

    async def increment(self, key: str, by: int = 1) -> int:
        try:
            return int(await self._client.incrby(self._make_key(key), by))
        except RedisError as e:
            raise self._unavailable("increment", e, key=key) from e

    async def decrement(self, key: str, by: int = 1) -> int:
        try:
            return int(await self._client.decrby(self._make_key(key), by))
        except RedisError as e:
            raise self._unavailable("decrement", e, key=key) from e

    async def forget(self, key: str) -> None:
        try:
            await self._client.delete(self._make_key(key))
        except RedisError as e:
            raise self._unavailable("forget", e, key=key) from e

    async def flush(self) -> None:
        """
        Remove this store's entries.

        With a prefix: SCAN match "<prefix>*" and DEL in batches.
        Without one: FLUSHDB.
        """
        try:
            if not self.prefix:
                await self._client.flushdb()
                logger.info("Flushed Redis database")
                return

            cursor = 0
            total_deleted = 0
            while True:
                cursor, keys = await self._client.scan(cursor=cursor, match=f"{self.prefix}*", count=1000)
                if keys:
                    total_deleted += await self._client.delete(*keys)
                if cursor == 0:
                    break

            logger.info(f"Flushed {total_deleted} keys with prefix '{self.prefix}'")
        except RedisError as e:
            raise self._unavailable("flush", e) from e

    def get_prefix(self) -> str:
        return self.prefix

    # ------------ Batch operations ------------

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        try:
            values = await self._client.mget([self._make_key(k) for k in keys])
        except RedisError as e:
            raise self._unavailable("get_many", e, key_count=len(keys)) from e

        # mget preserves order
        return {key: self._from_json(raw) for key, raw in zip(keys, values, strict=True)}

    async def put_many(self, items: dict[str, Any], ttl: int | None) -> None:
        if not items:
            return
        try:
            pipe = self._client.pipeline(transaction=False)
            for key, value in items.items():
                pipe.set(self._make_key(key), self._to_json(value), ex=ttl if ttl and ttl > 0 else None)
            await pipe.execute()
        except RedisError as e:
            raise self._unavailable("put_many", e, key_count=len(items), ttl=ttl) from e

    async def forget_many(self, keys: list[str]) -> None:
        if not keys:
            return
        ns_keys = [self._make_key(k) for k in keys]
        chunk_size = 1000
        try:
            for i in range(0, len(ns_keys), chunk_size):
                await self._client.delete(*ns_keys[i : i + chunk_size])
        except RedisError as e:
            raise self._unavailable("forget_many", e, key_count=len(keys)) from e

    async def get_stats(self) -> dict[str, Any]:
        """Return basic Redis connectivity info."""
        stats: dict[str, Any] = {"backend": "redis", "prefix": self.prefix, "connected": False}
        try:
            stats["connected"] = bool(await self._client.ping())
            info = await self._client.info(section="server")
            stats["redis_version"] = info.get("redis_version")
        except RedisError as e:
            logger.warning(f"Failed to get Redis INFO (restricted or unavailable): {e}", extra={"error": str(e)})
        return stats

    async def close(self) -> None:
        """Close the Redis client if this store created it."""
        if not self._owns_client:
            return
        try:
            await self._client.aclose()
            logger.info("Closed Redis store")
        finally:
            await self._client.connection_pool.disconnect()
