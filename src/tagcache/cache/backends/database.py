"""
tagcache - Database Store

SQL-table-backed cache store using SQLAlchemy's async engine.

Each entry is one row ``(key, value, expiration)``: the value is JSON text and
``expiration`` a UNIX timestamp (NULL = never expires). Expired rows are
deleted when read.

Example:
    store = DatabaseStore("sqlite+aiosqlite:///./data/cache.db", table="cache")
    repo = Repository(store)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import Column, Float, MetaData, String, Table, Text, delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ...errors import BackendUnavailableError
from ..interface import Store

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_NATIVE_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def build_cache_table(name: str, metadata: MetaData | None = None) -> Table:
    """Describe the cache table layout."""
    return Table(
        name,
        metadata or MetaData(),
        # Each tag adds a 33-character namespace segment; MySQL indexes cap at 3072 bytes
        Column("key", Text().with_variant(String(768), "mysql", "mariadb"), primary_key=True),
        Column("value", Text, nullable=False),
        Column("expiration", Float, nullable=True, index=True),
    )


class DatabaseStore(Store):
    """
    Database cache store.

    Provides:
    - Automatic table creation on first use
    - Atomic add: revive an expired row, else INSERT relying on the primary key
    - Batch reads and deletes with IN clauses
    - Writes via native upsert on SQLite and PostgreSQL; other databases use
      UPDATE then INSERT, retried once when a concurrent writer inserted the
      same key first (last write wins)

    ``increment`` is a read-modify-write inside one transaction and is not
    atomic across processes on databases without serializable isolation.
    """

    def __init__(
        self,
        database_url: str | None = None,
        table: str = "cache",
        prefix: str = "",
        engine: AsyncEngine | None = None,
    ):
        """
        Initialize database store.

        Args:
            database_url: SQLAlchemy async URL (e.g. sqlite+aiosqlite:///./cache.db)
            table: Cache table name
            prefix: Key prefix applied to every entry
            engine: Pre-built engine to use instead of ``database_url``
        """
        if engine is None and not database_url:
            raise ValueError("database_url or engine is required")

        self.table_name = table
        self.prefix = prefix
        self._owns_engine = engine is None

        if engine is None:
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_async_engine(database_url, echo=False, connect_args=connect_args)
        self.engine: AsyncEngine = engine

        self._metadata = MetaData()
        self.table = build_cache_table(table, self._metadata)
        self._native_insert = _NATIVE_INSERTS.get(self.engine.dialect.name)

        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Create the cache table if it doesn't exist.

        Safe to call multiple times (idempotent).
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(self._metadata.create_all)
            except SQLAlchemyError as e:
                raise self._unavailable("initialize", e) from e

            self._initialized = True
            logger.debug("Cache table '%s' ready", self.table_name)

    # ------------ Helpers ------------

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _expiration(ttl: int | None) -> float | None:
        return time.time() + ttl if ttl and ttl > 0 else None

    @staticmethod
    def _is_expired(expiration: float | None) -> bool:
        return expiration is not None and expiration <= time.time()

    def _unavailable(self, operation: str, error: Exception, **details: Any) -> BackendUnavailableError:
        logger.error(
            f"Database {operation} failed: {error}",
            extra={"table": self.table_name, "operation": operation, "error": str(error), **details},
            exc_info=True,
        )
        return BackendUnavailableError("database", operation, {"table": self.table_name, "error": str(error), **details})

    async def _upsert(self, conn: AsyncConnection, cache_key: str, payload: str, expiration: float | None) -> None:
        if self._native_insert is not None:
            statement = self._native_insert(self.table).values(key=cache_key, value=payload, expiration=expiration)
            await conn.execute(
                statement.on_conflict_do_update(
                    index_elements=[self.table.c.key],
                    set_={"value": statement.excluded.value, "expiration": statement.excluded.expiration},
                )
            )
            return

        result = await conn.execute(
            update(self.table)
            .where(self.table.c.key == cache_key)
            .values(value=payload, expiration=expiration)
        )
        if result.rowcount == 0:
            await conn.execute(insert(self.table).values(key=cache_key, value=payload, expiration=expiration))

    async def _write(self, operation: str, write: Callable[[AsyncConnection], Awaitable[T]], **details: Any) -> T:
        """
        Run ``write`` in a transaction.

        A unique violation means another writer inserted one of the keys
        between our UPDATE and INSERT. The transaction is retried once, when
        the UPDATE finds the row.
        """
        await self.initialize()

        try:
            try:
                async with self.engine.begin() as conn:
                    return await write(conn)
            except IntegrityError:
                logger.debug(
                    "Concurrent insert during %s, retrying",
                    operation,
                    extra={"table": self.table_name, "operation": operation, **details},
                )

            async with self.engine.begin() as conn:
                return await write(conn)
        except SQLAlchemyError as e:
            raise self._unavailable(operation, e, **details) from e

    # ------------ Core Interface ------------

    async def get(self, key: str) -> Any | None:
        await self.initialize()
        cache_key = self._make_key(key)

        try:
            async with self.engine.begin() as conn:
                row = (
                    await conn.execute(
                        select(self.table.c.value, self.table.c.expiration).where(self.table.c.key == cache_key)
                    )
                ).first()

                if row is None:
                    return None

                if self._is_expired(row.expiration):
                    await conn.execute(delete(self.table).where(self.table.c.key == cache_key))
                    return None
        except SQLAlchemyError as e:
            raise self._unavailable("get", e, key=key) from e

        return json.loads(row.value)

    async def put(self, key: str, value: Any, ttl: int) -> None:
        await self._store(key, value, self._expiration(ttl), "put")

    async def forever(self, key: str, value: Any) -> None:
        await self._store(key, value, None, "forever")

    async def _store(self, key: str, value: Any, expiration: float | None, operation: str) -> None:
        cache_key = self._make_key(key)
        payload = json.dumps(value)

        async def write(conn: AsyncConnection) -> None:
            await self._upsert(conn, cache_key, payload, expiration)

        await self._write(operation, write, key=key)

    async def add(self, key: str, value: Any, ttl: int) -> bool:
        await self.initialize()
        cache_key = self._make_key(key)
        payload = json.dumps(value)
        expiration = self._expiration(ttl)

        try:
            # Take over an expired row first.
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    update(self.table)
                    .where(self.table.c.key == cache_key)
                    .where(self.table.c.expiration.is_not(None))
                    .where(self.table.c.expiration <= time.time())
                    .values(value=payload, expiration=expiration)
                )
                revived = result.rowcount
            if revived > 0:
                return True

            async with self.engine.begin() as conn:
                await conn.execute(insert(self.table).values(key=cache_key, value=payload, expiration=expiration))
            return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise self._unavailable("add", e, key=key) from e

    async def increment(self, key: str, by: int = 1) -> int:
        cache_key = self._make_key(key)

        async def write(conn: AsyncConnection) -> int:
            row = (
                await conn.execute(
                    select(self.table.c.value, self.table.c.expiration).where(self.table.c.key == cache_key)
                )
            ).first()

            if row is None or self._is_expired(row.expiration):
                current, expiration = 0, None
            else:
                current, expiration = json.loads(row.value), row.expiration

            if not isinstance(current, int):
                raise TypeError(f"Cannot increment non-integer value stored at '{key}'")

            new_value = current + by
            await self._upsert(conn, cache_key, json.dumps(new_value), expiration)
            return new_value

        return await self._write("increment", write, key=key)

    async def forget(self, key: str) -> None:
        await self.initialize()
        try:
            async with self.engine.begin() as conn:
                await conn.execute(delete(self.table).where(self.table.c.key == self._make_key(key)))
        except SQLAlchemyError as e:
            raise self._unavailable("forget", e, key=key) from e

    async def flush(self) -> None:
        """Delete every row, or only rows under this store's prefix."""
        await self.initialize()
        statement = delete(self.table)
        if self.prefix:
            statement = statement.where(self.table.c.key.startswith(self.prefix, autoescape=True))

        try:
            async with self.engine.begin() as conn:
                deleted = (await conn.execute(statement)).rowcount
        except SQLAlchemyError as e:
            raise self._unavailable("flush", e) from e

        logger.info(f"Flushed {deleted} rows from cache table '{self.table_name}'")

    def get_prefix(self) -> str:
        return self.prefix

    # ------------ Batch operations ------------

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        results: dict[str, Any] = {key: None for key in keys}
        if not keys:
            return results

        await self.initialize()
        by_cache_key = {self._make_key(key): key for key in keys}

        try:
            async with self.engine.begin() as conn:
                rows = await conn.execute(
                    select(self.table.c.key, self.table.c.value, self.table.c.expiration).where(
                        self.table.c.key.in_(list(by_cache_key))
                    )
                )

                expired: list[str] = []
                for row in rows:
                    if self._is_expired(row.expiration):
                        expired.append(row.key)
                    else:
                        results[by_cache_key[row.key]] = json.loads(row.value)

                if expired:
                    await conn.execute(delete(self.table).where(self.table.c.key.in_(expired)))
        except SQLAlchemyError as e:
            raise self._unavailable("get_many", e, key_count=len(keys)) from e

        return results

    async def put_many(self, items: dict[str, Any], ttl: int | None) -> None:
        if not items:
            return

        expiration = self._expiration(ttl)
        rows = [(self._make_key(key), json.dumps(value)) for key, value in items.items()]

        async def write(conn: AsyncConnection) -> None:
            for cache_key, payload in rows:
                await self._upsert(conn, cache_key, payload, expiration)

        await self._write("put_many", write, key_count=len(items), ttl=ttl)

    async def forget_many(self, keys: list[str]) -> None:
        if not keys:
            return

        await self.initialize()
        try:
            async with self.engine.begin() as conn:
                await conn.execute(delete(self.table).where(self.table.c.key.in_([self._make_key(k) for k in keys])))
        except SQLAlchemyError as e:
            raise self._unavailable("forget_many", e, key_count=len(keys)) from e

    async def close(self) -> None:
        """Close database connections gracefully."""
        if self._owns_engine:
            await self.engine.dispose()
        self._initialized = False
