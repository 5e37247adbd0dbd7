"""
Pooled access to the relational store.

`ConnectionPool` wraps an SQLAlchemy ``AsyncEngine`` whose queue pool owns the
physical connections. Callers borrow a connection through
:meth:`ConnectionPool.connection`, which always hands it back, or use
:meth:`ConnectionPool.execute` for a single statement.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    ProgrammingError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.sql.expression import Executable

from ..config import Settings
from ..errors import PoolExhausted, QueryRejected, StoreUnavailable
from ..logging import get_logger

logger = get_logger(__name__)


def async_database_url(url: str) -> str:
    """Map a plain PostgreSQL URL onto the asyncpg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix) :]
    return url


def _store_message(e: DBAPIError) -> str:
    return str(e.orig) if e.orig is not None else str(e)


class ConnectionPool:
    """Bounded set of reusable store connections shared across requests."""

    def __init__(self, engine: AsyncEngine, *, timeout: float | None = None) -> None:
        self._engine = engine
        self.timeout = timeout

    @classmethod
    def from_url(
        cls,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 0,
        timeout: float = 30.0,
        recycle: int = -1,
        pre_ping: bool = False,
        echo: bool = False,
    ) -> ConnectionPool:
        engine = create_async_engine(
            async_database_url(database_url),
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=timeout,
            pool_recycle=recycle,
            pool_pre_ping=pre_ping,
            echo=echo,
        )
        logger.info(
            "Connection pool created",
            dialect=engine.dialect.name,
            pool_size=pool_size,
            max_overflow=max_overflow,
            timeout=timeout,
        )
        return cls(engine, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> ConnectionPool:
        return cls.from_url(
            settings.require_database_url(),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            timeout=settings.database_pool_timeout,
            recycle=settings.database_pool_recycle,
            pre_ping=settings.database_pool_pre_ping,
            echo=settings.sql_echo,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def size(self) -> int | None:
        """Configured number of persistent connections, if the pool is bounded."""
        size = getattr(self._engine.pool, "size", None)
        return size() if callable(size) else None

    @property
    def checked_out(self) -> int:
        """Connections currently borrowed from the pool."""
        checkedout = getattr(self._engine.pool, "checkedout", None)
        return checkedout() if callable(checkedout) else 0

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except PoolTimeoutError as e:
            logger.warning("Timed out waiting for a pooled connection", operation=operation)
            raise PoolExhausted(
                f"No database connection became available within {self.timeout}s"
            ) from e
        except (IntegrityError, ProgrammingError, DataError) as e:
            logger.info("Store rejected statement", operation=operation, error=_store_message(e))
            raise QueryRejected(f"Store rejected the statement: {_store_message(e)}") from e
        except DBAPIError as e:
            logger.error("Store error", operation=operation, error=_store_message(e))
            raise StoreUnavailable(f"Database is unavailable: {_store_message(e)}") from e
        except OSError as e:
            logger.error("Store unreachable", operation=operation, error=str(e))
            raise StoreUnavailable(f"Database is unavailable: {e}") from e

    async def acquire(self) -> AsyncConnection:
        """Check a connection out of the pool, waiting up to the pool timeout."""
        with self._translate_errors("acquire"):
            return await self._engine.connect()

    async def release(self, conn: AsyncConnection) -> None:
        """Return a connection to the free set; rolls back any open transaction."""
        if conn.closed:
            return
        with self._translate_errors("release"):
            # A cancelled caller must still give the connection back.
            await asyncio.shield(conn.close())

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Borrow a connection for the duration of the block."""
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def execute(
        self, query: Executable | str, params: Mapping[str, Any] | None = None
    ) -> list[RowMapping]:
        """Run one statement in its own transaction and return its rows."""
        statement = text(query) if isinstance(query, str) else query
        async with self.connection() as conn:
            with self._translate_errors("execute"):
                result = await conn.execute(statement, params)
                rows = list(result.mappings().all()) if result.returns_rows else []
                await conn.commit()
        return rows

    async def ping(self) -> None:
        """Round-trip a trivial statement; raises StoreUnavailable when the store is down."""
        await self.execute("SELECT 1")

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Connection pool disposed")


# Process-wide pool, created once at startup and disposed at shutdown
_pool: ConnectionPool | None = None


def init_pool(settings: Settings, *, force_reinit: bool = False) -> ConnectionPool:
    """Create the shared pool from settings (idempotent unless forced)."""
    global _pool
    if _pool is None or force_reinit:
        _pool = ConnectionPool.from_settings(settings)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.dispose()
        _pool = None
