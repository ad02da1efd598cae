"""Database connection and session management."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from orgroster.core.config import get_settings
from orgroster.core.structured_logging import log_json

settings = get_settings()
logger = logging.getLogger(__name__)


def enable_sqlite_savepoints(sync_engine: Engine) -> None:
    """Let SQLAlchemy drive BEGIN/SAVEPOINT on SQLite and enforce foreign keys.

    The sqlite3 driver otherwise emits its own BEGIN lazily, which breaks
    nested transactions and ON DELETE CASCADE.
    """

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine_from_url(database_url: str) -> AsyncEngine:
    """Create the async engine for a configured database URL."""
    url = database_url.replace("postgresql://", "postgresql+asyncpg://")
    # Use NullPool for testing environments to avoid connection pool issues
    created = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool if "test" in url else None,
    )
    if created.dialect.name == "sqlite":
        enable_sqlite_savepoints(created.sync_engine)
    return created


engine = create_engine_from_url(settings.database_url)

_slow_query_threshold_ms = float(os.getenv("SLOW_QUERY_MS", "0") or "0")
if _slow_query_threshold_ms > 0:

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _before_cursor_execute(
        conn, cursor, statement, parameters, context, executemany
    ) -> None:
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _after_cursor_execute(
        conn, cursor, statement, parameters, context, executemany
    ) -> None:
        start = getattr(context, "_query_start_time", None)
        if start is None:
            return

        duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms < _slow_query_threshold_ms:
            return

        max_len = 2000
        stmt = str(statement)
        if len(stmt) > max_len:
            stmt = stmt[: max_len - 3] + "..."

        log_json(
            logger,
            logging.WARNING,
            "slow_query",
            duration_ms=round(duration_ms, 2),
            statement=stmt,
        )

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session.

    The membership manager commits or rolls back each operation itself;
    this wrapper only guarantees the session is closed.

    Usage:
        async for db in get_db():
            manager = MembershipManager(db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
