"""Async engine and session factory."""

import logging
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from signal_admin.config import settings

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)


def configure_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy, not the driver, emit BEGIN for SQLite connections.

    The driver otherwise starts transactions lazily at the first write, so
    reads made before it run outside the transaction and a read-then-write
    sequence is not isolated. With an explicit BEGIN the reads hold the
    shared lock, and a conflicting writer fails with "database is locked",
    which the transaction runner retries.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """
    Create the async engine for ``url`` (defaults to settings.database_url).

    Args:
        url: SQLAlchemy async database URL
        **kwargs: Passed through to create_async_engine (poolclass, echo, ...)

    Returns:
        Configured AsyncEngine
    """
    url = url or settings.database_url

    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout_seconds)
        engine = create_async_engine(url, connect_args=connect_args, **kwargs)
        # A shared in-memory connection can't hold overlapping explicit transactions
        if not _is_memory_sqlite(url):
            configure_sqlite_transactions(engine)
        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(echo=settings.debug)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session that is closed when the caller is done with it."""
    async with AsyncSessionLocal() as session:
        yield session
