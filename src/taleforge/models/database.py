"""Async database connection management.

Provides the SQLAlchemy async engine for the on-device SQLite database.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_local_engine(database_url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Create an async engine for the local store.

    Args:
        database_url: SQLite async connection URL (sqlite+aiosqlite://...)
        **engine_kwargs: Additional arguments passed to create_async_engine

    Returns:
        The async engine. The caller owns it and must dispose it.
    """
    engine_kwargs.setdefault("echo", False)
    engine = create_async_engine(database_url, **engine_kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


async def create_tables(engine: AsyncEngine) -> None:
    """Create all local tables that do not exist yet."""
    # Register models on Base.metadata
    from . import offline  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_engine(engine: AsyncEngine) -> None:
    """Close database connections.

    Should be called during application shutdown.
    """
    await engine.dispose()
