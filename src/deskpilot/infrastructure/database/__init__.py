"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 async: asyncpg against PostgreSQL in production,
aiosqlite in tests and local development.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from deskpilot.config import settings
from deskpilot.core import ConsentRequiredException


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself on SQLite connections.

    The sqlite3 driver defers BEGIN until the first DML statement, so a
    SAVEPOINT issued first would open (and its RELEASE commit) the outer
    transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Should be called during application startup.

    Args:
        database_url: Override for ``settings.database_url``

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    url = database_url or settings.database_url
    engine_options = {"echo": settings.debug}
    # Pool sizing does not apply to aiosqlite
    if not url.startswith("sqlite"):
        # asyncpg wants ssl= rather than libpq's sslmode=
        url = url.replace("sslmode=", "ssl=")
        engine_options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )

    _engine = create_async_engine(url, **engine_options)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(_engine)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    """Dispose of the engine during application shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session dependency for FastAPI routes.

    Commits when the route returns, rolls back when it raises. A request
    suspended for consent is still committed so it can be resumed.

    Usage:
        @router.get("/tickets/{ticket_id}")
        async def get_ticket(ticket_id: str, db: AsyncSession = Depends(get_session)):
            ...
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except ConsentRequiredException:
            # The suspended AI request outlives the 202 response
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session context manager for background jobs.

    Usage:
        async with get_session_context() as session:
            await pipeline.run(ticket_id)
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except ConsentRequiredException:
            # Keep the suspended AI request
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """
    Create all database tables.

    Development and tests only; production schemas are migrated separately.
    """
    # Register every model on Base.metadata
    import deskpilot.tickets.infrastructure.models  # noqa: F401
    import deskpilot.privacy.infrastructure.models  # noqa: F401
    import deskpilot.agents.infrastructure.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
