"""
LandlordComply Database Module

One async engine per process, created on first use from settings.database_url
(already normalized to sqlite+aiosqlite / postgresql+asyncpg by config).

Transactions are per unit of work: a request (get_db) or a startup/background
task (get_db_session) gets one session, every service call inside it shares
that session, and the whole thing commits once at the end or rolls back on
the first error. Services flush but never commit.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from landlordcomply.core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES / ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    """
    Get or create the async engine.

    SQLite (development, tests): NullPool, a fresh connection per session,
    foreign keys enforced. PostgreSQL: queue pool sized from settings.
    """
    global _engine
    if _engine is None:
        settings = get_settings()

        if is_sqlite(settings.database_url):
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                poolclass=NullPool,
                connect_args={"check_same_thread": False},
            )
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True,
            )
        logger.info("Database engine created (%s)", _engine.url.get_backend_name())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Sessions keep loaded objects usable after commit and never autoflush;
    services flush explicitly when they need generated ids.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work outside a route (startup seeding, tests).

    Usage:
        async with get_db_session() as db:
            await seed_jurisdictions(db)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Rolled back database session", exc_info=True)
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: the request's unit of work.

    A case change, its checklist ticks and its audit event are written
    through this one session and commit together once the handler returns;
    a domain error anywhere in the handler discards all of them.
    """
    async with get_db_session() as session:
        yield session


async def create_tables() -> None:
    from landlordcomply.models import models  # noqa: F401  (registers tables)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def init_db() -> None:
    """Create missing tables on startup; there are no migrations."""
    await create_tables()


async def close_db() -> None:
    """Dispose the engine on shutdown; the next use builds a new one."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
