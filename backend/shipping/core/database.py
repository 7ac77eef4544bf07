"""
Database engine and session management.

The API process and each Celery job build their engines through
`create_engine_for`, so pool settings are applied the same way in both.
SQLite URLs (local runs, tests) get no pool sizing.
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import Pool

from shipping.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.DEBUG}
    if make_url(url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_recycle=settings.DATABASE_POOL_RECYCLE,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=settings.DATABASE_POOL_PRE_PING,
    )
    return options


def create_engine_for(url: str) -> AsyncEngine:
    return create_async_engine(url, **engine_options(url))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Version checks on DeliveryOrder rely on objects staying loaded after commit
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(settings.DATABASE_URL)
AsyncSessionLocal = create_session_factory(engine)


@event.listens_for(Pool, "connect")
def on_connect(dbapi_conn, connection_rec):
    logger.debug(f"New database connection created: {id(dbapi_conn)}")


@event.listens_for(Pool, "invalidate")
def on_invalidate(dbapi_conn, connection_rec, exception):
    logger.warning(f"Connection invalidated: {id(dbapi_conn)}, reason: {exception}")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; handlers commit explicitly."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create missing tables. Alembic owns schema changes in deployed environments."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
