"""Async database engine and session management.

Uses SQLAlchemy 2.0 async with asyncpg driver.
Graceful degradation: if PostgreSQL is unavailable, the app continues without DB
and every generation falls through to freshly generated or fallback content.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = make_engine(settings.database_url)
async_session_factory = make_session_factory(engine)


async def ping_db(session_factory: async_sessionmaker[AsyncSession] | None = None) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        async with (session_factory or async_session_factory)() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.debug("Database ping failed: %s", str(e)[:100])
        return False


async def init_db(bind: AsyncEngine | None = None) -> bool:
    """Create tables if they don't exist. Returns True on success."""
    from app.models import Base  # noqa: F811

    try:
        async with (bind or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
        return True
    except Exception as e:
        logger.warning("Database unavailable — continuing without persistence: %s", str(e)[:200])
        return False


async def close_db(bind: AsyncEngine | None = None):
    """Dispose engine connections on shutdown."""
    await (bind or engine).dispose()
    logger.info("Database connections closed")
