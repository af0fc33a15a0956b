"""
Async Database Session Management

One engine per process, built from settings. The booking ledger receives
the session factory; nothing else opens sessions directly.
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinic_bot.config import settings
from clinic_bot.db.models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """
    Get or create the process-wide engine.

    PostgreSQL gets the pool settings from config; SQLite keeps the
    driver's own pool, which does not accept them.
    """
    global _engine
    if _engine is not None:
        return _engine

    options = {"echo": settings.db_echo}
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
    _engine = create_async_engine(settings.database_url, **options)
    logger.info(f"Database engine created ({'sqlite' if settings.is_sqlite else 'postgresql'})")
    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # rows are converted to pydantic records before commit, nothing lazy-loads later
    return async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


async def init_database(engine: Optional[AsyncEngine] = None) -> None:
    """Create the doctors, bookings and counters tables if missing."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def check_database_connection() -> bool:
    """Run a trivial query; False on any database failure."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
    return True


async def close_database_connection() -> None:
    """Dispose of the engine on shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database connections closed")
