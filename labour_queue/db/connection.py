"""
Database connection management.
Handles async SQLAlchemy engine and session factory creation.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from labour_queue.config import Settings, get_settings
from labour_queue.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Create the async database engine.

    Args:
        settings: Settings to read the database URL from. Defaults to the
            cached application settings.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    settings = settings or get_settings()

    if settings.database_url.startswith("sqlite"):
        # SQLite connections do not pool across processes
        return create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.log_level == "DEBUG",
        )

    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.log_level == "DEBUG",
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to an engine.

    Labours loaded through these sessions stay usable after commit, so the
    queue engine can hand them to callers outside the session.

    Args:
        engine: The async engine to bind.

    Returns:
        async_sessionmaker: The session factory.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """
    Create all tables that do not exist yet.
    Production databases are migrated with Alembic instead.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_engine(engine: AsyncEngine) -> None:
    """
    Dispose of the engine's connection pool.
    Should be called on worker shutdown.
    """
    await engine.dispose()
    logger.info("Database connection closed")
