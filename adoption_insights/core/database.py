"""
Database configuration and session management
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, StaticPool, AsyncAdaptedQueuePool
import logging

from adoption_insights.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str = settings.DATABASE_URL) -> AsyncEngine:
    """
    Create the async engine for the configured database
    """
    if database_url.startswith("sqlite"):
        # In-memory databases must share one connection to see the same tables
        if ":memory:" in database_url:
            return create_async_engine(
                database_url,
                echo=settings.DB_ECHO,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(
            database_url,
            echo=settings.DB_ECHO,
            poolclass=NullPool,
        )

    if settings.is_testing:
        # NullPool doesn't accept pool parameters
        return create_async_engine(
            database_url,
            echo=settings.DB_ECHO,
            poolclass=NullPool,
        )

    return create_async_engine(
        database_url,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        poolclass=AsyncAdaptedQueuePool,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine: AsyncEngine = build_engine()

# Create async session factory
async_session = build_session_factory(engine)

# Create declarative base
Base = declarative_base()


async def init_db(bind: AsyncEngine = engine):
    """
    Create the events and failed_events tables if they are missing
    """
    # Import models so they are registered on the metadata
    from adoption_insights import models  # noqa: F401

    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db(bind: AsyncEngine = engine):
    """
    Close database connections
    """
    await bind.dispose()
    logger.info("Database connections closed")

