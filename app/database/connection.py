"""
Database Connection Module
Builds async SQLAlchemy engines and session factories.

Engines are created by the application factory and handed to the token
store explicitly; nothing here is initialised at import time.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.database.base import Base

# Disable SQLAlchemy engine query logging
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def create_database_engine(database_url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine with connection pooling.

    Args:
        database_url: SQLAlchemy async URL (postgresql+asyncpg, sqlite+aiosqlite)
        **kwargs: Extra engine options (e.g. poolclass for tests)
    """
    return create_async_engine(
        database_url,
        echo=False,  # Disable SQL query logging
        pool_pre_ping=True,  # Verify connections before use
        **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for creating new sessions bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database tables.

    Creates the token table (and its unique index) if missing.
    """
    # Register models on the metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """
    Close database connections.
    Call this during application shutdown.
    """
    await engine.dispose()
