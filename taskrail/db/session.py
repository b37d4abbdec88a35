"""
SQLAlchemy database configuration and session management.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from taskrail.core.config import settings

# Naming convention for constraints and indexes
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    metadata = metadata


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for the task log database."""
    engine_kwargs = {
        "echo": settings.debug,
        # Validate connections before use so stale ones are replaced
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if not database_url.startswith("sqlite"):
        engine_kwargs.update({
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
        })
    return create_async_engine(database_url, **engine_kwargs)


# Create async engine only if database URL is configured
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

if settings.database_url:
    engine = build_engine(settings.database_url)

    # Create session factory
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Yields:
        AsyncSession: Database session

    Raises:
        RuntimeError: If database is not configured
    """
    if async_session_maker is None:
        raise RuntimeError("Database is not configured. Please set DATABASE_URL environment variable.")

    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            # Rollback on any error to prevent leaving transactions open
            await session.rollback()
            raise
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Release pooled connections on shutdown."""
    if engine is not None:
        await engine.dispose()
