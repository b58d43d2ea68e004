"""
Database Connection and Session Management

Async SQLAlchemy 2.0 engine and session factory. The matcher reads the
session inventory through it and the conversation store writes one
state+context row per turn.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config import settings
from app.models.database import Base


# Connections are opened per unit of work; pooling is left to PgBouncer
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    poolclass=NullPool,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work: commit on success, roll back and re-raise on failure.

    Usage:
        async with get_db_context() as db:
            conversation = await db.get(Conversation, conversation_id)
            conversation.state = "collecting_preferences"

    Yields:
        AsyncSession: Database session
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db() -> None:
    """
    Create all tables. Development only; deployed schemas are migrated.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine during application shutdown."""
    await engine.dispose()


async def check_db_health() -> bool:
    """
    Check database connectivity for readiness probes.

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
