"""
Database Module

Async SQLAlchemy engine, session factory and declarative Base.

Sessions:
--------
- API requests get one session per request through get_db()
- Background jobs open their own session from AsyncSessionLocal
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from raggy.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""
    pass


def create_engine_from_settings(url: str = None) -> AsyncEngine:
    """
    Create the async engine.

    asyncpg gets a per-statement timeout so a stuck query surfaces as an
    error instead of hanging the request.
    """
    url = url or settings.DATABASE_URL
    connect_args = {}

    if url.startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = settings.DB_COMMAND_TIMEOUT

    return create_async_engine(
        url,
        echo=settings.SQLALCHEMY_ECHO,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = create_engine_from_settings()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a database session.

    Usage:
        @router.get("/")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_models() -> None:
    """Create all tables (development shortcut for Alembic)."""
    import raggy.models  # noqa: F401  registers the models on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def check_db_connection() -> bool:
    """
    Check if the database is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def close_db_engine() -> None:
    """Dispose the connection pool during shutdown."""
    await engine.dispose()
    logger.info("Database engine disposed")
