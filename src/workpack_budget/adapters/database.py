"""Async database engine and session dependency for the SQL data source."""

from collections.abc import AsyncGenerator
from functools import lru_cache

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workpack_budget.settings import get_settings

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Return the shared async engine, created on first use from Settings."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=settings.database_pool_size,
        pool_pre_ping=True,
    )


@lru_cache(maxsize=1)
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one read session per request from the shared pool."""
    async with get_session_maker()() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections if the engine was ever created."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        get_engine.cache_clear()
        get_session_maker.cache_clear()


async def database_health_check() -> bool:
    """Return True when a trivial query succeeds on the shared engine."""
    try:
        async with get_engine().connect() as connection:
            await connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("database_health_check_failed", error=str(exc))
        return False
    return True
