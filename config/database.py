from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import logging

from config.settings import settings

logger = logging.getLogger(__name__)

_async_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_async_engine() -> AsyncEngine:
    """Create the async engine on first use"""
    global _async_engine
    if _async_engine is None:
        async_database_url = settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
        _async_engine = create_async_engine(
            async_database_url,
            poolclass=NullPool,
            echo=settings.LOG_LEVEL == "DEBUG"
        )
    return _async_engine


def get_session_factory() -> async_sessionmaker:
    """Session factory bound to the async engine"""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False
        )
    return _session_factory


@asynccontextmanager
async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for async database sessions"""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Initialize database connections"""
    try:
        async with get_async_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection initialized")
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        raise


async def close_db():
    """Close database connections"""
    global _async_engine, _session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _session_factory = None
    logger.info("🔌 Database connections closed")
