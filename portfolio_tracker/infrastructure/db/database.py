"""
Database Configuration
SQLAlchemy async setup (PostgreSQL in production, SQLite in tests)
"""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from portfolio_tracker.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def normalize_async_url(url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+asyncpg://"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def normalize_sync_url(url: str) -> str:
    """Blocking driver URL for Alembic (psycopg2 for PostgreSQL, pysqlite for SQLite)"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


def build_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    url = normalize_async_url(database_url or settings.DATABASE_URL)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
    )


engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker] = None


def get_session_factory() -> async_sessionmaker:
    """Lazily create the process engine and session factory"""
    global engine, async_session_factory
    if async_session_factory is None:
        engine = build_engine(echo=settings.DEBUG)
        async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session
    Use in FastAPI routes as:
    async def my_route(db: AsyncSession = Depends(get_db))
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database (create tables) when AUTO_CREATE_TABLES is set"""
    if not settings.AUTO_CREATE_TABLES:
        return
    get_session_factory()
    async with engine.begin() as conn:
        # Import models to register them on Base.metadata
        from portfolio_tracker.infrastructure.db import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def close_db() -> None:
    """Close database connections"""
    global engine, async_session_factory
    if engine is not None:
        await engine.dispose()
    engine = None
    async_session_factory = None
