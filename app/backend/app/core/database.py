"""
Async SQLAlchemy engine and sessions.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs and
tests. One engine per process, created by ``init_database`` during startup.
"""

from typing import Any, AsyncGenerator, Dict, Optional
from contextlib import asynccontextmanager
import time

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings, DatabaseConfig
from .logging import get_logger

logger = get_logger(__name__)

async_engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(database_url: Optional[str] = None) -> None:
    """Create the engine and session factory, replacing any previous ones."""
    global async_engine, async_session_maker

    if async_engine is not None:
        await close_database()

    url = DatabaseConfig.get_database_url(database_url)
    driver = url.split("://", 1)[0]

    async_engine = create_async_engine(url, echo=settings.debug, **DatabaseConfig.get_engine_config(url))

    async_session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Database engine ready", driver=driver)


async def close_database() -> None:
    global async_engine, async_session_maker

    if async_engine is None:
        return

    engine, async_engine, async_session_maker = async_engine, None, None
    await engine.dispose()
    logger.info("Database engine disposed")


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commits when the block exits cleanly and rolls back
    when it raises.

        async with get_async_session() as db:
            await get_game_service(db).open_case(...)
    """
    if async_session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Schema and diagnostics helpers for the CLI, the app and tests."""

    @staticmethod
    def _require_engine() -> AsyncEngine:
        if async_engine is None:
            raise RuntimeError("Database not initialized")
        return async_engine

    @staticmethod
    async def create_tables() -> None:
        from app.models import Base

        engine = DatabaseManager._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created", tables=len(Base.metadata.tables))

    @staticmethod
    async def drop_tables() -> None:
        from app.models import Base

        engine = DatabaseManager._require_engine()
        logger.warning("Dropping all database tables")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    @staticmethod
    async def table_counts() -> Dict[str, int]:
        """Row count per mapped table."""
        from app.models import Base

        counts = {}
        async with get_async_session() as session:
            for name, table in sorted(Base.metadata.tables.items()):
                counts[name] = await session.scalar(select(func.count()).select_from(table))
        return counts

    @staticmethod
    async def health_check() -> Dict[str, Any]:
        """Round-trip a trivial query; never raises."""
        if async_engine is None:
            return {"status": "unhealthy", "error": "not initialized"}

        started = time.perf_counter()
        try:
            async with get_async_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "driver": async_engine.url.drivername,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }
