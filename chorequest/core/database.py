"""
Async engine and session handling (SQLAlchemy 2.0).

The engine and session maker are process globals set up by
``init_database`` from the API lifespan, the scheduler, the CLI or a
test fixture. PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite)
for tests and local runs.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
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


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so SAVEPOINT nests inside the outer transaction."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


async def init_database(database_url: Optional[str] = None) -> None:
    """Create the engine and session maker; ``database_url`` overrides settings."""
    global async_engine, async_session_maker

    url = database_url or settings.database_url
    async_engine = create_async_engine(
        DatabaseConfig.get_database_url(url),
        **DatabaseConfig.get_engine_config(url)
    )
    if url.startswith("sqlite"):
        _enable_sqlite_savepoints(async_engine)

    async_session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    logger.info("Database ready", dialect=async_engine.dialect.name)


async def close_database() -> None:
    global async_engine, async_session_maker

    if async_engine is not None:
        await async_engine.dispose()
        logger.info("Database connections closed")

    async_engine = None
    async_session_maker = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scoped to one unit of work.

    Commits when the block exits normally and rolls back when it raises,
    so a request, a scheduled job or a CLI command is a single
    transaction.

        async with get_async_session() as session:
            await RecurringQuestGenerator(session).generate()
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
    """Schema creation and liveness checks for the admin CLI and /health."""

    @staticmethod
    async def create_tables() -> None:
        """Create every table from the model metadata (migrations are preferred)."""
        from chorequest.models import Base

        if async_engine is None:
            raise RuntimeError("Database not initialized")

        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created", tables=len(Base.metadata.tables))

    @staticmethod
    async def health_check() -> bool:
        """Run ``SELECT 1``; False (and an error log) when it fails."""
        started = time.perf_counter()
        try:
            async with get_async_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

        logger.debug("Database health check passed", latency_ms=round((time.perf_counter() - started) * 1000, 2))
        return True
