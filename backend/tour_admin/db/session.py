"""
Async engine and sessions for the document store
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlparse

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, text

from tour_admin.core.settings import Settings
from tour_admin.db import models  # noqa: F401  registers the documents table

logger = logging.getLogger(__name__)

# sync URL scheme -> async driver scheme
ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"))


class DatabaseManager:
    """Owns the async engine and session factory; one per ServiceContext"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None
        self._connection_stats: Dict[str, Any] = {
            "total_connections": 0,
            "active_connections": 0,
            "failed_connections": 0,
            "last_health_check": None,
            "health_status": "unknown",
        }

    def _prepare_database_url(self) -> str:
        url = self.settings.DB_URL
        if not url or not urlparse(url).scheme:
            raise ValueError(f"Invalid DB_URL: {url!r}")

        for prefix, replacement in ASYNC_DRIVERS.items():
            if url.startswith(prefix):
                return replacement + url[len(prefix):]
        return url

    def _create_engine(self) -> AsyncEngine:
        url = self._prepare_database_url()
        options: Dict[str, Any] = {"echo": self.settings.DB_ECHO, "pool_pre_ping": True}

        if url.startswith("postgresql"):
            options.update(
                pool_size=self.settings.DB_POOL_SIZE,
                max_overflow=self.settings.DB_MAX_OVERFLOW,
                pool_timeout=self.settings.DB_POOL_TIMEOUT,
                pool_recycle=self.settings.DB_POOL_RECYCLE,
            )
        elif _is_memory_sqlite(url):
            # in-memory SQLite lives exactly as long as its one connection
            options.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        engine = create_async_engine(url, **options)
        self._track_connections(engine)
        logger.info(f"Database engine created for {engine.url.get_backend_name()}")
        return engine

    def _track_connections(self, engine: AsyncEngine) -> None:
        stats = self._connection_stats

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            stats["total_connections"] += 1
            stats["active_connections"] += 1

        @event.listens_for(engine.sync_engine, "close")
        def on_close(dbapi_connection, connection_record):
            stats["active_connections"] = max(0, stats["active_connections"] - 1)

        @event.listens_for(engine.sync_engine, "handle_error")
        def on_error(exception_context):
            stats["failed_connections"] += 1
            logger.error(f"Database error: {exception_context.original_exception}")

    async def initialize(self) -> None:
        """Create the engine and session factory, then make sure the documents table exists"""
        self.engine = self._create_engine()
        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        await self.init_db()
        logger.info("Database manager initialized")

    async def init_db(self) -> None:
        if not self.engine:
            raise RuntimeError("Database engine not initialized")
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Session that is rolled back on error and always closed"""
        if not self.async_session:
            raise RuntimeError("Database manager not initialized")

        session = self.async_session()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside a transaction that commits when the block succeeds"""
        async with self.get_session() as session:
            async with session.begin():
                yield session

    async def health_check(self) -> Dict[str, Any]:
        started = time.time()
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            self._connection_stats["health_status"] = "unhealthy"
            return {
                "status": "unhealthy",
                "error": str(e),
                "checks": {"connectivity": {"status": "fail"}},
                "connection_stats": self.get_connection_stats(),
            }

        self._connection_stats["health_status"] = "healthy"
        self._connection_stats["last_health_check"] = time.time()
        checks: Dict[str, Any] = {
            "connectivity": {"status": "pass", "response_time": f"{time.time() - started:.3f}s"},
        }
        pool = self.engine.pool
        if hasattr(pool, "checkedout"):
            checks["connection_pool"] = {"checked_out": pool.checkedout(), "checked_in": pool.checkedin()}

        return {"status": "healthy", "checks": checks, "connection_stats": self.get_connection_stats()}

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    def get_connection_stats(self) -> Dict[str, Any]:
        return self._connection_stats.copy()
