"""
Database Connection Management
==============================

One async engine per process. Request handlers get a request-scoped session
through ``get_db_session``; the price mutator takes the session factory and
opens its own short sessions (ownership reads, then the write transaction).
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from price_engine.config.settings import Settings, get_settings
from price_engine.utils.errors import DatabaseError
from price_engine.utils.logger import SERVICE_NAME, get_logger

logger = get_logger(__name__)


def engine_options(settings: Settings) -> dict[str, Any]:
    """Pool and driver options for ``settings.database_url``."""
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if make_url(settings.database_url).get_backend_name() == "postgresql":
        options.update(
            pool_size=settings.db_pool_min,
            max_overflow=settings.db_pool_max - settings.db_pool_min,
            pool_recycle=3600,
            # Shows up in pg_stat_activity next to lock waits on products
            connect_args={"server_settings": {"application_name": SERVICE_NAME}},
        )
    return options


class DatabaseManager:
    """Process-wide holder of the engine and session factory."""

    _instance: "DatabaseManager | None" = None
    _engine: AsyncEngine | None = None
    _session_factory: async_sessionmaker[AsyncSession] | None = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    async def initialize(cls, settings: Settings | None = None) -> "DatabaseManager":
        """
        Create the engine and session factory (idempotent).

        Raises:
            DatabaseError: If the engine cannot be created
        """
        instance = cls()
        if instance._engine is not None:
            return instance

        settings = settings or get_settings()
        try:
            instance._engine = create_async_engine(
                settings.database_url, **engine_options(settings)
            )
            # Mutations read rows back after commit, and decide themselves
            # when pending rows are flushed against the unique indexes
            instance._session_factory = async_sessionmaker(
                instance._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise DatabaseError(
                message="Database initialization failed",
                details={"error": str(e)},
            ) from e

        logger.info(
            "Database engine initialized",
            backend=instance._engine.dialect.name,
            pool_min=settings.db_pool_min,
            pool_max=settings.db_pool_max,
        )
        return instance

    @classmethod
    async def close(cls) -> None:
        """Dispose of the engine; a no-op when never initialized."""
        instance = cls._instance
        if instance is None or instance._engine is None:
            return

        try:
            await instance._engine.dispose()
        except Exception as e:
            logger.error("Error closing database engine", error=str(e))
            raise DatabaseError(
                message="Failed to close database connection",
                details={"error": str(e)},
            ) from e
        finally:
            instance._engine = None
            instance._session_factory = None
            cls._instance = None
        logger.info("Database engine closed")

    @classmethod
    def get_session_factory(cls) -> async_sessionmaker[AsyncSession]:
        """
        Raises:
            DatabaseError: If the database is not initialized
        """
        instance = cls._instance
        if instance is None or instance._session_factory is None:
            raise DatabaseError(
                message="Database not initialized",
                details={"hint": "Call DatabaseManager.initialize() first"},
            )
        return instance._session_factory

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on success and rolled back on any error."""
        async with cls.get_session_factory()() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error("Database session error, rolled back", error=str(e))
                raise

    @classmethod
    async def health_check(cls) -> dict:
        """``SELECT 1`` round trip plus pool usage."""
        instance = cls._instance
        if instance is None or instance._engine is None:
            return {"status": "not_initialized", "error": "Database not initialized"}

        start = time.perf_counter()
        try:
            async with instance._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

        return {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "pool": instance._engine.pool.status(),
        }


async def init_database(settings: Settings | None = None) -> DatabaseManager:
    return await DatabaseManager.initialize(settings)


async def close_database() -> None:
    await DatabaseManager.close()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with DatabaseManager.get_session() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency returning the shared session factory."""
    return DatabaseManager.get_session_factory()


async def health_check() -> dict:
    return await DatabaseManager.health_check()
