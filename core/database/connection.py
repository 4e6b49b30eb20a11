# PostgreSQL connection management
import asyncio
import time
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text, inspect
from contextlib import asynccontextmanager
from typing import AsyncIterator

from core.logging import get_database_logger_safe, get_error_logger_safe

db_logger = get_database_logger_safe("database_manager")
error_logger = get_error_logger_safe("database_manager")

# The base class for all SQLAlchemy models
Base = declarative_base()


class DatabaseManager:
    """Manages the connection to the PostgreSQL database"""

    def __init__(self, db_url: str, environment: str = "development", schema_management: str = "auto"):
        engine_kwargs = {"echo": False, "pool_pre_ping": True}
        if not db_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=20, max_overflow=30, pool_recycle=3600)
        self._engine = create_async_engine(db_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            class_=AsyncSession
        )
        self._environment = environment
        self._schema_management = schema_management

    @property
    def engine(self):
        return self._engine

    async def init(self):
        """Prepare the schema according to the configured management mode"""
        if self._schema_management == "migrations_only":
            await self._verify_schema_present()
            db_logger.info("Database ready - schema managed externally")
            return

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        db_logger.info("Database initialized with create_all", environment=self._environment)

    async def _verify_schema_present(self):
        """Fail fast when the managed schema has not been created"""
        async with self._engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
        missing = set(Base.metadata.tables) - tables
        if missing:
            raise RuntimeError(f"Database schema not initialized, missing tables: {sorted(missing)}")

    async def verify_connection(self) -> bool:
        """Verify database connection is ready"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            db_logger.error("Database connection verification failed", error=str(e))
            return False

    async def wait_for_ready(self, timeout: int = 30, check_interval: float = 1.0):
        """Wait for database to be ready with timeout"""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        while (loop.time() - start_time) < timeout:
            if await self.verify_connection():
                db_logger.info("Database connection verified")
                return True

            db_logger.info("Database not ready, waiting...")
            await asyncio.sleep(check_interval)

        raise RuntimeError(f"Database not ready after {timeout} seconds")

    async def shutdown(self):
        """Closes the database connection pool"""
        await self._engine.dispose()
        db_logger.info("Database connection pool closed.")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Provides a new database session WITHOUT auto-commit.

        Callers own the transaction boundary and commit explicitly.
        """
        session_start_time = time.time()
        async with self._session_factory() as session:
            try:
                yield session
            except Exception as session_error:
                await session.rollback()
                error_logger.error("Database session error with rollback",
                                   error=str(session_error),
                                   session_duration_ms=(time.time() - session_start_time) * 1000,
                                   environment=self._environment)
                raise
            finally:
                db_logger.debug("Database session closed",
                                operation="session_close",
                                session_duration_ms=(time.time() - session_start_time) * 1000)
