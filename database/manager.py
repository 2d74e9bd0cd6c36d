"""
============================================================================
KUMASYNC - DATABASE MANAGER
============================================================================
Database management with connection pooling, session management,
and transaction handling.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config.settings import DatabaseSettings
from database.models import Base, Heartbeat, Monitor, Source, SyncHistory
from exceptions.database import DatabaseConnectionError
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Database manager for handling all database operations.
    Implements connection pooling, session management, and transaction handling.
    """

    def __init__(self, config: DatabaseSettings, database_url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            config: Database settings section
            database_url: Explicit URL overriding the one built from settings
        """
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = database_url or config.url
        self.echo = config.echo
        self.pool_size = config.pool_size

        logger.info(f"DatabaseManager initialized with URL: {self._mask_password(self.database_url)}")

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured backend is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def dialect_name(self) -> str:
        """Dialect name used to pick dialect specific upsert statements."""
        if self.engine is not None:
            return self.engine.dialect.name
        return "sqlite" if self.is_sqlite else "postgresql"

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.

        Args:
            url: Database URL

        Returns:
            Masked URL
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _engine_kwargs(self) -> Dict[str, Any]:
        """Build engine keyword arguments for the configured backend."""
        if self.is_sqlite:
            return {
                "echo": self.echo,
                "poolclass": NullPool,
                "connect_args": {"timeout": 30},
            }

        return {
            "echo": self.echo,
            "pool_size": self.config.pool_size,
            "max_overflow": self.config.max_overflow,
            "pool_timeout": self.config.pool_timeout,
            "pool_recycle": self.config.pool_recycle,
            "pool_pre_ping": self.config.pool_pre_ping,
        }

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.
        Creates all tables if they don't exist.
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(self.database_url, **self._engine_kwargs())

                self._register_event_listeners()

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except (SQLAlchemyError, OSError) as e:
                logger.exception(f"Failed to initialize database: {e}")
                raise DatabaseConnectionError(
                    f"Failed to initialize database: {e}",
                    database=self._mask_password(self.database_url),
                    cause=e,
                )

    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""

        is_sqlite = self.is_sqlite

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Enable foreign keys so source deletion cascades on SQLite."""
            if is_sqlite:
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """
        Create all database tables.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    async def drop_tables(self) -> None:
        """
        Drop all database tables.
        WARNING: This will delete all data!
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("All database tables dropped")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Yields:
            AsyncSession instance

        Example:
            async with db_manager.session() as session:
                source = await session.get(Source, source_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Session rolled back: {e}")
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError, DatabaseConnectionError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def get_database_info(self) -> Dict[str, Any]:
        """
        Get database information and statistics.

        Returns:
            Dictionary with database info
        """
        try:
            async with self.session() as session:
                source_count = await session.scalar(select(func.count(Source.id)))
                monitor_count = await session.scalar(select(func.count()).select_from(Monitor))
                heartbeat_count = await session.scalar(select(func.count()).select_from(Heartbeat))
                run_count = await session.scalar(select(func.count(SyncHistory.id)))

                return {
                    "status": "connected",
                    "database_url": self._mask_password(self.database_url),
                    "dialect": self.dialect_name,
                    "sources": source_count,
                    "monitors": monitor_count,
                    "heartbeats": heartbeat_count,
                    "sync_runs": run_count,
                    "checked_at": TimeHelper.to_iso(TimeHelper.utc_now()),
                }
        except SQLAlchemyError as e:
            logger.error(f"Failed to get database info: {e}")
            return {
                "status": "error",
                "error": str(e),
                "checked_at": TimeHelper.to_iso(TimeHelper.utc_now()),
            }

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")
            self._is_initialized = False
