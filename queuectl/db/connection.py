"""
Database connection management.
Handles the async SQLAlchemy engine and session creation for the job store.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, insert, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from queuectl.config import get_settings
from queuectl.constants import CONFIG_BACKOFF_BASE, CONFIG_MAX_RETRIES
from queuectl.db.models import Base, ConfigEntry
from queuectl.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
    """Use WAL so readers never block the single writer."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


class Database:
    """
    Handle on the job store.

    Owns the async engine and the session factory. One instance is created
    at process startup and passed to the worker loop, the CLI commands and
    the HTTP app.
    """

    def __init__(
        self,
        database_url: str | None = None,
        busy_timeout_seconds: float | None = None,
        echo: bool = False,
    ):
        """
        Initialize the handle. No connection is made until init().

        Args:
            database_url: SQLAlchemy URL. Defaults to the configured one.
            busy_timeout_seconds: How long a connection waits on a locked
                database before giving up.
            echo: Log every SQL statement.
        """
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self.busy_timeout_seconds = (
            busy_timeout_seconds
            if busy_timeout_seconds is not None
            else settings.database_busy_timeout_seconds
        )
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    async def init(self) -> None:
        """
        Open the engine, create the schema and seed the config defaults.

        Safe to call against an existing database.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        if self._engine is not None:
            return

        engine = create_async_engine(
            self.database_url,
            echo=self._echo,
            connect_args={"timeout": self.busy_timeout_seconds},
        )
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)

        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except OperationalError as e:
            await engine.dispose()
            raise StoreUnavailableError(str(e.orig)) from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        await self._seed_config()
        logger.info("Database connection initialized", extra={"url": self.database_url})

    async def _seed_config(self) -> None:
        settings = get_settings()
        defaults = {
            CONFIG_MAX_RETRIES: str(settings.default_max_retries),
            CONFIG_BACKOFF_BASE: str(settings.default_backoff_base),
        }
        async with self.session() as session:
            result = await session.execute(select(ConfigEntry.key))
            existing = set(result.scalars().all())
            missing = [
                {"key": key, "value": value}
                for key, value in defaults.items()
                if key not in existing
            ]
            if missing:
                await session.execute(insert(ConfigEntry), missing)

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for a unit of work.

        Commits on success and rolls back on error. A locked or unreachable
        database surfaces as StoreUnavailableError.

        Yields:
            AsyncSession: An async database session.
        """
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except OperationalError as e:
                await session.rollback()
                raise StoreUnavailableError(str(e.orig)) from e
            except Exception:
                await session.rollback()
                raise
