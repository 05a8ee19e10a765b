"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl.api.main import create_app
from queuectl.config import Settings
from queuectl.db import Database


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest_asyncio.fixture
async def db(database_url: str) -> AsyncGenerator[Database]:
    """An initialized job store."""
    database = Database(database_url)
    await database.init()

    yield database

    await database.close()


@pytest_asyncio.fixture
async def db_session(db: Database) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with db.session() as session:
        yield session


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings."""
    return Settings(
        database_url=database_url,
        log_level="DEBUG",
        log_format="console",
        worker_poll_interval_seconds=0.01,
        worker_error_pause_seconds=0,
        worker_job_timeout_seconds=5,
        worker_stale_lock_seconds=10,
    )


@pytest.fixture
def t0() -> datetime:
    """A fixed reference time for deterministic scheduling."""
    return datetime(2025, 1, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def app(db: Database) -> FastAPI:
    """Create a FastAPI app bound to the test store."""
    return create_app(db)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
