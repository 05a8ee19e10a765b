"""
FastAPI dependencies.
"""

from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl.db import Database


def get_database(request: Request) -> Database:
    """The store handle attached to the app."""
    return request.app.state.db


async def get_async_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency for getting async database sessions.

    Yields:
        AsyncSession: A session that commits when the request succeeds.
    """
    async with get_database(request).session() as session:
        yield session
