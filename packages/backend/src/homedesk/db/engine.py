"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The app factory stores the session factory on app.state so tests (and the
automation rule store) can swap in another database without patching.
"""

from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from homedesk.config import settings

# Connection pool: min 5, max 20 connections.
# echo=True in dev to see SQL queries.
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=15,
)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db(conn: HTTPConnection) -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    factory = getattr(conn.app.state, "session_factory", async_session_factory)
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()
