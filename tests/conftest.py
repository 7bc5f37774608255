"""Shared test fixtures.

Each test gets its own file-backed SQLite database (aiosqlite) with the
schema created from the ORM metadata. Redis is never initialized, so the
rate limiter passes requests through and events are skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from questline.config import get_settings
from questline.database import close_db, create_schema, get_session_factory, init_db
from questline.db.retry import RetryPolicy
from questline.main import create_app


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[str, None]:
    """Initialize a fresh SQLite database for one test."""
    get_settings.cache_clear()
    url = f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}"
    await init_db(url)
    await create_schema()
    yield url
    await close_db()


@pytest_asyncio.fixture
async def session_factory(database: str) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need several independent sessions."""
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app (lifespan is not run)."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with millisecond backoff for concurrency tests."""
    return RetryPolicy(max_attempts=10, base_delay=0.02, max_delay=0.2, attempt_timeout=None)
