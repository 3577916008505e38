"""
User API Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any `app` import so the
       module-level `settings` singleton sees them.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock AsyncSession (no real DB needed)
    ├── sample_user: ORM-like user row
    ├── memory_store: In-memory rate-limit counter store
    ├── sqlite_db: Real SQLite database (aiosqlite) with the schema created
    └── make_client: Factory for HTTPX AsyncClients talking to a fresh app
"""

import os
import tempfile

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Applied BEFORE any app import: settings are read once at import time
_TEST_DB_DIR = tempfile.mkdtemp(prefix="userapi_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db"
os.environ["APP_ENV"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["EMAIL_API_URL"] = ""
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timezone  # noqa: E402
from typing import Any, AsyncGenerator, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.config import Settings  # noqa: E402
from app.database import Base, dispose_engine, get_engine  # noqa: E402
from app.middleware.pipeline import Request  # noqa: E402
from app.models.user import User  # noqa: E402,F401
from app.services.counter_store import InMemoryCounterStore  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        async def test_get_user(mock_db_session):
            mock_db_session.execute.return_value.scalar_one_or_none.return_value = user
            result = await user_service.get_user(mock_db_session, user_id)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def sample_user():
    """A MagicMock shaped like a `users` row."""
    now = datetime.now(timezone.utc)
    user = MagicMock()
    user.id = uuid4()
    user.email = "ada@example.com"
    user.name = "Ada Lovelace"
    user.created_at = now
    user.updated_at = now
    return user


@pytest.fixture
def memory_store():
    return InMemoryCounterStore()


@pytest.fixture
def make_request():
    """Factory for pipeline Requests with sensible defaults."""

    def _make(
        method: str = "GET",
        path: str = "/users",
        headers: Optional[dict] = None,
        body: bytes = b"",
        **kwargs: Any,
    ) -> Request:
        return Request(method=method, path=path, headers=headers or {}, body=body, **kwargs)

    return _make


@pytest_asyncio.fixture
async def sqlite_db() -> AsyncGenerator[None, None]:
    """
    Creates every table in the SQLite test database and drops them afterwards.

    The engine is disposed after each test because aiosqlite connections are
    bound to the event loop that opened them.
    """
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await dispose_engine()


@pytest_asyncio.fixture
async def make_client():
    """
    Factory for HTTPX AsyncClients bound to a freshly created app.

    Usage:
        async def test_health(make_client):
            client = await make_client()
            response = await client.get("/health")
    """
    from app.main import create_app

    clients = []

    async def _make(app_settings: Optional[Settings] = None, counter_store=None) -> AsyncClient:
        app = create_app(app_settings=app_settings, counter_store=counter_store)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
