"""Test fixtures — a fresh in-memory database per test.

Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite) on a
   single shared connection (StaticPool), with foreign keys switched on
   so ON DELETE CASCADE behaves as it does on Postgres.
2. The schema is created from the ORM metadata.
3. get_db is overridden to hand every request its own session from that
   engine, exactly like production. Services really commit and roll back.
4. Tests that need to look at the store directly open another session
   from `session_factory` once the requests are done.

Auth is never mocked: users register through the API and use real JWTs.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from fourme.db.engine import build_engine, get_db
from fourme.db.models import Base
from fourme.main import app

TEST_DB_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture()
async def engine():
    engine = build_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client with the app's get_db pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client: AsyncClient, username: str, password: str = "secret123") -> dict:
    """Register a user through the API; returns the token response."""
    r = await client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": password,
        },
    )
    assert r.status_code == 201, r.text
    return r.json()


def bearer(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['token']}"}


@pytest_asyncio.fixture()
async def alice(client):
    """Auth headers for a freshly registered user 'alice'."""
    return bearer(await register(client, "alice"))


@pytest_asyncio.fixture()
async def bob(client):
    """Auth headers for a second, unrelated user 'bob'."""
    return bearer(await register(client, "bob"))
