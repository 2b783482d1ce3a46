"""
Test infrastructure for the Articles API.

Strategy
--------
- SQLite in-memory via aiosqlite, one fresh engine per test.  StaticPool
  keeps every session on the same connection, which an in-memory database
  needs (a new connection would see an empty database).
- The app's ``get_db`` and ``get_cache`` dependencies are overridden so
  requests use the per-test session factory and cache.
- Redis is replaced by ``InMemoryRedis``, an async double implementing the
  handful of ``redis.asyncio`` calls CacheManager makes (including
  ``scan_iter``).  ``KeyValueOnlyRedis`` drops ``scan_iter`` to model a
  store without key enumeration, and ``FailingRedis`` raises on every call.
"""
import fnmatch
import uuid

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from articles_api.cache import CacheManager
from articles_api.database import Base, get_db
from articles_api.dependencies import get_cache
from articles_api.main import app
from articles_api.middleware import install_query_counter
from articles_api.models import User

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Redis doubles
# ---------------------------------------------------------------------------

class KeyValueOnlyRedis:
    """get / set / delete only; no key enumeration."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self.ttls.pop(key, None)
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self):
        return True

    async def aclose(self):
        return None


class InMemoryRedis(KeyValueOnlyRedis):
    async def scan_iter(self, match=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


class FailingRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")

    async def delete(self, *keys):
        raise ConnectionError("redis down")

    async def scan_iter(self, match=None):
        raise ConnectionError("redis down")
        yield  # pragma: no cover


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables for each test."""
    engine_test = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    install_query_counter(engine_test)
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine_test
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine_test.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """A live AsyncSession for tests that drive services directly."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def redis_client() -> InMemoryRedis:
    return InMemoryRedis()


@pytest_asyncio.fixture
async def cache(redis_client) -> CacheManager:
    return CacheManager(client=redis_client, ttl=3600)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def async_client(session_factory, cache) -> AsyncClient:
    """httpx.AsyncClient wired to the app with the test database and cache."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def register(async_client):
    """Register a user over HTTP; returns ``(auth_headers, user_id)``."""

    async def _register(email: str, password: str = "Password123!"):
        resp = await async_client.post("/api/v1/auth/register", json={
            "email": email,
            "password": password,
            "first_name": "Test",
            "last_name": "User",
        })
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]["id"]

    return _register


@pytest_asyncio.fixture
async def make_user(db_session):
    """Insert users directly (no bcrypt round-trip) for service-level tests."""

    async def _make_user(email: str = "author@example.com") -> User:
        user = User(
            id=uuid.uuid4(),
            email=email,
            password="not-a-real-hash",
            first_name="Service",
            last_name="User",
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user
