"""
CRUD App: Test Configuration (conftest.py)
==========================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── test_settings:    Settings for a test app (insecure cookies, fast limits)
    ├── db_engine:        In-memory SQLite engine with the schema created
    ├── db_session:       AsyncSession on db_engine for service tests
    ├── mock_db_session:  AsyncMock session for pure unit tests
    ├── identity_provider: Fake Google token + userinfo endpoints (httpx.MockTransport)
    ├── app:              create_app() wired to the fixtures above
    ├── test_client:      HTTPX AsyncClient talking to ``app`` over ASGITransport
    ├── login:            callable running the OAuth handshake on a client
    └── logged_in_client: test_client after a full OAuth login
"""

import os

# Override settings for testing BEFORE any crud imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET"] = "test-secret-key-that-is-at-least-32-chars"
os.environ["SESSION_SECURE"] = "false"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import json
from typing import AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crud.auth.oauth import GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL
from crud.config import Settings
from crud.database import Base, enable_sqlite_foreign_keys
from crud.main import create_app
from crud.middleware.rate_limit import RateLimiter
from crud import models  # noqa: F401

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"
GOOD_CODE = "good-code"
ACCESS_TOKEN = "test-access-token"

DEFAULT_PROFILE = {
    "id": "108234567890",
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "picture": "https://example.com/ada.png",
    "verified_email": True,
}


class MockIdentityProvider:
    """
    Stand-in for Google's token and userinfo endpoints.

    Tests tweak the attributes to simulate provider failures:
        token_status     status of the token endpoint (200 → access token)
        userinfo_status  status of the userinfo endpoint
        userinfo_body    raw body override (e.g. invalid JSON)
        profile          JSON profile returned on success
    """

    def __init__(self):
        self.token_status = 200
        self.userinfo_status = 200
        self.userinfo_body: Optional[bytes] = None
        self.profile: Dict = dict(DEFAULT_PROFILE)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith(GOOGLE_TOKEN_URL):
            form = parse_qs(request.content.decode())
            if self.token_status != 200 or form.get("code") != [GOOD_CODE]:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": ACCESS_TOKEN, "token_type": "Bearer"})

        if url.startswith(GOOGLE_USERINFO_URL):
            if request.headers.get("authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": "unauthorized"})
            if self.userinfo_body is not None:
                return httpx.Response(self.userinfo_status, content=self.userinfo_body)
            return httpx.Response(self.userinfo_status, content=json.dumps(self.profile).encode())

        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ══════════════════════════════════════════════════════════════════════════
# Settings & Database
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        secret=TEST_SECRET,
        session_secure=False,
        google_client_id="test-client-id",
        google_client_secret="test-client-secret",
        oauth_redirect_url="http://test/auth/callback",
        rate_limit_per_minute=1000,
        read_timeout=5,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite engine shared by every session of one test.

    StaticPool keeps a single connection so the in-memory database survives
    between sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.get.return_value = None
        await user_service.get_user(mock_db_session, 12345)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Application & Clients
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def identity_provider() -> MockIdentityProvider:
    return MockIdentityProvider()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(limit=1000)


@pytest_asyncio.fixture
async def app(test_settings, db_engine, identity_provider, rate_limiter):
    """
    A fresh app per test.

    ASGITransport does not run the lifespan, so everything the lifespan would
    provide is injected here instead.
    """
    oauth_http = httpx.AsyncClient(transport=identity_provider.transport())
    application = create_app(
        test_settings,
        db_engine=db_engine,
        oauth_http_client=oauth_http,
        rate_limiter=rate_limiter,
    )
    yield application
    await oauth_http.aclose()


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient configured to talk to the test app.

    Redirects are NOT followed so tests can assert on 302 Location headers.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def run_login(client: AsyncClient, code: str = GOOD_CODE) -> httpx.Response:
    start = await client.get("/auth/google/login")
    state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
    return await client.get("/auth/callback", params={"state": state, "code": code})


@pytest.fixture
def login():
    """
    The OAuth handshake against the mock provider, as a callable.

    Usage:
        response = await login(test_client)              # callback response
        response = await login(test_client, code="bad")  # failed exchange
    """
    return run_login


@pytest_asyncio.fixture
async def logged_in_client(test_client):
    response = await run_login(test_client)
    assert response.status_code == 302
    assert response.headers["location"] == "/"
    return test_client
