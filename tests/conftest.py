"""Shared fixtures for livedraw tests."""

from __future__ import annotations

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient

from livedraw.api.app import app, limiter
from livedraw.auth_providers.jwt_provider import SharedSecretJWTProvider
from livedraw.config import settings
from livedraw.core.context import AppContext
from livedraw.storage.database import Database

TEST_SECRET = "test-secret-key-for-hs256-signing-only"


def _fresh_context(tmp_path, name: str) -> AppContext:
    """Context wired to its own database file and an HS256 chat verifier."""
    test_settings = settings.model_copy(
        update={
            "db_path": str(tmp_path / name),
            "heartbeat_interval": 0.5,
            "ws_heartbeat_interval": 0.5,
            "broadcast_log_interval": 0.0,
        }
    )
    ctx = AppContext.build(test_settings)
    ctx.verifier = SharedSecretJWTProvider(TEST_SECRET)
    return ctx


@pytest.fixture
def token_for():
    """Build a signed chat identity token for *sub*."""

    def _make(sub: str, name: str = "", picture: str = "") -> str:
        claims = {"sub": sub, "email": f"{sub}@example.com", "name": name, "picture": picture}
        return jwt.encode(claims, TEST_SECRET, algorithm="HS256")

    return _make


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh database for each test."""
    database = Database(tmp_path / "test.db")
    await database.connect()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def context(tmp_path):
    """Fresh application context installed on the app."""
    ctx = _fresh_context(tmp_path, "api_test.db")
    app.state.context = ctx
    await ctx.startup()
    yield ctx
    await ctx.shutdown()


@pytest_asyncio.fixture
async def client(context):
    """HTTP test client wired to a fresh context."""
    # Disable rate limiter for tests
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def ws_client(tmp_path):
    """Synchronous client that runs the app lifespan, for WebSocket tests."""
    ctx = _fresh_context(tmp_path, "ws_test.db")
    app.state.context = ctx
    limiter.enabled = False
    with TestClient(app) as tc:
        yield tc
