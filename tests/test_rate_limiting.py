"""Tests for rate limiting on chat sign-in."""

from __future__ import annotations

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from livedraw.api.app import app, limiter

SIGN_IN = "/api/burma2d/chat/auth/google"


@pytest_asyncio.fixture
async def rl_client(context):
    """HTTP test client with rate limiting ENABLED."""
    limiter.enabled = True
    limiter._limiter.storage.reset()

    # Lower the sign-in limit from 30/min to 2/min for fast testing
    sign_in_limits = limiter._route_limits.get("livedraw.api.routes.chat.google_auth", [])
    original_amounts = {}
    for lim in sign_in_limits:
        original_amounts[id(lim)] = lim.limit.amount
        lim.limit.amount = 2

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    for lim in sign_in_limits:
        lim.limit.amount = original_amounts[id(lim)]
    limiter.enabled = False


class TestRateLimitEnforcement:
    async def test_rate_limit_returns_429(self, rl_client, token_for):
        for _ in range(2):
            resp = await rl_client.post(SIGN_IN, json={"id_token": token_for("alice")})
            assert resp.status_code == 200

        resp = await rl_client.post(SIGN_IN, json={"id_token": token_for("alice")})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"

        data = resp.json()
        assert data["error"] == "rate_limit_exceeded"
        assert "message" in data
        assert "request_id" in data


class TestRateLimitDisabled:
    async def test_disabled_limiter_allows_unlimited(self, client, token_for):
        for _ in range(5):
            resp = await client.post(SIGN_IN, json={"id_token": token_for("alice")})
            assert resp.status_code == 200
