"""Tests for the per-connection lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from livedraw.auth_providers.base import AuthResult
from livedraw.core.dispatcher import FanoutDispatcher
from livedraw.core.lifecycle import HEARTBEAT, ConnectionLifecycle, ConnectionState
from livedraw.core.registry import SubscriberRegistry
from livedraw.exceptions import AuthenticationError


class _StaticVerifier:
    name = "static"

    def __init__(self, result: AuthResult) -> None:
        self._result = result
        self.calls = 0

    async def authenticate(self, token: str) -> AuthResult:
        self.calls += 1
        return self._result


GOOD = AuthResult(
    authenticated=True,
    identity="alice",
    provider="static",
    claims={"sub": "alice", "name": "Alice", "email": "alice@example.com"},
)
BAD = AuthResult(authenticated=False, provider="static", error="expired")


class TestAuthenticate:
    async def test_missing_token(self):
        lifecycle = ConnectionLifecycle(SubscriberRegistry(), verifier=_StaticVerifier(GOOD))
        with pytest.raises(AuthenticationError, match="ID token required"):
            await lifecycle.authenticate(None)
        assert lifecycle.state is ConnectionState.CLOSED

    async def test_no_verifier_configured(self):
        lifecycle = ConnectionLifecycle(SubscriberRegistry())
        with pytest.raises(AuthenticationError, match="not configured"):
            await lifecycle.authenticate("token")

    async def test_rejected_token_never_registers(self):
        registry = SubscriberRegistry()
        lifecycle = ConnectionLifecycle(registry, verifier=_StaticVerifier(BAD))
        with pytest.raises(AuthenticationError, match="Authentication failed"):
            await lifecycle.authenticate("token")
        assert registry.count() == 0
        with pytest.raises(RuntimeError):
            await lifecycle.open()

    async def test_identity_from_claims(self):
        lifecycle = ConnectionLifecycle(SubscriberRegistry(), verifier=_StaticVerifier(GOOD))
        identity = await lifecycle.authenticate("token")
        assert identity.user_id == "alice"
        assert identity.username == "Alice"
        subscriber = await lifecycle.open()
        assert subscriber.identity == identity


class TestOpenClose:
    async def test_open_registers_and_runs_attach(self):
        registry = SubscriberRegistry()
        attached = []

        async def on_attach(sub):
            attached.append(sub)

        lifecycle = ConnectionLifecycle(registry, on_attach=on_attach)
        sub = await lifecycle.open()
        assert lifecycle.state is ConnectionState.ACTIVE
        assert registry.count() == 1
        assert attached == [sub]

    async def test_close_runs_once(self):
        registry = SubscriberRegistry()
        detached = []
        lifecycle = ConnectionLifecycle(registry, on_detach=detached.append)
        await lifecycle.open()

        assert lifecycle.close() is True
        assert lifecycle.close() is False
        assert registry.count() == 0
        assert len(detached) == 1
        assert lifecycle.state is ConnectionState.CLOSED

    async def test_context_manager_closes_on_error(self):
        registry = SubscriberRegistry()
        lifecycle = ConnectionLifecycle(registry)
        with pytest.raises(ValueError):
            async with lifecycle:
                await lifecycle.open()
                raise ValueError("boom")
        assert registry.count() == 0

    async def test_cancelled_task_still_cleans_up(self):
        registry = SubscriberRegistry()
        lifecycle = ConnectionLifecycle(registry, heartbeat_interval=60)
        started = asyncio.Event()

        async def run():
            async with lifecycle:
                await lifecycle.open()
                started.set()
                async for _ in lifecycle.outbound():
                    pass

        task = asyncio.create_task(run())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.count() == 0


class TestOutbound:
    async def test_heartbeat_after_quiet_interval(self):
        lifecycle = ConnectionLifecycle(SubscriberRegistry(), heartbeat_interval=0.05)
        await lifecycle.open()
        stream = lifecycle.outbound()
        assert await anext(stream) is HEARTBEAT
        await stream.aclose()
        lifecycle.close()

    async def test_yields_messages_in_order(self):
        registry = SubscriberRegistry()
        dispatcher = FanoutDispatcher(registry, "lifecycle-order", log_interval=3600)
        lifecycle = ConnectionLifecycle(registry, heartbeat_interval=5)
        await lifecycle.open()
        dispatcher.broadcast("one")
        dispatcher.broadcast("two")
        stream = lifecycle.outbound()
        assert [await anext(stream), await anext(stream)] == ["one", "two"]
        await stream.aclose()
        lifecycle.close()

    async def test_ends_after_slow_drop(self):
        registry = SubscriberRegistry(queue_size=2)
        dispatcher = FanoutDispatcher(registry, "lifecycle-drop", log_interval=3600)
        lifecycle = ConnectionLifecycle(registry, heartbeat_interval=5)
        await lifecycle.open()
        for n in range(3):
            dispatcher.broadcast(f"m{n}")

        received = [item async for item in lifecycle.outbound()]
        assert received == ["m0", "m1"]
        assert registry.count() == 0

    async def test_outbound_before_open(self):
        lifecycle = ConnectionLifecycle(SubscriberRegistry())
        with pytest.raises(RuntimeError):
            await anext(lifecycle.outbound())
