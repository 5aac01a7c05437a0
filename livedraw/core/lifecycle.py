"""Per-connection control loop shared by the SSE and WebSocket transports.

A connection moves through ``CONNECTING -> AUTHENTICATING -> ACTIVE ->
CLOSING -> CLOSED``.  Cleanup is synchronous so it still runs to
completion when the connection task has been cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum

from livedraw.auth_providers.base import AuthProvider
from livedraw.core.models import Identity
from livedraw.core.registry import CLOSED, Subscriber, SubscriberRegistry
from livedraw.exceptions import AuthenticationError

logger = logging.getLogger("livedraw.lifecycle")

AttachHook = Callable[[Subscriber], Awaitable[None]]
DetachHook = Callable[[Subscriber], None]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class _Heartbeat:
    def __repr__(self) -> str:
        return "HEARTBEAT"


# Yielded by ConnectionLifecycle.outbound() after a quiet interval.
HEARTBEAT = _Heartbeat()


class ConnectionLifecycle:
    """Owns one subscriber from registration to removal.

    Usage::

        lifecycle = ConnectionLifecycle(registry, on_attach=feed.attach)
        async with lifecycle:
            await lifecycle.open()
            async for item in lifecycle.outbound():
                ...
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        *,
        verifier: AuthProvider | None = None,
        on_attach: AttachHook | None = None,
        on_detach: DetachHook | None = None,
        heartbeat_interval: float = 15.0,
    ) -> None:
        self._registry = registry
        self._verifier = verifier
        self._on_attach = on_attach
        self._on_detach = on_detach
        self._heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.CONNECTING
        self.identity: Identity | None = None
        self.subscriber: Subscriber | None = None

    async def authenticate(self, token: str | None) -> Identity:
        """Verify *token* and remember the identity.

        Raises:
            AuthenticationError: no token, no verifier configured, or the
                verifier rejected the token.  The connection is CLOSED.
        """
        self.state = ConnectionState.AUTHENTICATING
        if not token:
            self.state = ConnectionState.CLOSED
            raise AuthenticationError("ID token required")
        if self._verifier is None:
            self.state = ConnectionState.CLOSED
            raise AuthenticationError("Identity verification is not configured")

        result = await self._verifier.authenticate(token)
        if not result.authenticated:
            self.state = ConnectionState.CLOSED
            logger.info("Connection rejected by %s: %s", result.provider, result.error)
            raise AuthenticationError("Authentication failed")

        self.identity = result.to_identity()
        return self.identity

    async def open(self) -> Subscriber:
        """Register the subscriber and run the attach hook."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            msg = f"Cannot open a connection in state {self.state.value}"
            raise RuntimeError(msg)

        subscriber = self._registry.new_subscriber(self.identity)
        self._registry.add(subscriber)
        self.subscriber = subscriber
        self.state = ConnectionState.ACTIVE
        if self._on_attach is not None:
            await self._on_attach(subscriber)
        return subscriber

    def close(self) -> bool:
        """Deregister and run the detach hook. Only the first call has any effect."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return False
        self.state = ConnectionState.CLOSING
        try:
            if self.subscriber is not None:
                self._registry.remove(self.subscriber.handle)
                if self._on_detach is not None:
                    self._on_detach(self.subscriber)
        finally:
            self.state = ConnectionState.CLOSED
        return True

    async def outbound(self) -> AsyncIterator[str | _Heartbeat]:
        """Yield queued messages, or :data:`HEARTBEAT` after a quiet interval.

        Stops once the channel is closed and everything buffered before the
        close has been yielded.
        """
        subscriber = self.subscriber
        if subscriber is None:
            msg = "Connection is not open"
            raise RuntimeError(msg)

        queue = subscriber.queue
        while True:
            if subscriber.closed and queue.empty():
                return
            try:
                message = await asyncio.wait_for(queue.get(), timeout=self._heartbeat_interval)
            except asyncio.TimeoutError:
                yield HEARTBEAT
                continue
            if message is CLOSED:
                return
            yield message

    async def __aenter__(self) -> ConnectionLifecycle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
