"""Registry of connected output channels.

Each connection owns one :class:`Subscriber`: a bounded :class:`asyncio.Queue`
of encoded messages plus an optional chat identity.  The registry only keeps
a non-owning association keyed by handle and closes the channel exactly once
when the handle is removed.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from dataclasses import dataclass, field

from livedraw.core.models import Identity

# Queue sentinel that tells the reader the channel is closed.
CLOSED = None


@dataclass(eq=False)
class Subscriber:
    """One client's delivery channel."""

    queue: asyncio.Queue[str | None]
    identity: Identity | None = None
    handle: int = 0
    closed: bool = field(default=False)

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity is not None else None

    def offer(self, message: str) -> None:
        """Non-blocking enqueue. Raises :class:`asyncio.QueueFull` when the queue is full."""
        self.queue.put_nowait(message)

    def close(self) -> bool:
        """Mark the channel closed. Returns False if it was already closed."""
        if self.closed:
            return False
        self.closed = True
        try:
            self.queue.put_nowait(CLOSED)
        except asyncio.QueueFull:
            # Reader sees closed + empty once it drains what is buffered.
            pass
        return True


class SubscriberRegistry:
    """Concurrent-safe set of subscribers guarded by one coarse lock."""

    def __init__(self, queue_size: int = 50) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscriber] = {}
        self._lock = threading.Lock()
        self._handles = itertools.count(1)

    def new_subscriber(self, identity: Identity | None = None) -> Subscriber:
        """Create an unregistered subscriber with a queue of the configured capacity."""
        return Subscriber(queue=asyncio.Queue(maxsize=self._queue_size), identity=identity)

    def add(self, subscriber: Subscriber) -> int:
        with self._lock:
            subscriber.handle = next(self._handles)
            self._subscribers[subscriber.handle] = subscriber
        return subscriber.handle

    def remove(self, handle: int) -> bool:
        """Deregister *handle* and close its channel. Returns False if it was not registered."""
        with self._lock:
            subscriber = self._subscribers.pop(handle, None)
            if subscriber is None:
                return False
            subscriber.close()
        return True

    def snapshot(self) -> list[Subscriber]:
        """Return a read-only copy of the current subscribers."""
        with self._lock:
            return list(self._subscribers.values())

    def count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def identities(self) -> list[Identity]:
        """Distinct identities of registered subscribers, in connection order."""
        seen: dict[str, Identity] = {}
        with self._lock:
            for subscriber in self._subscribers.values():
                identity = subscriber.identity
                if identity is not None and identity.user_id not in seen:
                    seen[identity.user_id] = identity
        return list(seen.values())

    def has_identity(self, user_id: str) -> bool:
        with self._lock:
            return any(s.user_id == user_id for s in self._subscribers.values())

    def close_all(self) -> int:
        """Remove and close every subscriber. Used on shutdown."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
            for subscriber in subscribers:
                subscriber.close()
        return len(subscribers)
