"""Chat presence: who is online, and the events that announce changes."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

from livedraw.core.dispatcher import BroadcastResult, FanoutDispatcher
from livedraw.core.models import EventType, Identity, chat_event

logger = logging.getLogger("livedraw.presence")

PersistPresence = Callable[[str, bool], Awaitable[None]]


class PresenceTracker:
    """Tracks online identities with set semantics.

    Every mark call pushes a full ``online`` refresh to the chat channel.
    A real transition additionally pushes ``user_joined`` or ``user_left``.
    The online flag is written through to storage in a background task so
    the mark call itself never waits on the database.
    """

    def __init__(
        self, dispatcher: FanoutDispatcher, persist: PersistPresence | None = None
    ) -> None:
        self._dispatcher = dispatcher
        self._registry = dispatcher.registry
        self._persist = persist
        self._online: dict[str, Identity] = {}
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    def mark_online(self, identity: Identity) -> bool:
        """Mark *identity* online. Returns True if this was a transition."""
        with self._lock:
            joined = identity.user_id not in self._online
            self._online[identity.user_id] = identity
        if joined:
            self._announce(EventType.USER_JOINED, identity)
        self.refresh()
        self._write_through(identity.user_id, True)
        return joined

    def mark_offline(self, identity: Identity) -> bool:
        """Mark *identity* offline. Returns True if this was a transition."""
        with self._lock:
            left = self._online.pop(identity.user_id, None) is not None
        if left:
            self._announce(EventType.USER_LEFT, identity)
        self.refresh()
        self._write_through(identity.user_id, False)
        return left

    def list_online(self, excluding: str | None = None) -> list[Identity]:
        """Online identities ordered by display name, optionally leaving one user out."""
        with self._lock:
            users = [i for uid, i in self._online.items() if uid != excluding]
        return sorted(users, key=lambda i: (i.username.lower(), i.user_id))

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._online

    def refresh(self) -> BroadcastResult:
        """Broadcast the full online list to every chat subscriber."""
        users = [i.model_dump() for i in self.list_online()]
        message = chat_event(EventType.ONLINE, {"count": self._registry.count(), "users": users})
        return self._dispatcher.broadcast(message)

    def _announce(self, event_type: EventType, identity: Identity) -> None:
        data = {
            "user_id": identity.user_id,
            "username": identity.username,
            "count": self._registry.count(),
        }
        self._dispatcher.broadcast(chat_event(event_type, data))

    # --- Write-through ---

    def _write_through(self, user_id: str, online: bool) -> None:
        if self._persist is None:
            return
        task = asyncio.get_running_loop().create_task(self._persist_safely(user_id, online))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _persist_safely(self, user_id: str, online: bool) -> None:
        try:
            await self._persist(user_id, online)
        except Exception:
            logger.warning("Failed to persist presence for %s", user_id, exc_info=True)

    async def drain(self) -> None:
        """Wait for pending presence writes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
