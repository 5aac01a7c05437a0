"""Chat room: message posting, inbound frame routing and connection hooks.

Shared by the SSE and WebSocket chat transports so both see the same
subscribers, presence and block filtering.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as FrameError

from livedraw.core.dispatcher import FanoutDispatcher
from livedraw.core.models import (
    ChatMessage,
    EventType,
    Identity,
    PingFrame,
    SendMessageFrame,
    chat_event,
    parse_inbound,
)
from livedraw.core.presence import PresenceTracker
from livedraw.core.registry import Subscriber, SubscriberRegistry
from livedraw.exceptions import BannedError, ValidationError
from livedraw.storage.database import Database

logger = logging.getLogger("livedraw.chat")

MAX_MESSAGE_LENGTH = 2000


class ChatRoom:
    def __init__(
        self, db: Database, dispatcher: FanoutDispatcher, presence: PresenceTracker
    ) -> None:
        self._db = db
        self._dispatcher = dispatcher
        self._presence = presence

    @property
    def registry(self) -> SubscriberRegistry:
        return self._dispatcher.registry

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    def online_count(self) -> int:
        return self.registry.count()

    async def post_message(self, identity: Identity, text: str) -> ChatMessage:
        """Record and broadcast a message from *identity*.

        Recipients who have blocked the sender are skipped.

        Raises:
            ValidationError: empty or oversized message.
            BannedError: the sender is banned; nothing is broadcast.
        """
        if not text or not text.strip():
            raise ValidationError("Message must not be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")
        if await self._db.is_banned(identity.user_id):
            raise BannedError()

        message = await self._db.insert_message(identity, text)
        blockers = await self._db.get_blocker_ids(identity.user_id)
        delivery = self._dispatcher.broadcast(
            chat_event(EventType.MESSAGE, message),
            skip=lambda s: s.user_id in blockers,
        )
        logger.info(
            "Message %d from %s",
            message.id,
            identity.user_id,
            extra={
                "channel": "chat",
                "user_id": identity.user_id,
                "sent": delivery.sent,
                "skipped": delivery.skipped,
            },
        )
        return message

    async def handle_inbound(self, subscriber: Subscriber, raw: str | bytes) -> None:
        """Route one frame received from *subscriber*'s WebSocket."""
        try:
            frame = parse_inbound(raw)
        except FrameError as exc:
            logger.warning(
                "Dropping malformed frame from %s: %s",
                subscriber.user_id,
                exc.errors(include_url=False),
                extra={"user_id": subscriber.user_id},
            )
            return

        if isinstance(frame, PingFrame):
            self._dispatcher.send(subscriber, chat_event(EventType.PONG))
        elif isinstance(frame, SendMessageFrame):
            await self._send_from(subscriber, frame.message)

    async def _send_from(self, subscriber: Subscriber, text: str) -> None:
        identity = subscriber.identity
        if identity is None:
            msg = "Anonymous subscribers cannot post"
            raise RuntimeError(msg)
        try:
            await self.post_message(identity, text)
        except BannedError as exc:
            self._dispatcher.send(
                subscriber, chat_event(EventType.BANNED, {"message": exc.message, "banned": True})
            )
        except ValidationError as exc:
            self._dispatcher.send(subscriber, chat_event(EventType.ERROR, {"message": exc.message}))

    # --- Connection hooks ---

    async def attach(self, subscriber: Subscriber) -> None:
        """Persist the user, greet the new connection, then announce presence."""
        identity = subscriber.identity
        if identity is None:
            msg = "Chat subscribers need an identity"
            raise RuntimeError(msg)
        await self._db.upsert_user(identity)
        self._dispatcher.send(
            subscriber,
            chat_event(
                EventType.CONNECTED,
                {"user_id": identity.user_id, "online_count": self.online_count()},
            ),
        )
        self._presence.mark_online(identity)

    def detach(self, subscriber: Subscriber) -> None:
        """Mark the user offline once their last connection is gone.

        While the user still has other connections only the online count
        changed, so the remaining subscribers get a fresh ``online`` event.
        """
        identity = subscriber.identity
        if identity is None:
            return
        if self.registry.has_identity(identity.user_id):
            self._presence.refresh()
        else:
            self._presence.mark_offline(identity)
