"""Process-wide wiring of the ticker and chat components.

One :class:`AppContext` is built at import of the API module and stored on
``app.state``.  Nothing else in the package holds global mutable state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from livedraw.auth_providers.base import AuthProvider
from livedraw.auth_providers.factory import create_provider
from livedraw.config import Settings
from livedraw.core.chat import ChatRoom
from livedraw.core.dispatcher import FanoutDispatcher
from livedraw.core.encoder import SnapshotEncoder
from livedraw.core.feed import ResultFeed
from livedraw.core.history import HistoryWindow
from livedraw.core.models import LotteryResult, resolve_zone
from livedraw.core.presence import PresenceTracker
from livedraw.core.registry import SubscriberRegistry
from livedraw.core.snapshot import SnapshotStore
from livedraw.storage.database import Database

logger = logging.getLogger("livedraw.context")


def create_verifier(settings: Settings) -> AuthProvider | None:
    """Chat identity verifier for the configured mode, or None if it cannot be built."""
    try:
        return create_provider(
            settings.auth_mode,
            google_client_id=settings.google_client_id,
            jwt_secret=settings.jwt_secret,
            jwt_audience=settings.jwt_audience,
        )
    except ValueError as e:
        logger.error("Chat sign-in disabled: %s", e)
        return None


@dataclass
class AppContext:
    settings: Settings
    db: Database
    verifier: AuthProvider | None
    results: SubscriberRegistry
    feed: ResultFeed
    history: HistoryWindow
    chat_registry: SubscriberRegistry
    presence: PresenceTracker
    chat: ChatRoom

    @classmethod
    def build(cls, settings: Settings) -> AppContext:
        zone = resolve_zone(settings.history_timezone)
        db = Database(settings.db_path, zone_name=settings.history_timezone)

        results = SubscriberRegistry(settings.result_queue_size)
        results_dispatcher = FanoutDispatcher(
            results, "results", log_interval=settings.broadcast_log_interval
        )
        history = HistoryWindow(
            db.insert_result_history,
            zone,
            start=settings.history_window_start,
            minutes=settings.history_window_minutes,
        )
        feed = ResultFeed(
            SnapshotStore(LotteryResult.initial(zone)),
            SnapshotEncoder(),
            results_dispatcher,
            history,
        )

        chat_registry = SubscriberRegistry(settings.chat_queue_size)
        chat_dispatcher = FanoutDispatcher(
            chat_registry, "chat", log_interval=settings.broadcast_log_interval
        )
        presence = PresenceTracker(chat_dispatcher, persist=db.set_online)

        return cls(
            settings=settings,
            db=db,
            verifier=create_verifier(settings),
            results=results,
            feed=feed,
            history=history,
            chat_registry=chat_registry,
            presence=presence,
            chat=ChatRoom(db, chat_dispatcher, presence),
        )

    async def startup(self) -> None:
        await self.db.connect()
        reset = await self.db.reset_presence()
        if reset:
            logger.info("Cleared stale online flags for %d user(s)", reset)

    async def shutdown(self) -> None:
        closed = self.results.close_all() + self.chat_registry.close_all()
        if closed:
            logger.info("Closed %d open stream(s)", closed)
        await self.presence.drain()
        await self.db.close()
