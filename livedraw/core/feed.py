"""Result ticker: producer updates in, encoded snapshots out to every viewer."""

from __future__ import annotations

import logging
from typing import Any

from livedraw.core.dispatcher import BroadcastResult, FanoutDispatcher
from livedraw.core.encoder import SnapshotEncoder
from livedraw.core.history import HistoryWindow
from livedraw.core.models import LiveView, LotteryResult, ResultUpdate
from livedraw.core.registry import Subscriber, SubscriberRegistry
from livedraw.core.snapshot import SnapshotStore

logger = logging.getLogger("livedraw.feed")


class ResultFeed:
    def __init__(
        self,
        store: SnapshotStore,
        encoder: SnapshotEncoder,
        dispatcher: FanoutDispatcher,
        history: HistoryWindow | None = None,
    ) -> None:
        self._store = store
        self._encoder = encoder
        self._dispatcher = dispatcher
        self._history = history

    @property
    def registry(self) -> SubscriberRegistry:
        return self._dispatcher.registry

    async def apply_update(self, update: ResultUpdate) -> LotteryResult:
        """Replace the snapshot, push it to every viewer, then run the archive gate."""
        result = self._store.update(update.to_result())
        delivery = self.broadcast()
        logger.info(
            "Result updated: live=%s status=%s",
            result.live_number,
            result.service_status,
            extra={"channel": "results", "sent": delivery.sent, "dropped": delivery.dropped},
        )
        if self._history is not None:
            await self._history.check(result)
        return result

    def broadcast(self) -> BroadcastResult:
        message = self._encoder.encode(self._store.read(), self.registry.count())
        return self._dispatcher.broadcast(message)

    def current(self) -> dict[str, Any]:
        """Current snapshot with the live viewer count."""
        snapshot = self._store.read()
        return LiveView(**snapshot.model_dump(), active_viewers=self.registry.count()).model_dump()

    def initial_message(self) -> str:
        return self._encoder.cached_or_encode(self._store.read(), self.registry.count())

    async def attach(self, subscriber: Subscriber) -> None:
        """First paint: the cached snapshot, to this subscriber only."""
        self._dispatcher.send(subscriber, self.initial_message())
