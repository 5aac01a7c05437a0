"""Fan-out dispatcher: push one encoded message to every subscriber without blocking.

Delivery uses ``put_nowait`` on each subscriber queue.  A subscriber whose
queue is full is considered too slow to keep up: it is removed from the
registry and its channel closed, which ends that connection.  Other
subscribers and the producing coroutine are never held up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from prometheus_client import Counter, Gauge

from livedraw.core.registry import Subscriber, SubscriberRegistry

logger = logging.getLogger("livedraw.fanout")

FANOUT_SENT = Counter(
    "livedraw_fanout_sent_total", "Messages enqueued to subscribers", ["channel"]
)
FANOUT_SKIPPED = Counter(
    "livedraw_fanout_skipped_total", "Deliveries skipped by a recipient filter", ["channel"]
)
FANOUT_DROPPED = Counter(
    "livedraw_fanout_dropped_total", "Subscribers dropped because their queue was full", ["channel"]
)
SUBSCRIBERS = Gauge("livedraw_subscribers", "Currently registered subscribers", ["channel"])

SkipPredicate = Callable[[Subscriber], bool]


@dataclass
class BroadcastResult:
    sent: int = 0
    skipped: int = 0
    dropped: int = 0

    def __iadd__(self, other: BroadcastResult) -> BroadcastResult:
        self.sent += other.sent
        self.skipped += other.skipped
        self.dropped += other.dropped
        return self


class FanoutDispatcher:
    """Delivers messages to the subscribers of one registry."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        channel: str,
        log_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._channel = channel
        self._log_interval = log_interval
        self._clock = clock
        self._last_log = clock()
        self._window = BroadcastResult()
        self._broadcasts = 0

    @property
    def registry(self) -> SubscriberRegistry:
        return self._registry

    @property
    def channel(self) -> str:
        return self._channel

    def broadcast(self, message: str, skip: SkipPredicate | None = None) -> BroadcastResult:
        """Enqueue *message* to every subscriber that *skip* does not exclude."""
        result = BroadcastResult()
        for subscriber in self._registry.snapshot():
            if subscriber.closed:
                continue
            if skip is not None and skip(subscriber):
                result.skipped += 1
                continue
            if self._deliver(subscriber, message):
                result.sent += 1
            else:
                result.dropped += 1
        self._record(result)
        return result

    def send(self, subscriber: Subscriber, message: str) -> bool:
        """Enqueue *message* to a single subscriber with the same drop-on-full policy."""
        if subscriber.closed:
            return False
        delivered = self._deliver(subscriber, message)
        self._record(BroadcastResult(sent=int(delivered), dropped=int(not delivered)))
        return delivered

    def _deliver(self, subscriber: Subscriber, message: str) -> bool:
        try:
            subscriber.offer(message)
        except asyncio.QueueFull:
            self._registry.remove(subscriber.handle)
            return False
        return True

    def _record(self, result: BroadcastResult) -> None:
        FANOUT_SENT.labels(self._channel).inc(result.sent)
        FANOUT_SKIPPED.labels(self._channel).inc(result.skipped)
        subscribers = self._registry.count()
        SUBSCRIBERS.labels(self._channel).set(subscribers)

        if result.dropped:
            FANOUT_DROPPED.labels(self._channel).inc(result.dropped)
            logger.warning(
                "Dropped %d slow subscriber(s) on %s",
                result.dropped,
                self._channel,
                extra={"channel": self._channel, "dropped": result.dropped},
            )

        self._window += result
        self._broadcasts += 1
        now = self._clock()
        if now - self._last_log < self._log_interval:
            return
        logger.info(
            "Fan-out summary for %s: %d broadcasts",
            self._channel,
            self._broadcasts,
            extra={
                "channel": self._channel,
                "subscribers": subscribers,
                "sent": self._window.sent,
                "skipped": self._window.skipped,
                "dropped": self._window.dropped,
            },
        )
        self._last_log = now
        self._window = BroadcastResult()
        self._broadcasts = 0
