"""Encode-once JSON cache for the ticker snapshot."""

from __future__ import annotations

import threading

from livedraw.core.models import LiveView, LotteryResult


class SnapshotEncoder:
    """Serializes the snapshot once per broadcast cycle.

    The encoded string is immutable and shared by every delivery of the
    cycle.  The last encoding is kept for first paint of new subscribers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cached: str | None = None

    def encode(self, snapshot: LotteryResult, viewers: int) -> str:
        """Encode *snapshot* with *viewers* as ``active_viewers`` and cache the result."""
        view = LiveView(**snapshot.model_dump(), active_viewers=viewers)
        message = view.model_dump_json()
        with self._lock:
            self._cached = message
        return message

    def cached(self) -> str | None:
        """Return the last encoded message, or ``None`` before the first encode."""
        with self._lock:
            return self._cached

    def cached_or_encode(self, snapshot: LotteryResult, viewers: int) -> str:
        message = self.cached()
        if message is None:
            message = self.encode(snapshot, viewers)
        return message
