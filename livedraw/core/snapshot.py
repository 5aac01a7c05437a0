"""Thread-safe holder for the single current result snapshot."""

from __future__ import annotations

import threading

from livedraw.core.models import LotteryResult


class SnapshotStore:
    """Holds exactly one :class:`LotteryResult`.

    The snapshot is a frozen model, so handing the reference out under the
    lock is enough for readers to always see a fully formed value.
    """

    def __init__(self, initial: LotteryResult | None = None) -> None:
        self._lock = threading.Lock()
        self._current = initial if initial is not None else LotteryResult.initial()

    def update(self, new: LotteryResult) -> LotteryResult:
        """Replace the snapshot atomically and return the new value."""
        with self._lock:
            self._current = new
        return new

    def read(self) -> LotteryResult:
        with self._lock:
            return self._current
