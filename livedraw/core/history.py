"""Archive gate for the evening result.

The evening draw settles shortly after 16:30 Myanmar time.  Updates that
arrive inside the archive window with a real evening result are handed to
the archiver, at most once a minute.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, tzinfo
from typing import Any

from livedraw.core.models import RESULT_PLACEHOLDER, VALUE_PLACEHOLDER, LotteryResult

logger = logging.getLogger("livedraw.history")

Archiver = Callable[[LotteryResult], Awaitable[Any]]

_NOT_READY = frozenset({"", VALUE_PLACEHOLDER, RESULT_PLACEHOLDER})


class HistoryWindow:
    def __init__(
        self,
        archiver: Archiver,
        zone: tzinfo,
        start: time = time(16, 30),
        minutes: int = 5,
        clock: Callable[[], datetime] | None = None,
        cooldown: timedelta = timedelta(minutes=1),
    ) -> None:
        self._archiver = archiver
        self._zone = zone
        self._start = start
        self._length = timedelta(minutes=minutes)
        self._clock = clock or (lambda: datetime.now(zone))
        self._cooldown = cooldown
        self._last_call: datetime | None = None

    def in_window(self, moment: datetime) -> bool:
        local = moment.astimezone(self._zone)
        opens = local.replace(
            hour=self._start.hour, minute=self._start.minute, second=0, microsecond=0
        )
        return opens <= local < opens + self._length

    @staticmethod
    def is_ready(result: LotteryResult) -> bool:
        return result.evening_result.strip() not in _NOT_READY

    async def check(self, result: LotteryResult) -> bool:
        """Archive *result* if the window is open. Returns True when the archiver ran."""
        now = self._clock()
        if not self.in_window(now):
            return False
        if not self.is_ready(result):
            logger.info("Skipping archive, evening result not ready: %r", result.evening_result)
            return False
        if self._last_call is not None and now - self._last_call < self._cooldown:
            return False
        self._last_call = now

        try:
            await self._archiver(result)
        except Exception:
            logger.warning("Failed to archive result for %s", result.draw_date, exc_info=True)
            return False
        logger.info("Archived evening result %s for %s", result.evening_result, result.draw_date)
        return True
