"""Tests for the result feed."""

from __future__ import annotations

import json
from datetime import datetime, time

from livedraw.core.dispatcher import FanoutDispatcher
from livedraw.core.encoder import SnapshotEncoder
from livedraw.core.feed import ResultFeed
from livedraw.core.history import HistoryWindow
from livedraw.core.models import LotteryResult, ResultUpdate, resolve_zone
from livedraw.core.registry import SubscriberRegistry
from livedraw.core.snapshot import SnapshotStore

ZONE = resolve_zone()


def _feed(history=None) -> ResultFeed:
    registry = SubscriberRegistry(queue_size=8)
    dispatcher = FanoutDispatcher(registry, "feed-test", log_interval=3600)
    return ResultFeed(SnapshotStore(), SnapshotEncoder(), dispatcher, history)


def _viewer(feed: ResultFeed):
    sub = feed.registry.new_subscriber()
    feed.registry.add(sub)
    return sub


class TestResultFeed:
    async def test_update_reaches_every_viewer(self):
        feed = _feed()
        viewers = [_viewer(feed) for _ in range(3)]

        await feed.apply_update(ResultUpdate.model_validate({"live": "22", "status": "On"}))

        for v in viewers:
            payload = json.loads(v.queue.get_nowait())
            assert payload["live_number"] == "22"
            assert payload["service_status"] == "On"
            assert payload["active_viewers"] == 3

    async def test_current_includes_viewer_count(self):
        feed = _feed()
        _viewer(feed)
        _viewer(feed)
        await feed.apply_update(ResultUpdate.model_validate({"live": "57"}))
        current = feed.current()
        assert current["live_number"] == "57"
        assert current["active_viewers"] == 2

    async def test_attach_sends_initial_snapshot_to_newcomer_only(self):
        feed = _feed()
        existing = _viewer(feed)
        await feed.apply_update(ResultUpdate.model_validate({"live": "11"}))
        existing.queue.get_nowait()

        newcomer = _viewer(feed)
        await feed.attach(newcomer)

        assert json.loads(newcomer.queue.get_nowait())["live_number"] == "11"
        assert existing.queue.empty()

    async def test_attach_before_any_update_encodes_placeholders(self):
        feed = _feed()
        sub = _viewer(feed)
        await feed.attach(sub)
        assert json.loads(sub.queue.get_nowait())["live_number"] == "--"

    async def test_update_runs_history_gate(self):
        archived = []

        async def archiver(result: LotteryResult):
            archived.append(result)

        history = HistoryWindow(
            archiver,
            ZONE,
            start=time(16, 30),
            clock=lambda: datetime(2026, 10, 19, 16, 32, tzinfo=ZONE),
        )
        feed = _feed(history)
        await feed.apply_update(
            ResultUpdate.model_validate({"date": "2026-10-19", "430": "134"})
        )
        assert [r.evening_result for r in archived] == ["134"]
