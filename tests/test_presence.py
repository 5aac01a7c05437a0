"""Tests for chat presence tracking."""

from __future__ import annotations

import json

from livedraw.core.dispatcher import FanoutDispatcher
from livedraw.core.models import Identity
from livedraw.core.presence import PresenceTracker
from livedraw.core.registry import SubscriberRegistry

ALICE = Identity(user_id="alice", username="Alice")
BOB = Identity(user_id="bob", username="bob")


def _events(subscriber) -> list[dict]:
    out = []
    while not subscriber.queue.empty():
        out.append(json.loads(subscriber.queue.get_nowait()))
    return out


def _setup(persist=None):
    registry = SubscriberRegistry(queue_size=50)
    dispatcher = FanoutDispatcher(registry, "chat-test", log_interval=3600)
    watcher = registry.new_subscriber()
    registry.add(watcher)
    return PresenceTracker(dispatcher, persist=persist), watcher


class TestPresenceTracker:
    async def test_join_announces_then_refreshes(self):
        presence, watcher = _setup()
        assert presence.mark_online(ALICE) is True

        events = _events(watcher)
        assert [e["type"] for e in events] == ["user_joined", "online"]
        assert events[0]["data"] == {"user_id": "alice", "username": "Alice", "count": 1}
        assert events[1]["data"]["users"] == [
            {"user_id": "alice", "username": "Alice", "photo_url": ""}
        ]

    async def test_repeat_online_is_not_a_transition(self):
        presence, watcher = _setup()
        presence.mark_online(ALICE)
        _events(watcher)

        assert presence.mark_online(ALICE) is False
        assert [e["type"] for e in _events(watcher)] == ["online"]
        assert len(presence.list_online()) == 1

    async def test_offline_transition(self):
        presence, watcher = _setup()
        presence.mark_online(ALICE)
        _events(watcher)

        assert presence.mark_offline(ALICE) is True
        events = _events(watcher)
        assert [e["type"] for e in events] == ["user_left", "online"]
        assert events[1]["data"]["users"] == []
        assert not presence.is_online("alice")

    async def test_offline_for_unknown_user(self):
        presence, watcher = _setup()
        assert presence.mark_offline(BOB) is False
        assert [e["type"] for e in _events(watcher)] == ["online"]

    async def test_list_online_sorted_and_excluding(self):
        presence, _ = _setup()
        presence.mark_online(Identity(user_id="z", username="zed"))
        presence.mark_online(BOB)
        presence.mark_online(ALICE)
        assert [i.user_id for i in presence.list_online()] == ["alice", "bob", "z"]
        assert [i.user_id for i in presence.list_online(excluding="bob")] == ["alice", "z"]

    async def test_write_through_persists_flags(self):
        calls = []

        async def persist(user_id, online):
            calls.append((user_id, online))

        presence, _ = _setup(persist)
        presence.mark_online(ALICE)
        presence.mark_offline(ALICE)
        await presence.drain()
        assert sorted(calls) == [("alice", False), ("alice", True)]

    async def test_persist_failure_is_logged(self, caplog):
        async def persist(user_id, online):
            raise RuntimeError("disk gone")

        presence, _ = _setup(persist)
        presence.mark_online(ALICE)
        await presence.drain()
        assert presence.is_online("alice")
        assert any("Failed to persist presence" in r.getMessage() for r in caplog.records)
