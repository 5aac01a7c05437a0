"""Tests for the snapshot store and the encode-once cache."""

from __future__ import annotations

import json
import threading

from livedraw.core.encoder import SnapshotEncoder
from livedraw.core.models import LotteryResult
from livedraw.core.snapshot import SnapshotStore


class TestSnapshotStore:
    def test_starts_with_placeholders(self):
        store = SnapshotStore()
        assert store.read().service_status == "Off"
        assert store.read().evening_result == "---"

    def test_update_replaces_wholesale(self):
        store = SnapshotStore(LotteryResult(live_number="11", noon_result="45"))
        store.update(LotteryResult(live_number="22"))
        current = store.read()
        assert current.live_number == "22"
        assert current.noon_result == "---"

    def test_concurrent_readers_see_whole_values(self):
        store = SnapshotStore()
        seen: list[LotteryResult] = []

        def writer():
            for i in range(200):
                store.update(LotteryResult(live_number=str(i), noon_result=str(i)))

        def reader():
            for _ in range(200):
                seen.append(store.read())

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for snap in seen:
            if snap.live_number != "--":
                assert snap.live_number == snap.noon_result


class TestSnapshotEncoder:
    def test_no_cache_before_first_encode(self):
        assert SnapshotEncoder().cached() is None

    def test_encode_adds_active_viewers(self):
        encoder = SnapshotEncoder()
        message = encoder.encode(LotteryResult(live_number="22"), viewers=5)
        payload = json.loads(message)
        assert payload["live_number"] == "22"
        assert payload["active_viewers"] == 5
        assert encoder.cached() is message

    def test_cached_or_encode_reuses_cache(self):
        encoder = SnapshotEncoder()
        first = encoder.encode(LotteryResult(live_number="1"), viewers=1)
        again = encoder.cached_or_encode(LotteryResult(live_number="2"), viewers=9)
        assert again is first

    def test_cached_or_encode_fills_cache(self):
        encoder = SnapshotEncoder()
        message = encoder.cached_or_encode(LotteryResult(), viewers=0)
        assert encoder.cached() == message
        assert json.loads(message)["active_viewers"] == 0
