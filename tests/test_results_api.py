"""Tests for the result ticker HTTP routes and SSE relay."""

from __future__ import annotations

import json

from livedraw.api.sse import HEARTBEAT_FRAME, relay
from livedraw.core.lifecycle import ConnectionLifecycle
from livedraw.core.models import LotteryResult

UPDATE = {
    "date": "2026-10-19",
    "live": "22",
    "status": "On",
    "1200set": "1,234.56",
    "1200value": "12,345.67",
    "1200": "67",
    "430set": "--",
    "430value": "--",
    "430": "",
    "930modern": "12",
    "930internet": "34",
    "200modern": "",
    "200internet": "",
    "updatetime": "14:01:02 19/10/2026",
}


def _parse(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


def _viewer(context) -> ConnectionLifecycle:
    return ConnectionLifecycle(
        context.results,
        on_attach=context.feed.attach,
        heartbeat_interval=context.settings.heartbeat_interval,
    )


class TestLiveAndUpdate:
    async def test_live_before_any_update(self, client):
        resp = await client.get("/api/burma2d/live")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        assert body["data"]["live_number"] == "--"
        assert body["data"]["service_status"] == "Off"
        assert body["data"]["active_viewers"] == 0

    async def test_update_then_live(self, client):
        resp = await client.post("/api/burma2d/update", json=UPDATE)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        assert body["message"] == "Data updated successfully"
        assert body["data"]["evening_result"] == "---"

        live = (await client.get("/api/burma2d/live")).json()["data"]
        assert live["live_number"] == "22"
        assert live["noon_result"] == "67"
        assert live["afternoon_modern"] == "--"

    async def test_update_reaches_open_streams(self, client, context):
        streams = [relay(_viewer(context)) for _ in range(3)]
        first_paint = [_parse(await anext(s)) for s in streams]
        assert all(p["live_number"] == "--" for p in first_paint)

        resp = await client.post("/api/burma2d/update", json=UPDATE)
        assert resp.status_code == 200

        for s in streams:
            payload = _parse(await anext(s))
            assert payload["live_number"] == "22"
            assert payload["active_viewers"] == 3

        live = (await client.get("/api/burma2d/live")).json()["data"]
        assert live["active_viewers"] == 3

        for s in streams:
            await s.aclose()
        assert context.results.count() == 0

    async def test_invalid_json(self, client):
        resp = await client.post(
            "/api/burma2d/update",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid JSON format"

    async def test_non_object_body(self, client):
        resp = await client.post("/api/burma2d/update", json=["22"])
        assert resp.status_code == 400

    async def test_non_string_field(self, client, context):
        resp = await client.post("/api/burma2d/update", json={"live": 22})
        assert resp.status_code == 400
        assert context.feed.current()["live_number"] == "--"

    async def test_null_field_becomes_placeholder(self, client, context):
        resp = await client.post("/api/burma2d/update", json={"live": "22", "430": None})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["live_number"] == "22"
        assert data["evening_result"] == "---"
        assert context.feed.current()["evening_result"] == "---"

    async def test_object_field_still_rejected(self, client):
        resp = await client.post("/api/burma2d/update", json={"live": {"n": "22"}})
        assert resp.status_code == 400


class TestProducerAuth:
    async def test_missing_key(self, client, monkeypatch):
        monkeypatch.setenv("LD_API_KEYS", "producer-key")
        resp = await client.post("/api/burma2d/update", json=UPDATE)
        assert resp.status_code == 403

    async def test_wrong_key(self, client, monkeypatch):
        monkeypatch.setenv("LD_API_KEYS", "producer-key")
        resp = await client.post(
            "/api/burma2d/update", json=UPDATE, headers={"X-API-Key": "nope"}
        )
        assert resp.status_code == 401

    async def test_valid_key(self, client, monkeypatch):
        monkeypatch.setenv("LD_API_KEYS", "producer-key,other")
        resp = await client.post(
            "/api/burma2d/update",
            json=UPDATE,
            headers={"Authorization": "Bearer producer-key"},
        )
        assert resp.status_code == 200

    async def test_reads_stay_public(self, client, monkeypatch):
        monkeypatch.setenv("LD_API_KEYS", "producer-key")
        assert (await client.get("/api/burma2d/live")).status_code == 200


class TestRelay:
    async def test_heartbeat_comment_when_quiet(self, context):
        stream = relay(_viewer(context))
        await anext(stream)
        assert await anext(stream) == HEARTBEAT_FRAME
        await stream.aclose()

    async def test_closing_stream_deregisters(self, context):
        stream = relay(_viewer(context))
        await anext(stream)
        assert context.results.count() == 1
        await stream.aclose()
        assert context.results.count() == 0


class TestHistory:
    async def test_history_listing(self, client, context):
        await context.db.insert_result_history(
            LotteryResult(draw_date="2026-10-18", evening_result="901")
        )
        await context.db.insert_result_history(
            LotteryResult(draw_date="2026-10-19", evening_result="134")
        )

        body = (await client.get("/api/burma2d/history")).json()
        assert body["count"] == 2
        assert [r["draw_date"] for r in body["data"]] == ["2026-10-19", "2026-10-18"]

        page = (await client.get("/api/burma2d/history", params={"limit": 1, "offset": 1})).json()
        assert [r["draw_date"] for r in page["data"]] == ["2026-10-18"]

    async def test_history_limit_bounds(self, client):
        resp = await client.get("/api/burma2d/history", params={"limit": 0})
        assert resp.status_code == 422


class TestHealth:
    async def test_health(self, client):
        body = (await client.get("/health")).json()
        assert body["status"] == "ok"
        assert body["result_viewers"] == 0
        assert body["chat_auth_ready"] is True
