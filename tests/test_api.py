from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from lockin.api import deps
from lockin.api.main import app
from lockin.core.config import get_settings
from lockin.core.db import Base, engine, init_db

ARM = ("shoulder", "elbow", "wrist")


@pytest.fixture(autouse=True)
def fresh_state():
    Base.metadata.drop_all(bind=engine)
    init_db()
    deps.wallet.invalidate()
    deps.exercise_sessions._active = None
    deps.sync_coordinator.last_result = None
    yield


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health():
    async with _client() as ac:
        r = await ac.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_exercise_catalog():
    async with _client() as ac:
        r = await ac.get("/exercise/catalog")
    assert r.status_code == 200
    exercises = r.json()["data"]["exercises"]
    assert len(exercises) == 12
    assert {"pushups", "plank", "jumping-jacks"} <= {e["exercise_type"] for e in exercises}


@pytest.mark.asyncio
async def test_exercise_session_earns_minutes(frames):
    down = frames.to_payload(frames.joint(ARM, 80))
    up = frames.to_payload(frames.joint(ARM, 170))
    async with _client() as ac:
        r = await ac.post("/exercise/start", json={"exercise_type": "pushups"})
        assert r.status_code == 200
        assert r.json()["data"]["state"]["feedback"] == "Get into pushup position"

        for _ in range(4):
            await ac.post("/exercise/frame", json={**down, "delta_ms": 400})
            r = await ac.post("/exercise/frame", json={**up, "delta_ms": 400})
        assert r.json()["data"]["state"]["rep_count"] == 4

        status = await ac.get("/exercise/status")
        assert status.json()["data"]["active"] is True

        stop = await ac.post("/exercise/stop")
        assert stop.status_code == 200
        data = stop.json()["data"]
        assert data["reward"]["earned_minutes"] == 2.0
        assert data["wallet"]["available_minutes"] == 2.0
        assert data["session"]["rep_count"] == 4

        history = await ac.get("/exercise/history?limit=5")
        assert len(history.json()["data"]["items"]) == 1

        wallet = await ac.get("/wallet")
        assert wallet.json()["data"]["available_minutes"] == 2.0
        assert wallet.json()["data"]["today"]["earned"] == 2.0


@pytest.mark.asyncio
async def test_stop_without_session():
    async with _client() as ac:
        r = await ac.post("/exercise/stop")
    assert r.status_code == 409
    body = r.json()
    assert body["success"] is False
    assert body["error"] == "no_active_session"


@pytest.mark.asyncio
async def test_unknown_exercise():
    async with _client() as ac:
        r = await ac.post("/exercise/start", json={"exercise_type": "cartwheels"})
    assert r.status_code == 404
    assert r.json()["error"] == "unknown_exercise"


@pytest.mark.asyncio
async def test_frame_requires_landmarks_or_points():
    async with _client() as ac:
        await ac.post("/exercise/start", json={"exercise_type": "plank"})
        r = await ac.post("/exercise/frame", json={"delta_ms": 10})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_schedule_and_blocked_endpoint():
    async with _client() as ac:
        r = await ac.post(
            "/schedules",
            json={
                "name": "Work",
                "days_of_week": [1, 3, 5],
                "start_time": "09:00",
                "end_time": "17:00",
                "app_identifiers": ["com.social.app"],
            },
        )
        assert r.status_code == 200
        schedule_id = r.json()["data"]["id"]

        tue = await ac.get("/blocked/com.social.app", params={"at": "2024-01-02T10:00:00"})
        assert tue.json()["data"]["blocked"] is False
        wed = await ac.get("/blocked/com.social.app", params={"at": "2024-01-03T10:00:00"})
        assert wed.json()["data"]["blocked"] is True
        assert wed.json()["data"]["reason"] == "schedule"

        patched = await ac.patch(f"/schedules/{schedule_id}", json={"is_active": False})
        assert patched.json()["data"]["is_active"] is False

        deleted = await ac.delete(f"/schedules/{schedule_id}")
        assert deleted.status_code == 200
        missing = await ac.delete(f"/schedules/{schedule_id}")
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_midnight_window_rejected():
    async with _client() as ac:
        r = await ac.post(
            "/schedules",
            json={"name": "Night", "days_of_week": [0], "start_time": "22:00", "end_time": "06:00"},
        )
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_schedule"


@pytest.mark.asyncio
async def test_funded_override_needs_balance():
    async with _client() as ac:
        await ac.post("/limits", json={"app_identifier": "com.video.app", "limit_minutes": 0})
        blocked = await ac.get("/blocked/com.video.app")
        assert blocked.json()["data"]["reason"] == "daily_limit"

        denied = await ac.post("/overrides", json={"app_identifier": "com.video.app", "minutes": 5})
        assert denied.json()["success"] is False
        assert denied.json()["error"] == "insufficient_balance"

        deps.wallet.commit_earn(8, source="test")
        granted = await ac.post("/overrides", json={"app_identifier": "com.video.app", "minutes": 5})
        assert granted.json()["success"] is True
        assert granted.json()["data"]["available_minutes"] == 3

        unblocked = await ac.get("/blocked/com.video.app")
        assert unblocked.json()["data"]["blocked"] is False
        overrides = await ac.get("/overrides")
        assert len(overrides.json()["data"]["items"]) == 1


@pytest.mark.asyncio
async def test_pushed_usage_is_applied_once():
    deps.wallet.commit_earn(10, source="test")
    report = {
        "batch_id": "batch-1",
        "timestamp": "2024-01-02T12:00:00Z",
        "day_key": "2024-01-02",
        "usage": {"com.social.app": 4, "com.news.app": 2},
    }
    async with _client() as ac:
        r = await ac.put("/wallet/economy", json={"app_identifiers": ["com.social.app"]})
        assert r.json()["data"]["app_identifiers"] == ["com.social.app"]

        first = await ac.post("/sync/usage", json=report)
        assert first.json()["data"]["applied"] is True
        again = await ac.post("/sync/usage", json=report)
        assert again.json()["data"]["reason"] == "duplicate"

        wallet = await ac.get("/wallet")
        assert wallet.json()["data"]["available_minutes"] == 6

        stats = await ac.get("/sync/usage-stats", params={"day_key": "2024-01-02"})
        assert stats.json()["data"]["items"] == [{"app_identifier": "com.news.app", "minutes": 2.0}]

        status = await ac.get("/sync/status")
        assert status.json()["data"]["watermark"]["last_applied_batch_id"] == "batch-1"


@pytest.mark.asyncio
async def test_sync_tick_without_source_is_not_applied():
    async with _client() as ac:
        r = await ac.post("/sync/tick")
    assert r.status_code == 200
    assert r.json()["data"]["applied"] is False
    assert r.json()["data"]["reason"] == "unavailable"


@pytest.mark.asyncio
async def test_mutations_require_api_key_when_configured(monkeypatch):
    monkeypatch.setattr(get_settings(), "api_key", "secret")
    async with _client() as ac:
        r = await ac.post("/wallet/reset")
        assert r.status_code == 401
        ok = await ac.post("/wallet/reset", headers={"X-API-Key": "secret"})
        assert ok.status_code == 200
        read = await ac.get("/wallet")
        assert read.status_code == 200


@pytest.mark.parametrize(
    "usage",
    ['{"com.social.app": NaN}', '{"com.social.app": Infinity}', '{"com.social.app": -3}', '[["com.social.app", 3]]'],
)
@pytest.mark.asyncio
async def test_pushed_usage_must_be_finite_and_non_negative(usage):
    deps.wallet.commit_earn(20, source="test")
    body = '{"batch_id": "bad-1", "timestamp": "2024-01-02T12:00:00Z", "day_key": "2024-01-02", "usage": %s}' % usage
    async with _client() as ac:
        await ac.put("/wallet/economy", json={"app_identifiers": ["com.social.app"]})
        await ac.post("/limits", json={"app_identifier": "com.social.app", "limit_minutes": 30})

        r = await ac.post("/sync/usage", content=body, headers={"content-type": "application/json"})
        assert r.status_code == 422
        assert r.json()["success"] is False
        assert r.json()["error"] == "invalid_request"

        wallet = await ac.get("/wallet")
        assert wallet.json()["data"]["available_minutes"] == 20
        status = await ac.get("/sync/status")
        assert status.json()["data"]["watermark"]["last_applied_batch_id"] is None

        ok = await ac.post(
            "/sync/usage",
            json={"batch_id": "good-1", "timestamp": "2024-01-02T12:01:00Z", "day_key": "2024-01-02", "usage": {"com.social.app": 45}},
        )
        assert ok.json()["data"]["applied"] is True
        blocked = await ac.get("/blocked/com.social.app", params={"at": "2024-01-02T12:05:00"})
        assert blocked.json()["data"]["blocked"] is True
