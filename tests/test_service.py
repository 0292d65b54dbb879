from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from tutorconnect_offline.service import create_app, format_last_sync
from tutorconnect_offline.worker import BackgroundSyncWorker

from .conftest import Recorder, make_config


@pytest.fixture()
def app(manager):
    return create_app(manager)


@pytest.fixture()
async def api(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.mark.asyncio
async def test_health(api: httpx.AsyncClient) -> None:
    response = await api.get("/healthz")
    assert response.json() == {"status": "ok", "service": "offline-sync"}


@pytest.mark.asyncio
async def test_queue_and_status(api: httpx.AsyncClient) -> None:
    response = await api.post("/v1/offline/actions", json={"type": "booking", "payload": {"tutorId": "t1"}})
    assert response.status_code == 202
    action_id = response.json()["id"]

    status = (await api.get("/v1/offline/status")).json()
    assert status["status"]["pendingActions"] == 1
    assert status["status"]["isOnline"] is True
    assert status["lastSyncLabel"] == "Just now"
    assert status["cachedKb"] == 0

    pending = (await api.get("/v1/offline/actions")).json()
    assert [item["id"] for item in pending] == [action_id]
    assert pending[0]["retryCount"] == 0


@pytest.mark.asyncio
async def test_invalid_action_is_rejected(api: httpx.AsyncClient) -> None:
    response = await api.post("/v1/offline/actions", json={"type": "review", "payload": {"rating": 5}})
    assert response.status_code == 422
    response = await api.post("/v1/offline/actions", json={"type": "teleport", "payload": {}})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_force_sync_endpoint(api: httpx.AsyncClient, recorder: Recorder) -> None:
    await api.post("/v1/offline/actions", json={"type": "review", "payload": {"sessionId": "s1", "rating": 5}})

    response = await api.post("/v1/offline/sync")

    assert response.status_code == 200
    assert response.json()["status"]["pendingActions"] == 0
    assert recorder.paths == ["/api/reviews"]


@pytest.mark.asyncio
async def test_retry_and_failed_listing(make_manager) -> None:
    manager = make_manager(Recorder(status_code=500), config=make_config(max_retries=0))
    app = create_app(manager)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as api:
        action_id = (await api.post("/v1/offline/actions", json={"type": "booking", "payload": {"tutorId": "t1"}})).json()["id"]
        await api.post("/v1/offline/sync")

        failed = (await api.get("/v1/offline/actions/failed")).json()
        assert [item["id"] for item in failed] == [action_id]
        assert failed[0]["lastError"] == "HTTP 500"

        response = await api.post(f"/v1/offline/actions/{action_id}/retry")
        assert response.json() == {"status": "pending", "id": action_id}
        assert (await api.post("/v1/offline/actions/nope/retry")).status_code == 404


@pytest.mark.asyncio
async def test_clear_data(api: httpx.AsyncClient, manager) -> None:
    manager.cache_data("sessions", [{"id": "s1"}])
    await api.post("/v1/offline/actions", json={"type": "booking", "payload": {"tutorId": "t1"}})

    response = await api.delete("/v1/offline/data")

    assert response.json() == {"status": "cleared"}
    assert manager.get_pending_actions() == []
    assert manager.get_cached_data("sessions") == []


@pytest.mark.asyncio
async def test_metrics_exposed(api: httpx.AsyncClient) -> None:
    await api.post("/v1/offline/sync")
    body = (await api.get("/metrics")).text
    assert "offline_sync_passes_total" in body
    assert "offline_pending_actions" in body


@pytest.mark.asyncio
async def test_enqueue_with_online_worker_is_delivered(make_manager, recorder: Recorder) -> None:
    worker = BackgroundSyncWorker(
        make_config(probe_url="https://tutorconnect.test/healthz", probe_interval=60.0),
        transport=httpx.MockTransport(lambda request: httpx.Response(204)),
    )
    manager = make_manager(recorder, worker=worker)
    app = create_app(manager)
    try:
        await manager.start()
        assert await worker.check_once()
        await manager.wait_for_sync()

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as api:
            response = await api.post(
                "/v1/offline/actions", json={"type": "review", "payload": {"sessionId": "s1", "rating": 4}}
            )
            assert response.status_code == 202
            await manager.wait_for_sync()

        assert recorder.paths == ["/api/reviews"]
        assert manager.get_pending_actions() == []
    finally:
        await worker.close()


@pytest.mark.asyncio
async def test_lifespan_starts_and_stops_manager(app, manager) -> None:
    async with app.router.lifespan_context(app):
        assert manager._started
        assert manager._scheduler.running
    assert not manager._started
    assert not manager._scheduler.running


def test_format_last_sync() -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert format_last_sync(now - timedelta(seconds=30), now) == "Just now"
    assert format_last_sync(now - timedelta(minutes=2), now) == "2m ago"
    assert format_last_sync(now - timedelta(hours=3, minutes=5), now) == "3h ago"
    assert format_last_sync(now - timedelta(days=2, hours=1), now) == "2d ago"
