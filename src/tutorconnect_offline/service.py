"""FastAPI status panel for the offline action manager."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import OfflineConfig
from .manager import OfflineManager
from .models import OfflineAction, SyncStatus, utcnow
from .schemas import ActionValidationError

logger = logging.getLogger(__name__)


class QueueActionRequest(BaseModel):
    type: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)


class QueueActionResponse(BaseModel):
    id: str


class StatusPanel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: SyncStatus
    last_sync_label: str
    cached_kb: int


def format_last_sync(last_sync: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    minutes = int((now - last_sync).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def build_status_panel(status: SyncStatus, now: Optional[datetime] = None) -> StatusPanel:
    cached = status.cached_data.model_dump_json(by_alias=True)
    return StatusPanel(
        status=status,
        last_sync_label=format_last_sync(status.last_sync, now),
        cached_kb=round(len(cached) / 1024),
    )


async def get_manager(request: Request) -> OfflineManager:
    return request.app.state.manager


def create_app(manager: OfflineManager) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with manager:
            yield

    app = FastAPI(title="TutorConnect Offline Sync", version="0.1.0", lifespan=lifespan)
    app.state.manager = manager

    @app.get("/healthz")
    async def health() -> Dict[str, str]:
        return {"status": "ok", "service": "offline-sync"}

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(generate_latest(), media_type="text/plain; version=0.0.4")

    @app.get("/v1/offline/status")
    async def status(mgr: OfflineManager = Depends(get_manager)) -> Dict[str, Any]:
        panel = build_status_panel(mgr.get_sync_status())
        return panel.model_dump(mode="json", by_alias=True)

    @app.get("/v1/offline/actions")
    async def pending_actions(mgr: OfflineManager = Depends(get_manager)) -> List[Dict[str, Any]]:
        return [_dump(action) for action in mgr.get_pending_actions()]

    @app.get("/v1/offline/actions/failed")
    async def failed_actions(mgr: OfflineManager = Depends(get_manager)) -> List[Dict[str, Any]]:
        return [_dump(action) for action in mgr.get_failed_actions()]

    @app.post("/v1/offline/actions", status_code=202, response_model=QueueActionResponse)
    async def queue_action(body: QueueActionRequest, mgr: OfflineManager = Depends(get_manager)) -> QueueActionResponse:
        try:
            action_id = mgr.queue_offline_action(body.type, body.payload)
        except ActionValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return QueueActionResponse(id=action_id)

    @app.post("/v1/offline/actions/{action_id}/retry")
    async def retry_action(action_id: str, mgr: OfflineManager = Depends(get_manager)) -> Dict[str, str]:
        if not mgr.retry_action(action_id):
            raise HTTPException(status_code=404, detail="Unknown action")
        return {"status": "pending", "id": action_id}

    @app.post("/v1/offline/sync")
    async def force_sync(mgr: OfflineManager = Depends(get_manager)) -> Dict[str, Any]:
        await mgr.force_sync()
        return build_status_panel(mgr.get_sync_status()).model_dump(mode="json", by_alias=True)

    @app.delete("/v1/offline/data")
    async def clear_data(mgr: OfflineManager = Depends(get_manager)) -> Dict[str, str]:
        mgr.clear_all_data()
        return {"status": "cleared"}

    return app


def _dump(action: OfflineAction) -> Dict[str, Any]:
    return action.model_dump(mode="json", by_alias=True)


def main() -> None:
    config = OfflineConfig.from_env()
    logging.basicConfig(level=config.log_level)
    app = create_app(OfflineManager(config))
    logger.info("Starting offline sync service on %s:%s", config.service_host, config.service_port)
    uvicorn.run(app, host=config.service_host, port=config.service_port)


if __name__ == "__main__":
    main()
