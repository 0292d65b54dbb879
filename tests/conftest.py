from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List

import httpx
import pytest

from tutorconnect_offline.config import OfflineConfig
from tutorconnect_offline.manager import OfflineManager
from tutorconnect_offline.storage import MemoryStore

BASE_URL = "https://tutorconnect.test/api"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class Recorder:
    """MockTransport handler that records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    @property
    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


def make_config(**overrides: Any) -> OfflineConfig:
    defaults = dict(base_url=BASE_URL, api_key="test-key", backoff_seconds=0.0, sync_interval=30.0)
    defaults.update(overrides)
    return OfflineConfig(**defaults)


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def make_manager() -> Callable[..., OfflineManager]:
    created: List[OfflineManager] = []

    def factory(handler: Callable[[httpx.Request], Any], config: OfflineConfig | None = None, **kwargs: Any) -> OfflineManager:
        kwargs.setdefault("store", MemoryStore())
        manager = OfflineManager(config or make_config(), transport=httpx.MockTransport(handler), **kwargs)
        created.append(manager)
        return manager

    yield factory
    for manager in created:
        await manager.aclose()


@pytest.fixture()
def manager(make_manager, recorder) -> OfflineManager:
    return make_manager(recorder)
