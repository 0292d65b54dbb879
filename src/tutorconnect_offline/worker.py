"""Companion background worker: connectivity probing and background sync tags."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Set

import httpx

from .config import OfflineConfig
from .scheduler import PeriodicScheduler

logger = logging.getLogger(__name__)

OFFLINE_STATUS = "OFFLINE_STATUS"
SYNC = "SYNC"
SYNC_TAG = "sync-offline-actions"

MessageListener = Callable[[Dict[str, Any]], None]


class BackgroundSyncWorker:
    """Watches connectivity on its own and wakes listeners when a registered sync can run.

    Messages posted to listeners:

    * ``{"type": "OFFLINE_STATUS", "isOnline": bool}`` whenever the probe result changes.
    * ``{"type": "SYNC", "tag": tag}`` for each registered tag once the probe sees the
      server; the tag is then dropped until registered again.
    """

    def __init__(
        self,
        config: OfflineConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._probe_url = config.probe_url
        self._client = httpx.AsyncClient(timeout=config.timeout, transport=transport)
        self._listeners: List[MessageListener] = []
        self._tags: Set[str] = set()
        self._online: Optional[bool] = None
        self._scheduler = PeriodicScheduler(config.probe_interval, self.check_once, name="offline-probe")

    @property
    def registered_tags(self) -> Set[str]:
        return set(self._tags)

    def add_message_listener(self, listener: MessageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def register_sync(self, tag: str = SYNC_TAG) -> None:
        self._tags.add(tag)
        logger.debug("Registered background sync tag=%s", tag)
        if self._online:
            self._fire_tags()

    async def check_once(self) -> bool:
        if not self._probe_url:
            return bool(self._online)
        try:
            await self._client.get(self._probe_url)
            online = True
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe failed url=%s: %s", self._probe_url, exc)
            online = False

        if online != self._online:
            self._online = online
            self._post({"type": OFFLINE_STATUS, "isOnline": online})
        if online:
            self._fire_tags()
        return online

    def start(self) -> None:
        if self._probe_url:
            self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    async def close(self) -> None:
        self.stop()
        await self._client.aclose()

    def _fire_tags(self) -> None:
        tags = sorted(self._tags)
        self._tags.clear()
        for tag in tags:
            self._post({"type": SYNC, "tag": tag})

    def _post(self, message: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:  # pragma: no cover - listener bugs must not stop the worker
                logger.exception("Worker message listener failed")


__all__ = ["BackgroundSyncWorker", "OFFLINE_STATUS", "SYNC", "SYNC_TAG"]
