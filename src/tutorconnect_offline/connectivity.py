"""Online/offline state with transition listeners."""

from __future__ import annotations

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Holds the connectivity flag and notifies listeners on online/offline transitions."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: List[Listener] = []

    @property
    def online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def set_online(self, online: bool, *, notify: bool = True) -> None:
        changed = online != self._online
        self._online = online
        if changed:
            logger.info("Connectivity changed online=%s", online)
            if notify:
                self._emit(online)

    def _emit(self, online: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:  # pragma: no cover - listener bugs must not break the monitor
                logger.exception("Connectivity listener failed")


__all__ = ["ConnectivityMonitor"]
