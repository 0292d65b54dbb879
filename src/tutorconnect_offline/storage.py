"""Durable key-value storage and the accessors for the offline cache and action log."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import TypeAdapter

from .metrics import STORAGE_ERRORS
from .models import OfflineAction, OfflineData

logger = logging.getLogger(__name__)

DATA_KEY = "tutorconnect_offline_data"
ACTIONS_KEY = "tutorconnect_offline_actions"

_ACTION_LIST = TypeAdapter(List[OfflineAction])


class StorageError(OSError):
    """Raised by a store when a value cannot be read or written (e.g. quota exceeded)."""


class KeyValueStore:
    """Synchronous string key-value store."""

    def get(self, key: str) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileStore(KeyValueStore):
    """Stores each key as a JSON file inside ``directory``."""

    def __init__(self, directory: str) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)

    def delete(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)


class OfflineStore:
    """Reads and writes the two persisted blobs.

    Failures never propagate: a missing or unreadable blob reads as the
    default value and a failed write is logged and dropped.
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self._backend = backend

    def get_data(self) -> OfflineData:
        try:
            stored = self._backend.get(DATA_KEY)
            if stored:
                return OfflineData.model_validate_json(stored)
        except (OSError, ValueError) as exc:
            STORAGE_ERRORS.labels(operation="read_data").inc()
            logger.error("Error retrieving offline data: %s", exc)
        return OfflineData()

    def set_data(self, data: OfflineData) -> None:
        try:
            self._backend.set(DATA_KEY, data.model_dump_json(by_alias=True))
        except (OSError, ValueError) as exc:
            STORAGE_ERRORS.labels(operation="write_data").inc()
            logger.error("Error storing offline data: %s", exc)

    def clear_data(self) -> None:
        try:
            self._backend.delete(DATA_KEY)
        except OSError as exc:
            STORAGE_ERRORS.labels(operation="delete_data").inc()
            logger.error("Error clearing offline data: %s", exc)

    def get_actions(self) -> List[OfflineAction]:
        try:
            stored = self._backend.get(ACTIONS_KEY)
            return _ACTION_LIST.validate_json(stored) if stored else []
        except (OSError, ValueError) as exc:
            STORAGE_ERRORS.labels(operation="read_actions").inc()
            logger.error("Error retrieving offline actions: %s", exc)
            return []

    def set_actions(self, actions: List[OfflineAction]) -> None:
        try:
            body = json.dumps(
                [action.model_dump(mode="json", by_alias=True) for action in actions],
                separators=(",", ":"),
            )
            self._backend.set(ACTIONS_KEY, body)
        except (OSError, ValueError) as exc:
            STORAGE_ERRORS.labels(operation="write_actions").inc()
            logger.error("Error storing offline actions: %s", exc)

    def clear_actions(self) -> None:
        try:
            self._backend.delete(ACTIONS_KEY)
        except OSError as exc:
            STORAGE_ERRORS.labels(operation="delete_actions").inc()
            logger.error("Error clearing offline actions: %s", exc)


def build_store(storage_path: Optional[str]) -> KeyValueStore:
    if storage_path:
        return FileStore(storage_path)
    logger.info("No storage path configured; offline state is kept in memory only")
    return MemoryStore()


__all__ = [
    "ACTIONS_KEY",
    "DATA_KEY",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "OfflineStore",
    "StorageError",
    "build_store",
]
