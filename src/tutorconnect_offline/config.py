"""Configuration objects for the offline action manager."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _optional_int(raw: Optional[str], default: Optional[int]) -> Optional[int]:
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in ("none", "unlimited"):
        return None
    return int(raw)


@dataclass(frozen=True)
class OfflineConfig:
    base_url: str = "http://localhost:3000/api"
    api_key: Optional[str] = None
    timeout: float = 5.0
    user_agent: str = "tutorconnect-offline/0.1.0"
    headers: Dict[str, str] = field(default_factory=dict)
    auto_idempotency: bool = True
    storage_path: Optional[str] = None
    sync_interval: float = 30.0
    max_retries: Optional[int] = 8
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 300.0
    backoff_jitter: float = 0.25
    probe_url: Optional[str] = None
    probe_interval: float = 15.0
    start_online: bool = True
    log_level: str = "INFO"
    service_host: str = "127.0.0.1"
    service_port: int = 8070

    @classmethod
    def from_env(cls) -> "OfflineConfig":
        return cls(
            base_url=os.environ.get("OFFLINE_BASE_URL", "http://localhost:3000/api"),
            api_key=os.environ.get("OFFLINE_API_KEY") or None,
            timeout=float(os.environ.get("OFFLINE_TIMEOUT", "5.0")),
            storage_path=os.environ.get("OFFLINE_STORAGE_PATH") or None,
            sync_interval=float(os.environ.get("OFFLINE_SYNC_INTERVAL", "30.0")),
            max_retries=_optional_int(os.environ.get("OFFLINE_MAX_RETRIES"), 8),
            backoff_seconds=float(os.environ.get("OFFLINE_BACKOFF_SECONDS", "1.0")),
            max_backoff_seconds=float(os.environ.get("OFFLINE_MAX_BACKOFF_SECONDS", "300.0")),
            backoff_jitter=float(os.environ.get("OFFLINE_BACKOFF_JITTER", "0.25")),
            probe_url=os.environ.get("OFFLINE_PROBE_URL") or None,
            probe_interval=float(os.environ.get("OFFLINE_PROBE_INTERVAL", "15.0")),
            start_online=os.environ.get("OFFLINE_START_ONLINE", "true").lower() == "true",
            log_level=os.environ.get("OFFLINE_LOG_LEVEL", "INFO").upper(),
            service_host=os.environ.get("OFFLINE_SERVICE_HOST", "127.0.0.1"),
            service_port=int(os.environ.get("OFFLINE_SERVICE_PORT", "8070")),
        )


__all__ = ["OfflineConfig"]
