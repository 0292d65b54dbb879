"""Pydantic models for queued actions and the offline read cache."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionType(str, Enum):
    MESSAGE = "message"
    SESSION_UPDATE = "session_update"
    REVIEW = "review"
    BOOKING = "booking"
    PAYMENT = "payment"


class ActionStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class _CamelModel(BaseModel):
    # Stored blobs use camelCase keys (retryCount, lastSync, userPreferences).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OfflineAction(_CamelModel):
    id: str
    # Plain str so entries written by a build with extra action kinds still load.
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    retry_count: int = 0
    status: ActionStatus = ActionStatus.PENDING
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now


class OfflineData(_CamelModel):
    sessions: List[Any] = Field(default_factory=list)
    messages: List[Any] = Field(default_factory=list)
    notifications: List[Any] = Field(default_factory=list)
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    last_sync: datetime = Field(default_factory=utcnow)


# Public category name -> OfflineData attribute.
CACHE_CATEGORIES: Dict[str, str] = {
    "sessions": "sessions",
    "messages": "messages",
    "notifications": "notifications",
    "userPreferences": "user_preferences",
    "user_preferences": "user_preferences",
}


def resolve_category(kind: str) -> str:
    try:
        return CACHE_CATEGORIES[kind]
    except KeyError:
        raise ValueError(f"Unknown cache category: {kind!r}") from None


class SyncStatus(_CamelModel):
    is_online: bool
    pending_actions: int
    failed_actions: int = 0
    last_sync: datetime
    cached_data: OfflineData


__all__ = [
    "ActionStatus",
    "ActionType",
    "CACHE_CATEGORIES",
    "OfflineAction",
    "OfflineData",
    "SyncStatus",
    "resolve_category",
    "utcnow",
]
