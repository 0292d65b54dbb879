"""Offline action queue and sync manager for the TutorConnect client."""

from .config import OfflineConfig
from .manager import OfflineManager
from .models import ActionStatus, ActionType, OfflineAction, OfflineData, SyncStatus
from .schemas import ActionValidationError

__all__ = [
    "ActionStatus",
    "ActionType",
    "ActionValidationError",
    "OfflineAction",
    "OfflineConfig",
    "OfflineData",
    "OfflineManager",
    "SyncStatus",
]
