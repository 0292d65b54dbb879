"""Prometheus metrics for the offline sync engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

SYNC_PASSES = Counter("offline_sync_passes_total", "Sync passes executed")
ACTIONS_PROCESSED = Counter(
    "offline_actions_processed_total",
    "Queued actions processed by the sync engine",
    ["type", "outcome"],
)
DISPATCH_LATENCY = Histogram("offline_action_dispatch_seconds", "Action dispatch latency", ["type"])
PENDING_ACTIONS = Gauge("offline_pending_actions", "Actions waiting for delivery", ["manager"])
STORAGE_ERRORS = Counter("offline_storage_errors_total", "Durable storage failures", ["operation"])

__all__ = [
    "ACTIONS_PROCESSED",
    "DISPATCH_LATENCY",
    "PENDING_ACTIONS",
    "STORAGE_ERRORS",
    "SYNC_PASSES",
]
