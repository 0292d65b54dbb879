"""Offline action manager: read cache, durable action queue and sync engine."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Union
from uuid import uuid4

import httpx

from .config import OfflineConfig
from .connectivity import ConnectivityMonitor
from .dispatch import ActionDispatcher, DispatchResult
from .handlers import HandlerRegistry, default_registry
from .metrics import ACTIONS_PROCESSED, DISPATCH_LATENCY, PENDING_ACTIONS, SYNC_PASSES
from .models import ActionStatus, ActionType, OfflineAction, SyncStatus, resolve_category, utcnow
from .retry import RetryPolicy
from .scheduler import PeriodicScheduler
from .storage import KeyValueStore, OfflineStore, build_store
from .worker import OFFLINE_STATUS, SYNC, SYNC_TAG, BackgroundSyncWorker

logger = logging.getLogger(__name__)


class OfflineManager:
    """Owns the offline read cache and the queue of mutations awaiting delivery.

    Storage-bound methods are synchronous and never raise on storage failure.
    Sync passes run on the event loop, one at a time per manager: a trigger
    arriving while a pass is running asks that pass to run once more and waits
    for it instead of starting a second one.
    """

    def __init__(
        self,
        config: Optional[OfflineConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        registry: Optional[HandlerRegistry] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        worker: Optional[BackgroundSyncWorker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
        name: str = "default",
    ) -> None:
        self._config = config or OfflineConfig()
        self._store = OfflineStore(store if store is not None else build_store(self._config.storage_path))
        self._registry = registry or default_registry()
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or ActionDispatcher(self._config, transport=transport)
        self._monitor = monitor or ConnectivityMonitor(online=self._config.start_online)
        self._owns_worker = worker is None and bool(self._config.probe_url)
        self._worker = worker or (BackgroundSyncWorker(self._config) if self._config.probe_url else None)
        self._retry = retry_policy or RetryPolicy.from_config(self._config)
        self._clock = clock
        self._name = name
        self._scheduler = PeriodicScheduler(self._config.sync_interval, self._on_tick, name="offline-sync")
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: List[Callable[[], None]] = []
        self._started = False
        self._sync_in_flight = False
        self._rerun_requested = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def config(self) -> OfflineConfig:
        return self._config

    @property
    def monitor(self) -> ConnectivityMonitor:
        return self._monitor

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def syncing(self) -> bool:
        return self._sync_in_flight

    # Lifecycle

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._recover_interrupted()
        self._unsubscribe.append(self._monitor.add_listener(self._handle_connectivity))
        if self._worker is not None:
            self._unsubscribe.append(self._worker.add_message_listener(self.handle_worker_message))
            self._worker.start()
        if self.is_online():
            self._scheduler.start()
        self._refresh_pending_gauge()
        logger.info(
            "Offline manager started (online=%s, interval=%.1fs, base_url=%s)",
            self.is_online(),
            self._config.sync_interval,
            self._config.base_url,
        )

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        self._scheduler.stop()
        if self._worker is not None:
            self._worker.stop()
        await self.wait_for_sync()
        if self._started:
            logger.info("Offline manager stopped")
        self._started = False

    async def aclose(self) -> None:
        await self.stop()
        try:
            PENDING_ACTIONS.remove(self._name)
        except KeyError:
            pass
        if self._owns_dispatcher:
            await self._dispatcher.close()
        if self._owns_worker and self._worker is not None:
            await self._worker.close()

    async def __aenter__(self) -> "OfflineManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def wait_for_sync(self) -> None:
        """Wait until every sync pass triggered by events or timer ticks has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Read cache

    def cache_data(self, kind: str, data: Any) -> None:
        attr = resolve_category(kind)
        current = self._store.get_data()
        setattr(current, attr, data)
        current.last_sync = self._clock()
        self._store.set_data(current)
        logger.info("Cached %s %s for offline access", len(data), kind)

    def get_cached_data(self, kind: str) -> Any:
        attr = resolve_category(kind)
        return getattr(self._store.get_data(), attr)

    def clear_cached_data(self, kind: Optional[str] = None) -> None:
        if kind is None:
            self._store.clear_data()
        else:
            attr = resolve_category(kind)
            data = self._store.get_data()
            setattr(data, attr, {} if attr == "user_preferences" else [])
            self._store.set_data(data)
        logger.info("Cleared cached %s data", kind or "all")

    # Action queue

    def queue_offline_action(self, action_type: Union[ActionType, str], payload: Dict[str, Any]) -> str:
        """Validate and persist a mutation for later delivery; returns its id.

        Raises ``ActionValidationError`` for unknown types or malformed payloads.
        Storage and background-sync registration failures are logged only.
        """
        type_name = action_type.value if isinstance(action_type, ActionType) else action_type
        handler = self._registry.require(type_name)
        body = handler.validate(payload)

        timestamp = self._clock()
        action = OfflineAction(id=self._generate_id(timestamp), type=type_name, payload=body, timestamp=timestamp)
        actions = self._store.get_actions()
        actions.append(action)
        self._store.set_actions(actions)
        self._refresh_pending_gauge()

        if self._worker is not None:
            try:
                self._worker.register_sync(SYNC_TAG)
            except Exception as exc:
                logger.error("Background sync registration failed for id=%s: %s", action.id, exc)

        logger.info("Queued offline action id=%s type=%s", action.id, type_name)
        return action.id

    def get_actions(self) -> List[OfflineAction]:
        return self._store.get_actions()

    def get_pending_actions(self) -> List[OfflineAction]:
        return [action for action in self._store.get_actions() if action.status is ActionStatus.PENDING]

    def get_failed_actions(self) -> List[OfflineAction]:
        return [action for action in self._store.get_actions() if action.status is ActionStatus.FAILED]

    def update_action_status(self, action_id: str, status: Union[ActionStatus, str]) -> None:
        self._update_action(action_id, ActionStatus(status))

    def remove_action(self, action_id: str) -> None:
        actions = self._store.get_actions()
        self._store.set_actions([action for action in actions if action.id != action_id])

    def retry_action(self, action_id: str) -> bool:
        """Re-arm an action (typically a failed one) for delivery on the next pass."""
        updated = self._update_action(
            action_id,
            ActionStatus.PENDING,
            retry_count=0,
            next_attempt_at=None,
            last_error=None,
        )
        if updated is None:
            return False
        self._refresh_pending_gauge()
        logger.info("Re-queued action id=%s type=%s", action_id, updated.type)
        return True

    def _recover_interrupted(self) -> None:
        """Return actions left in ``syncing`` by an interrupted pass or process to ``pending``."""
        actions = self._store.get_actions()
        stale = [action for action in actions if action.status is ActionStatus.SYNCING]
        if not stale:
            return
        for action in stale:
            action.status = ActionStatus.PENDING
        self._store.set_actions(actions)
        logger.warning("Recovered %s actions interrupted mid-sync", len(stale))

    def _update_action(self, action_id: str, status: ActionStatus, **changes: Any) -> Optional[OfflineAction]:
        actions = self._store.get_actions()
        for action in actions:
            if action.id != action_id:
                continue
            action.status = status
            if status is ActionStatus.SYNCING:
                action.retry_count += 1
            for name, value in changes.items():
                setattr(action, name, value)
            self._store.set_actions(actions)
            return action
        return None

    # Sync engine

    async def sync_all_pending_actions(self) -> None:
        if not self.is_online():
            return
        if self._sync_in_flight:
            self._rerun_requested = True
            await self._idle.wait()
            return

        self._sync_in_flight = True
        self._idle.clear()
        try:
            while True:
                self._rerun_requested = False
                await self._run_pass()
                if not self._rerun_requested or not self.is_online():
                    break
                logger.debug("Sync requested during pass; running again")
        finally:
            self._sync_in_flight = False
            self._idle.set()

    async def force_sync(self) -> None:
        if self.is_online():
            await self.sync_all_pending_actions()

    async def _run_pass(self) -> None:
        SYNC_PASSES.inc()
        now = self._clock()
        due = [action for action in self.get_pending_actions() if action.is_due(now)]
        if due:
            logger.info("Syncing %s pending actions", len(due))
            for action in due:
                await self._sync_action(action)
        self._refresh_pending_gauge()

    async def _sync_action(self, action: OfflineAction) -> None:
        current = self._update_action(action.id, ActionStatus.SYNCING)
        if current is None:
            logger.debug("Action id=%s removed before sync", action.id)
            return

        handler = self._registry.get(current.type)
        if handler is None:
            logger.warning("Unknown action type=%s id=%s", current.type, current.id)
            self._update_action(current.id, ActionStatus.PENDING, last_error=f"unknown action type {current.type!r}")
            ACTIONS_PROCESSED.labels(type="unknown", outcome="unhandled").inc()
            return

        started = time.perf_counter()
        try:
            result = await self._dispatcher.dispatch(handler, current.id, current.payload)
        except asyncio.CancelledError:
            self._update_action(current.id, ActionStatus.PENDING, last_error="sync cancelled")
            logger.warning("Sync of action id=%s type=%s cancelled; back to pending", current.id, current.type)
            raise
        except Exception as exc:
            logger.exception("Error syncing action id=%s type=%s", current.id, current.type)
            result = DispatchResult(ok=False, error=str(exc) or exc.__class__.__name__)
        DISPATCH_LATENCY.labels(type=current.type).observe(time.perf_counter() - started)

        if result.ok:
            self._update_action(current.id, ActionStatus.COMPLETED)
            self.remove_action(current.id)
            ACTIONS_PROCESSED.labels(type=current.type, outcome="completed").inc()
            logger.info("Successfully synced action id=%s type=%s", current.id, current.type)
            return

        if self._retry.exhausted(current.retry_count):
            self._update_action(current.id, ActionStatus.FAILED, last_error=result.error, next_attempt_at=None)
            ACTIONS_PROCESSED.labels(type=current.type, outcome="failed").inc()
            logger.error(
                "Giving up on action id=%s type=%s after %s attempts: %s",
                current.id,
                current.type,
                current.retry_count,
                result.error,
            )
            return

        next_attempt = self._retry.next_attempt(current.retry_count, self._clock())
        self._update_action(current.id, ActionStatus.PENDING, last_error=result.error, next_attempt_at=next_attempt)
        ACTIONS_PROCESSED.labels(type=current.type, outcome="retry").inc()
        logger.error(
            "Failed to sync action id=%s type=%s attempt=%s next_attempt=%s",
            current.id,
            current.type,
            current.retry_count,
            next_attempt.isoformat() if next_attempt else "next pass",
        )

    # Connectivity

    def is_online(self) -> bool:
        return self._monitor.online

    def handle_worker_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == OFFLINE_STATUS:
            online = bool(message.get("isOnline"))
            self._monitor.set_online(online, notify=False)
            self._handle_connectivity(online)
        elif kind == SYNC:
            logger.debug("Background sync requested tag=%s", message.get("tag"))
            self._trigger_sync()
        else:
            logger.debug("Ignoring worker message type=%s", kind)

    def _handle_connectivity(self, online: bool) -> None:
        if online:
            logger.info("Device is online - starting sync")
            self._scheduler.start()
            self._trigger_sync()
        else:
            logger.info("Device is offline - stopping sync")
            self._scheduler.stop()

    def _on_tick(self) -> None:
        if self.is_online():
            self._trigger_sync()

    def _trigger_sync(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Sync trigger ignored: no running event loop")
            return
        task = loop.create_task(self.sync_all_pending_actions())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Status

    def get_sync_status(self) -> SyncStatus:
        actions = self._store.get_actions()
        data = self._store.get_data()
        return SyncStatus(
            is_online=self.is_online(),
            pending_actions=sum(1 for action in actions if action.status is ActionStatus.PENDING),
            failed_actions=sum(1 for action in actions if action.status is ActionStatus.FAILED),
            last_sync=data.last_sync,
            cached_data=data,
        )

    def clear_all_data(self) -> None:
        self._store.clear_data()
        self._store.clear_actions()
        self._refresh_pending_gauge()
        logger.info("Cleared all offline data")

    def _refresh_pending_gauge(self) -> None:
        PENDING_ACTIONS.labels(manager=self._name).set(len(self.get_pending_actions()))

    @staticmethod
    def _generate_id(timestamp: datetime) -> str:
        return f"action_{int(timestamp.timestamp() * 1000)}_{uuid4().hex[:9]}"


__all__ = ["OfflineManager"]
