# =============================================================================
# containerflow/offline/sync_status.py
# Sync Status Facade - Single API for the UI
# =============================================================================
"""
SyncStatus - Read-only sync state plus the manual trigger.

Every value is derived on read from the queue store, the connectivity
monitor and the engine; nothing is cached here.

Usage:
------
from containerflow.offline import get_sync_status

status = get_sync_status()
status.queue_action("tasks", ActionOperation.UPDATE, {"status": "done"},
                    resource_id="t-17")

print(status.is_online)
print(status.pending_actions_count)
print(status.last_sync_text)
status.sync_pending_actions()
"""

from __future__ import annotations
import threading
from typing import Any, Callable, Dict, List, Optional
import logging

import pandas as pd

from containerflow.config import SyncSettings
from containerflow.offline.action_queue import ActionOperation, ActionQueueStore, PendingAction
from containerflow.offline.connection_manager import (
    ConnectivityEvent,
    ConnectivityMonitor,
    http_probe,
)
from containerflow.offline.sync_engine import DrainOutcome, SyncEngine, SyncSession
from containerflow.offline.transport import MutationTransport, RequestsMutationTransport

logger = logging.getLogger(__name__)

AUTH_USER_KEY = "auth_user_id"


class SyncStatus:
    """
    UI-facing view of the offline queue.

    Callbacks registered with ``register_callback`` run after every queue,
    connectivity or drain-state change; they take no arguments and should
    re-read whatever they display.
    """

    def __init__(
        self,
        store: ActionQueueStore,
        monitor: ConnectivityMonitor,
        engine: SyncEngine,
        on_auth_required: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._monitor = monitor
        self._engine = engine
        self._on_auth_required = on_auth_required
        self._callbacks: List[Callable[[], None]] = []

        self._monitor.register_callback(self._on_connectivity_change)
        self._engine.register_callback(self._on_drain_change)

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        current_user_id: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[MutationTransport] = None,
        on_auth_required: Optional[Callable[[], None]] = None,
    ) -> SyncStatus:
        """
        Wire store, monitor, transport and engine from settings.

        Without ``current_user_id``, the user id saved with
        ``set_current_user`` is used.
        """
        store = ActionQueueStore(settings.db_path)
        monitor = ConnectivityMonitor(
            probe=http_probe(settings.api_url, timeout=min(settings.http_timeout, 5.0)),
            hold_down=settings.hold_down,
            check_interval_online=settings.check_interval_online,
            check_interval_offline=settings.check_interval_offline,
        )
        transport = transport or RequestsMutationTransport(
            settings.api_url, timeout=settings.http_timeout
        )
        if current_user_id is None:
            def current_user_id() -> Optional[str]:
                value = store.get_setting(AUTH_USER_KEY)
                return str(value) if value else None

        engine = SyncEngine(
            store,
            monitor,
            transport,
            current_user_id,
            max_attempts=settings.max_attempts,
        )
        return cls(store, monitor, engine, on_auth_required=on_auth_required)

    def start(self) -> None:
        """Begin probing connectivity and draining on reconnect."""
        self._engine.start()
        self._monitor.start_monitoring()

    def stop(self) -> None:
        self._monitor.stop_monitoring()
        self._engine.stop()

    # =========================================================================
    # DERIVED STATE
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self._monitor.is_online

    @property
    def pending_actions_count(self) -> int:
        """Queued actions, failed ones included."""
        return self._store.count()

    @property
    def is_syncing(self) -> bool:
        return self._engine.is_syncing

    @property
    def last_sync_text(self) -> str:
        return self._engine.last_sync_text

    @property
    def auth_required(self) -> bool:
        """True after a drain aborted for lack of authentication."""
        return self._engine.auth_required

    @property
    def store(self) -> ActionQueueStore:
        return self._store

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    @property
    def monitor(self) -> ConnectivityMonitor:
        return self._monitor

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def sync_pending_actions(self, trigger: str = "manual") -> None:
        """Manual trigger; a no-op while offline or already syncing."""
        self._engine.sync_pending_actions(trigger)

    def queue_action(
        self,
        resource_kind: str,
        operation: ActionOperation,
        payload: Optional[Dict[str, Any]] = None,
        resource_id: Optional[str] = None,
        method: Optional[str] = None,
        route: Optional[str] = None,
    ) -> int:
        """Enqueue a mutation and, when online, start draining."""
        action_id = self._store.enqueue(
            resource_kind,
            operation,
            payload,
            resource_id=resource_id,
            method=method,
            route=route,
        )
        self._notify_callbacks()
        if self.is_online:
            self.sync_pending_actions("queued")
        return action_id

    def list_pending_actions(self) -> List[PendingAction]:
        return self._store.list()

    def pending_actions_frame(self) -> pd.DataFrame:
        return self._store.to_dataframe()

    def discard_action(self, action_id: int) -> bool:
        """Drop a failed action for good."""
        discarded = self._store.discard(action_id)
        if discarded:
            self._notify_callbacks()
        return discarded

    def retry_action(self, action_id: int) -> bool:
        """Re-arm a failed action and try to deliver it."""
        reset = self._store.retry(action_id)
        if reset:
            self._notify_callbacks()
            self.sync_pending_actions("retry")
        return reset

    def clear_pending_actions(self) -> int:
        """Throw away the whole queue, e.g. on sign-out."""
        removed = self._store.clear()
        self._notify_callbacks()
        return removed

    def set_current_user(self, user_id: Optional[str]) -> None:
        """Persist the signed-in user id used for the x-user-id header."""
        self._store.set_setting(AUTH_USER_KEY, user_id or "")
        if user_id:
            self._engine.auth_required = False
        self._notify_callbacks()

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback for any state change."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in sync status callback: {e}")

    def _on_connectivity_change(self, event: ConnectivityEvent) -> None:
        self._notify_callbacks()

    def _on_drain_change(self, session: SyncSession) -> None:
        if session.outcome is DrainOutcome.AUTH_REQUIRED and self._on_auth_required:
            try:
                self._on_auth_required()
            except Exception as e:
                logger.error(f"Error in auth-required handler: {e}")
        self._notify_callbacks()

    def get_status_display(self) -> Dict[str, Any]:
        """Get the combined status for UI display."""
        return {
            "is_online": self.is_online,
            "pending_actions_count": self.pending_actions_count,
            "is_syncing": self.is_syncing,
            "last_sync_text": self.last_sync_text,
            "auth_required": self.auth_required,
        }


# Singleton accessor
_sync_status: Optional[SyncStatus] = None
_lock = threading.Lock()


def get_sync_status(settings: Optional[SyncSettings] = None) -> SyncStatus:
    """Get the global SyncStatus instance, starting it on first use."""
    global _sync_status
    if _sync_status is None:
        with _lock:
            if _sync_status is None:
                _sync_status = SyncStatus.from_settings(settings or SyncSettings.from_env())
                _sync_status.start()
    return _sync_status


def sync_pending_actions() -> None:
    """Convenience function to trigger a drain."""
    get_sync_status().sync_pending_actions()
