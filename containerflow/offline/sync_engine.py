# =============================================================================
# containerflow/offline/sync_engine.py
# Single-Flight Queue Drain Engine
# =============================================================================
"""
SyncEngine - Delivers queued offline actions to the backend in order.

Features:
- Single-flight: a drain requested while another runs returns at once
- Ascending-id delivery; a failed or deferred action blocks later actions
  on the same resource but not on independent resources
- Result classification: success / client rejection / auth / transient
- Attempt ceiling for transient failures, no retry within a pass
- Auth failures abort the drain and leave everything pending
- Event callbacks on drain start and finish
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple
import logging

from containerflow.errors import (
    AuthRequiredError,
    ClientRejectedError,
    ConfigurationError,
    TransientSyncError,
)
from containerflow.logging import LogContext
from containerflow.offline.action_queue import ActionQueueStore, ActionStatus, PendingAction
from containerflow.offline.connection_manager import ConnectivityEvent, ConnectivityMonitor
from containerflow.offline.transport import MutationResult, MutationTransport

logger = logging.getLogger(__name__)


NOT_YET_SYNCED_TEXT = "Not yet synced"
UP_TO_DATE_TEXT = "Up to date"
ALL_SYNCED_TEXT = "All changes synced"
AUTH_REQUIRED_TEXT = "Sign in again to sync your changes"

TRANSIENT_CLIENT_STATUSES = {408, 429}


class EngineState(Enum):
    """Drain state machine."""
    IDLE = "idle"
    DRAINING = "draining"


class DrainOutcome(Enum):
    """How a drain request ended."""
    COMPLETED = "completed"
    EMPTY = "empty"
    SKIPPED_OFFLINE = "skipped_offline"
    SKIPPED_BUSY = "skipped_busy"
    AUTH_REQUIRED = "auth_required"


@dataclass
class SyncSession:
    """Tally of a single drain pass."""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    processed: int = 0
    failed: int = 0
    deferred: int = 0
    blocked: int = 0
    outcome: Optional[DrainOutcome] = None
    trigger: str = "direct"         # manual, reconnect, queued, retry
    duration: Optional[float] = None

    @property
    def ran(self) -> bool:
        return self.outcome not in (DrainOutcome.SKIPPED_OFFLINE, DrainOutcome.SKIPPED_BUSY)


def format_last_sync(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Render a sync timestamp relative to now."""
    if timestamp is None:
        return "Never"

    now = now or datetime.now()
    diff = (now - timestamp).total_seconds()

    if diff < 60:
        return "Just now"
    if diff < 3600:
        return f"{int(diff // 60)} min ago"
    if diff < 86400:
        return f"{int(diff // 3600)} hours ago"
    return timestamp.strftime("%Y-%m-%d")


def classify_result(result: MutationResult, action_id: Optional[int] = None) -> None:
    """
    Raise the sync error matching a failed mutation result.

    Returns normally for a 2xx success.
    """
    code = result.status_code
    if result.success and (code is None or 200 <= code < 300):
        return

    message = result.error_body or (f"HTTP {code}" if code else "Request failed")

    if code in (401, 403):
        raise AuthRequiredError(message, action_id=action_id, status_code=code)
    if result.is_html_response or code is None or code >= 500 or code in TRANSIENT_CLIENT_STATUSES:
        raise TransientSyncError(message, action_id=action_id, status_code=code)
    if 400 <= code < 500:
        raise ClientRejectedError(message, action_id=action_id, status_code=code)
    raise TransientSyncError(f"Unexpected response: {message}", action_id=action_id, status_code=code)


class SyncEngine:
    """
    Drains the action queue against the backend.

    Usage:
        engine = SyncEngine(store, monitor, transport, current_user_id)
        engine.start()                  # drain on every wentOnline
        engine.sync_pending_actions()   # manual, fire-and-forget
        session = engine.drain()        # synchronous, returns the tally
    """

    MAX_ATTEMPTS = 5    # Transient attempt ceiling per action

    def __init__(
        self,
        store: ActionQueueStore,
        monitor: ConnectivityMonitor,
        transport: MutationTransport,
        current_user_id: Callable[[], Optional[str]],
        max_attempts: Optional[int] = None,
    ):
        self._store = store
        self._monitor = monitor
        self._transport = transport
        self._current_user_id = current_user_id
        if max_attempts is None:
            max_attempts = self.MAX_ATTEMPTS
        if max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1",
                config_key="max_attempts",
                expected_type="int >= 1",
            )
        self.max_attempts = max_attempts

        self._drain_lock = threading.Lock()
        self._state = EngineState.IDLE
        self._worker: Optional[threading.Thread] = None
        self._callbacks: List[Callable[[SyncSession], None]] = []
        self._last_sync_text = NOT_YET_SYNCED_TEXT
        self._last_session: Optional[SyncSession] = None
        self.auth_required = False

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        """True exactly while a drain is running."""
        return self._state is EngineState.DRAINING

    @property
    def last_sync_text(self) -> str:
        return self._last_sync_text

    @property
    def last_session(self) -> Optional[SyncSession]:
        return self._last_session

    def start(self) -> None:
        """Drain whenever connectivity comes back."""
        self._monitor.register_callback(self._on_connectivity_change)
        logger.info("SyncEngine started")

    def stop(self) -> None:
        self._monitor.unregister_callback(self._on_connectivity_change)
        logger.info("SyncEngine stopped")

    def _on_connectivity_change(self, event: ConnectivityEvent) -> None:
        if event is ConnectivityEvent.WENT_ONLINE:
            logger.info("Connection restored, triggering sync")
            self.sync_pending_actions("reconnect")

    def sync_pending_actions(self, trigger: str = "manual") -> Optional[threading.Thread]:
        """
        Fire-and-forget drain on a worker thread.

        The guard is taken here, before the worker starts, so a second
        trigger right after this one returns is absorbed.

        Returns:
            The worker thread, or None if the request was absorbed
        """
        if not self._monitor.is_online:
            logger.debug("Cannot sync: offline")
            return None
        if not self._begin_drain():
            logger.debug(f"Sync already in progress, {trigger} request absorbed")
            return None

        session = SyncSession(trigger=trigger)
        worker = threading.Thread(
            target=self._drain_held, args=(session,), daemon=True, name="SyncEngine"
        )
        self._worker = worker
        try:
            worker.start()
        except RuntimeError:
            self._end_drain()
            raise
        return worker

    def drain(self, trigger: str = "direct") -> SyncSession:
        """
        Run one drain pass in the calling thread.

        Returns:
            The session tally; ``outcome`` tells whether the pass ran
        """
        session = SyncSession(trigger=trigger)

        if not self._monitor.is_online:
            session.outcome = DrainOutcome.SKIPPED_OFFLINE
            return session

        if not self._begin_drain():
            session.outcome = DrainOutcome.SKIPPED_BUSY
            return session

        return self._drain_held(session)

    def _begin_drain(self) -> bool:
        """Take the drain guard; False if a drain already holds it."""
        if not self._drain_lock.acquire(blocking=False):
            return False
        self._state = EngineState.DRAINING
        return True

    def _end_drain(self) -> None:
        self._state = EngineState.IDLE
        self._drain_lock.release()

    def _drain_held(self, session: SyncSession) -> SyncSession:
        """Run a pass; the caller already holds the drain guard."""
        context = LogContext(logger, "Draining action queue", trigger=session.trigger)
        try:
            self._notify_callbacks(session)
            with context:
                self._run(session)
        finally:
            session.finished_at = datetime.now()
            session.duration = context.elapsed
            self._last_session = session
            self._end_drain()
            self._notify_callbacks(session)

        logger.info(
            f"Sync complete ({session.trigger}): {session.processed} synced, "
            f"{session.failed} failed, {session.deferred} deferred, "
            f"{session.blocked} blocked"
        )
        return session

    def _run(self, session: SyncSession) -> None:
        blocked: Set[Tuple[str, str]] = set()
        last_seen = 0

        # Actions queued while draining are picked up in follow-up batches
        while True:
            batch = [a for a in self._store.list() if a.id > last_seen]
            if not batch:
                break
            last_seen = batch[-1].id

            for action in batch:
                if not self._process(action, session, blocked):
                    return

        self.auth_required = False
        if last_seen == 0:
            session.outcome = DrainOutcome.EMPTY
            self._store.set_last_sync_time()
            self._last_sync_text = UP_TO_DATE_TEXT
        else:
            session.outcome = DrainOutcome.COMPLETED
            self._last_sync_text = self._summarize(session)

    def _process(
        self,
        action: PendingAction,
        session: SyncSession,
        blocked: Set[Tuple[str, str]],
    ) -> bool:
        """
        Handle one action.

        Returns:
            False when the whole drain must stop
        """
        key = action.resource_key

        if action.status is ActionStatus.FAILED:
            blocked.add(key)
            return True
        if key in blocked:
            session.blocked += 1
            logger.debug(f"Action {action.id} blocked behind an earlier action on {key}")
            return True

        try:
            self._deliver(action)

        except AuthRequiredError as e:
            self._store.clear_in_flight(action.id)
            session.outcome = DrainOutcome.AUTH_REQUIRED
            self.auth_required = True
            self._last_sync_text = AUTH_REQUIRED_TEXT
            logger.warning(f"Sync aborted, authentication required: {e}")
            return False

        except ClientRejectedError as e:
            self._store.record_attempt(action.id, e.message)
            self._store.mark_failed(action.id, e.message)
            session.failed += 1
            blocked.add(key)
            logger.warning(f"Action {action.id} rejected by backend: {e.message}")

        except TransientSyncError as e:
            attempts = self._store.record_attempt(action.id, e.message)
            if attempts >= self.max_attempts:
                self._store.mark_failed(action.id, e.message)
                session.failed += 1
                logger.warning(
                    f"Action {action.id} failed after {attempts} attempts: {e.message}"
                )
            else:
                self._store.clear_in_flight(action.id, e.message)
                session.deferred += 1
                logger.info(
                    f"Action {action.id} deferred ({attempts}/{self.max_attempts}): {e.message}"
                )
            blocked.add(key)

        else:
            self._store.remove(action.id)
            session.processed += 1

        return True

    def _deliver(self, action: PendingAction) -> None:
        """Send one action; raises a SyncError subclass on failure."""
        user_id = self._current_user_id()
        if not user_id:
            raise AuthRequiredError("No signed-in user", action_id=action.id)

        self._store.mark_in_flight(action.id)
        try:
            result = self._transport(action.method, action.route, action.payload, user_id)
        except Exception as e:
            logger.error(f"Transport error for action {action.id}: {e}", exc_info=True)
            raise TransientSyncError(f"Transport error: {e}", action_id=action.id)

        classify_result(result, action.id)

    def _summarize(self, session: SyncSession) -> str:
        remaining = self._store.count()
        if session.processed or remaining == 0:
            self._store.set_last_sync_time()

        if remaining == 0:
            return ALL_SYNCED_TEXT

        if session.failed or self._store.list(ActionStatus.FAILED):
            noun = "change" if remaining == 1 else "changes"
            return f"{remaining} {noun} could not be synced"

        return f"Last synced: {format_last_sync(self._store.get_last_sync_time())}"

    def register_callback(self, callback: Callable[[SyncSession], None]) -> None:
        """Register a callback for drain start/finish."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncSession], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self, session: SyncSession) -> None:
        for callback in list(self._callbacks):
            try:
                callback(session)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> dict:
        """Get sync status for UI display."""
        session = self._last_session
        return {
            "is_syncing": self.is_syncing,
            "last_sync_text": self._last_sync_text,
            "auth_required": self.auth_required,
            "last_outcome": session.outcome.value if session and session.outcome else None,
            "last_processed": session.processed if session else 0,
            "last_failed": session.failed if session else 0,
        }
