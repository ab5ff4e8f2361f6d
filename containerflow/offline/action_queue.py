# =============================================================================
# containerflow/offline/action_queue.py
# Durable Queue of Pending Offline Actions
# =============================================================================
"""
ActionQueueStore - SQLite-backed, restart-durable queue of mutations.

Features:
- Monotonic action ids from a persisted counter (never reused)
- Crash recovery: actions left in flight are reset to pending on open
- Corrupt rows are dropped with a logged diagnostic
- Settings table for the last successful sync timestamp
- DataFrame view of the queue (pandas)
- Thread-safe: every statement runs under one store mutex
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

import numpy as np
import pandas as pd

from containerflow.errors import StorageCorruptError

logger = logging.getLogger(__name__)


class ActionOperation(Enum):
    """Kind of mutation a queued action performs."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ActionStatus(Enum):
    """Delivery status of a queued action."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


DEFAULT_METHODS = {
    ActionOperation.CREATE: "POST",
    ActionOperation.UPDATE: "PATCH",
    ActionOperation.DELETE: "DELETE",
}


def build_route(
    resource_kind: str,
    operation: ActionOperation,
    resource_id: Optional[str] = None,
) -> str:
    """
    Derive the backend route for an action.

    Create targets the collection, update and delete target the item:

        build_route("tasks", ActionOperation.CREATE)          -> /api/tasks
        build_route("tasks", ActionOperation.UPDATE, "t-17")  -> /api/tasks/t-17
    """
    base = f"/api/{resource_kind.strip('/')}"
    if operation is ActionOperation.CREATE:
        return base
    if resource_id is None:
        raise ValueError(f"{operation.value} on {resource_kind} requires a resource_id")
    return f"{base}/{resource_id}"


@dataclass
class PendingAction:
    """One queued mutation destined for the backend."""
    id: int
    resource_kind: str
    resource_id: Optional[str]
    operation: ActionOperation
    method: str
    route: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=datetime.now)
    attempts: int = 0
    last_error: Optional[str] = None
    status: ActionStatus = ActionStatus.PENDING

    @property
    def resource_key(self) -> Tuple[str, str]:
        """Ordering key; a create without a resource id stands alone."""
        if self.resource_id is None:
            return (self.resource_kind, f"#{self.id}")
        return (self.resource_kind, self.resource_id)

    @property
    def is_failed(self) -> bool:
        return self.status is ActionStatus.FAILED


def _clean_payload(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """Serialize a payload, converting datetimes, numpy scalars and NaN."""
    if payload is None:
        return None

    clean_data = {}
    for k, v in payload.items():
        if isinstance(v, datetime):
            clean_data[k] = v.isoformat()
        elif isinstance(v, np.integer):
            clean_data[k] = int(v)
        elif isinstance(v, np.floating):
            clean_data[k] = None if np.isnan(v) else float(v)
        elif not isinstance(v, (dict, list, tuple)) and pd.isna(v):
            clean_data[k] = None
        else:
            clean_data[k] = v
    return json.dumps(clean_data)


class ActionQueueStore:
    """
    Durable, ordered store of pending actions.

    Usage:
        store = ActionQueueStore(Path("local_data/sync.db"))
        action_id = store.enqueue("tasks", ActionOperation.UPDATE,
                                  {"status": "done"}, resource_id="t-17")
        for action in store.list():
            ...
    """

    SCHEMA = {
        "pending_actions": """
            CREATE TABLE IF NOT EXISTS pending_actions (
                id INTEGER PRIMARY KEY,
                resource_kind TEXT NOT NULL,
                resource_id TEXT,
                operation TEXT NOT NULL,
                method TEXT NOT NULL,
                route TEXT NOT NULL,
                payload_json TEXT,
                created_at TEXT NOT NULL,
                attempts INTEGER DEFAULT 0,
                last_attempt TEXT,
                last_error TEXT,
                status TEXT DEFAULT 'pending'
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    NEXT_ID_KEY = "next_action_id"
    LAST_SYNC_KEY = "last_sync_timestamp"

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (or create) the queue database and run crash recovery.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._mutex = threading.RLock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self.recovered_count = 0
        self.initialize()

    @contextmanager
    def transaction(self):
        """Serialized transaction; commits on success, rolls back on error."""
        with self._mutex:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def initialize(self) -> None:
        """Create the schema and reset actions left in flight by a crash."""
        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

            cursor = conn.execute(
                "UPDATE pending_actions SET status = ? WHERE status = ?",
                [ActionStatus.PENDING.value, ActionStatus.IN_FLIGHT.value],
            )
            self.recovered_count = cursor.rowcount

        if self.recovered_count:
            logger.warning(
                f"Recovered {self.recovered_count} in-flight action(s) as pending"
            )
        logger.info(f"Action queue opened at: {self.db_path}")

    # =========================================================================
    # QUEUE OPERATIONS
    # =========================================================================

    def enqueue(
        self,
        resource_kind: str,
        operation: ActionOperation,
        payload: Optional[Dict[str, Any]] = None,
        resource_id: Optional[str] = None,
        method: Optional[str] = None,
        route: Optional[str] = None,
    ) -> int:
        """
        Append an action to the queue.

        Args:
            resource_kind: Backend resource collection, e.g. "tasks"
            operation: Create, update or delete
            payload: JSON-serializable request body
            resource_id: Target entity (None for a plain create)
            method: HTTP method override
            route: Route override, e.g. "/api/tasks/t-17/pickup"

        Returns:
            The new action id
        """
        operation = ActionOperation(operation)
        resource_id = None if resource_id is None else str(resource_id)
        method = (method or DEFAULT_METHODS[operation]).upper()
        route = route or build_route(resource_kind, operation, resource_id)
        payload_json = _clean_payload(payload)

        with self.transaction() as conn:
            action_id = self._next_id(conn)
            conn.execute(
                """
                INSERT INTO pending_actions
                    (id, resource_kind, resource_id, operation, method, route,
                     payload_json, created_at, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [action_id, resource_kind, resource_id, operation.value, method,
                 route, payload_json, datetime.now().isoformat(),
                 ActionStatus.PENDING.value],
            )

        logger.debug(f"Queued action {action_id}: {method} {route}")
        return action_id

    def _next_id(self, conn: sqlite3.Connection) -> int:
        """Allocate the next id from the persisted counter."""
        row = conn.execute(
            "SELECT value FROM app_settings WHERE key = ?", [self.NEXT_ID_KEY]
        ).fetchone()
        max_row = conn.execute("SELECT MAX(id) AS max_id FROM pending_actions").fetchone()

        next_id = int(row["value"]) if row else 1
        if max_row["max_id"] is not None:
            next_id = max(next_id, max_row["max_id"] + 1)

        conn.execute(
            "INSERT OR REPLACE INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)",
            [self.NEXT_ID_KEY, str(next_id + 1), datetime.now().isoformat()],
        )
        return next_id

    def list(self, status: Optional[ActionStatus] = None) -> List[PendingAction]:
        """
        Get queued actions in ascending id order.

        Rows that cannot be decoded are removed and logged.
        """
        with self._mutex:
            if status is None:
                rows = self._conn.execute(
                    "SELECT * FROM pending_actions ORDER BY id ASC"
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM pending_actions WHERE status = ? ORDER BY id ASC",
                    [status.value],
                ).fetchall()

        actions = []
        for row in rows:
            action = self._decode_or_drop(row)
            if action is not None:
                actions.append(action)
        return actions

    def get(self, action_id: int) -> Optional[PendingAction]:
        """Get a single action by id."""
        with self._mutex:
            row = self._conn.execute(
                "SELECT * FROM pending_actions WHERE id = ?", [action_id]
            ).fetchone()
        return self._decode_or_drop(row) if row else None

    def _decode_or_drop(self, row: sqlite3.Row) -> Optional[PendingAction]:
        try:
            return self._row_to_action(row)
        except StorageCorruptError as e:
            logger.error(f"Dropping corrupt queued action: {e}")
            self.remove(row["id"])
            return None

    def _row_to_action(self, row: sqlite3.Row) -> PendingAction:
        try:
            payload = json.loads(row["payload_json"]) if row["payload_json"] else None
        except (TypeError, ValueError) as e:
            raise StorageCorruptError(
                f"Undecodable payload: {e}", row_id=row["id"], column="payload_json"
            )
        try:
            operation = ActionOperation(row["operation"])
            status = ActionStatus(row["status"])
            created_at = datetime.fromisoformat(row["created_at"])
        except (TypeError, ValueError) as e:
            raise StorageCorruptError(f"Invalid field value: {e}", row_id=row["id"])

        return PendingAction(
            id=row["id"],
            resource_kind=row["resource_kind"],
            resource_id=row["resource_id"],
            operation=operation,
            method=row["method"],
            route=row["route"],
            payload=payload,
            created_at=created_at,
            attempts=row["attempts"] or 0,
            last_error=row["last_error"],
            status=status,
        )

    def remove(self, action_id: int) -> bool:
        """Delete an action (delivered, or discarded by the user)."""
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM pending_actions WHERE id = ?", [action_id])
            removed = cursor.rowcount > 0
        logger.debug(f"Removed action {action_id}: {removed}")
        return removed

    def mark_in_flight(self, action_id: int) -> None:
        """Mark an action as being delivered."""
        self._set_status(action_id, ActionStatus.IN_FLIGHT)

    def clear_in_flight(self, action_id: int, error: Optional[str] = None) -> None:
        """Return an in-flight action to pending, keeping an optional error."""
        self._set_status(action_id, ActionStatus.PENDING, error)

    def mark_failed(self, action_id: int, error: str) -> None:
        """Park an action as failed until the user retries or discards it."""
        self._set_status(action_id, ActionStatus.FAILED, error)

    def _set_status(
        self,
        action_id: int,
        status: ActionStatus,
        error: Optional[str] = None,
    ) -> None:
        with self.transaction() as conn:
            if error is None:
                conn.execute(
                    "UPDATE pending_actions SET status = ? WHERE id = ?",
                    [status.value, action_id],
                )
            else:
                conn.execute(
                    "UPDATE pending_actions SET status = ?, last_error = ? WHERE id = ?",
                    [status.value, error, action_id],
                )
        logger.debug(f"Action {action_id} -> {status.value}")

    def record_attempt(self, action_id: int, error: Optional[str] = None) -> int:
        """
        Count one delivery attempt.

        Returns:
            The updated attempt count
        """
        with self.transaction() as conn:
            conn.execute(
                """
                UPDATE pending_actions
                SET attempts = attempts + 1, last_attempt = ?,
                    last_error = COALESCE(?, last_error)
                WHERE id = ?
                """,
                [datetime.now().isoformat(), error, action_id],
            )
            row = conn.execute(
                "SELECT attempts FROM pending_actions WHERE id = ?", [action_id]
            ).fetchone()
        return row["attempts"] if row else 0

    def discard(self, action_id: int) -> bool:
        """Delete a failed action at the user's request."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM pending_actions WHERE id = ? AND status = ?",
                [action_id, ActionStatus.FAILED.value],
            )
            discarded = cursor.rowcount > 0
        if discarded:
            logger.info(f"Discarded failed action {action_id}")
        return discarded

    def retry(self, action_id: int) -> bool:
        """Give a failed action a fresh set of attempts."""
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE pending_actions SET status = ?, attempts = 0
                WHERE id = ? AND status = ?
                """,
                [ActionStatus.PENDING.value, action_id, ActionStatus.FAILED.value],
            )
            reset = cursor.rowcount > 0
        if reset:
            logger.info(f"Failed action {action_id} reset to pending")
        return reset

    def count(self) -> int:
        """Number of queued actions, failed ones included."""
        with self._mutex:
            row = self._conn.execute(
                "SELECT COUNT(*) AS count FROM pending_actions"
            ).fetchone()
        return row["count"] if row else 0

    def clear(self) -> int:
        """
        Drop every queued action, failed ones included.

        The id counter is kept, so ids are still never reused.

        Returns:
            Number of actions removed
        """
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM pending_actions")
            removed = cursor.rowcount
        logger.info(f"Cleared {removed} queued action(s)")
        return removed

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self) -> pd.DataFrame:
        """Load the queue into a DataFrame (ascending id)."""
        with self._mutex:
            return pd.read_sql_query(
                """
                SELECT id, resource_kind, resource_id, operation, method, route,
                       created_at, attempts, last_error, status
                FROM pending_actions ORDER BY id ASC
                """,
                self._conn,
            )

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a persisted setting."""
        with self._mutex:
            row = self._conn.execute(
                "SELECT value FROM app_settings WHERE key = ?", [key]
            ).fetchone()
        if row:
            try:
                return json.loads(row["value"])
            except json.JSONDecodeError:
                return row["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Persist a setting."""
        value_str = json.dumps(value) if not isinstance(value, str) else value
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_str, datetime.now().isoformat()],
            )

    def get_last_sync_time(self) -> Optional[datetime]:
        """Timestamp of the last drain that left the queue empty."""
        value = self.get_setting(self.LAST_SYNC_KEY)
        if not value:
            return None
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unreadable last sync timestamp: {value!r}")
            return None

    def set_last_sync_time(self, when: Optional[datetime] = None) -> None:
        self.set_setting(self.LAST_SYNC_KEY, (when or datetime.now()).isoformat())

    def close(self) -> None:
        """Close database connection."""
        with self._mutex:
            self._conn.close()
