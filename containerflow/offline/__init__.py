# =============================================================================
# containerflow/offline/__init__.py
# Offline Action Queue for the ContainerFlow client
# =============================================================================
"""
Offline Action Queue Module

Lets the client keep working without a backend connection. Every mutating
action is recorded in a durable queue and delivered once connectivity
returns.

Architecture:
------------
    UI  ──►  SyncStatus  (is_online, pending_actions_count,
                          is_syncing, last_sync_text, sync_pending_actions)
                 │
      ┌──────────┼──────────────────┐
      ▼          ▼                  ▼
 ActionQueue  SyncEngine ──► MutationTransport ──► backend
   Store         ▲
  (SQLite)       │ wentOnline
          ConnectivityMonitor

Usage:
------
from containerflow.offline import get_sync_status, ActionOperation

status = get_sync_status()
status.queue_action("tasks", ActionOperation.CREATE, {"containerID": "C-42"})
"""

from containerflow.offline.action_queue import (
    ActionQueueStore,
    ActionOperation,
    ActionStatus,
    PendingAction,
    build_route,
)

from containerflow.offline.connection_manager import (
    ConnectivityMonitor,
    ConnectivityEvent,
    http_probe,
)

from containerflow.offline.transport import (
    MutationResult,
    RequestsMutationTransport,
)

from containerflow.offline.sync_engine import (
    SyncEngine,
    SyncSession,
    DrainOutcome,
    EngineState,
    format_last_sync,
)

from containerflow.offline.sync_status import (
    SyncStatus,
    get_sync_status,
    sync_pending_actions,
)

__all__ = [
    # Queue store
    "ActionQueueStore",
    "ActionOperation",
    "ActionStatus",
    "PendingAction",
    "build_route",
    # Connectivity
    "ConnectivityMonitor",
    "ConnectivityEvent",
    "http_probe",
    # Transport
    "MutationResult",
    "RequestsMutationTransport",
    # Sync engine
    "SyncEngine",
    "SyncSession",
    "DrainOutcome",
    "EngineState",
    "format_last_sync",
    # Facade (main API)
    "SyncStatus",
    "get_sync_status",
    "sync_pending_actions",
]
