# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import threading
from typing import Dict, List, Optional

import pytest

from containerflow.offline.action_queue import ActionOperation, ActionQueueStore
from containerflow.offline.connection_manager import ConnectivityMonitor
from containerflow.offline.sync_engine import SyncEngine
from containerflow.offline.transport import MutationResult


# =============================================================================
# FAKES
# =============================================================================

OK = MutationResult(success=True, status_code=200)


class FakeTransport:
    """
    Scripted mutation transport.

    Results are looked up by route; each route holds a list consumed in
    order, the last entry repeating. Unknown routes succeed.
    """

    def __init__(self, script: Optional[Dict[str, List[MutationResult]]] = None):
        self.script = script or {}
        self.calls = []
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()

    def __call__(self, method, route, body, auth_header):
        self.calls.append((method, route, body, auth_header))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)

        results = self.script.get(route)
        if not results:
            return OK
        if len(results) > 1:
            return results.pop(0)
        return results[0]

    @property
    def routes(self):
        return [call[1] for call in self.calls]


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh queue database"""
    return tmp_path / "queue.db"


@pytest.fixture
def store(db_path):
    """Open action queue store"""
    queue = ActionQueueStore(db_path)
    yield queue
    queue.close()


@pytest.fixture
def monitor():
    """Connectivity monitor without a probe or hold-down, starting offline"""
    return ConnectivityMonitor(probe=None, hold_down=0, initial_online=False)


@pytest.fixture
def online_monitor():
    """Connectivity monitor already online"""
    return ConnectivityMonitor(probe=None, hold_down=0, initial_online=True)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def user():
    """Mutable identity holder; set user['id'] = None to sign out"""
    return {"id": "user-1"}


@pytest.fixture
def make_engine(store, transport, user):
    """Factory for engines sharing the store, transport and identity"""
    def factory(monitor, max_attempts=3, queue=None, mutation_transport=None):
        return SyncEngine(
            queue or store,
            monitor,
            mutation_transport or transport,
            lambda: user["id"],
            max_attempts=max_attempts,
        )
    return factory


@pytest.fixture
def clock():
    return ManualClock()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def enqueue_update(queue, kind, resource_id, **payload):
    """Queue an UPDATE and return its id"""
    return queue.enqueue(kind, ActionOperation.UPDATE, payload or {"v": 1},
                         resource_id=resource_id)
