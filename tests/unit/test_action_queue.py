# =============================================================================
# tests/unit/test_action_queue.py
# Unit Tests for the Durable Action Queue
# =============================================================================

import sqlite3
from datetime import datetime

import numpy as np
import pytest

from containerflow.offline.action_queue import (
    ActionOperation,
    ActionQueueStore,
    ActionStatus,
    build_route,
)


class TestEnqueueOrdering:
    """Ids and ordering"""

    def test_list_returns_enqueue_order(self, store):
        """list() yields actions in strictly ascending id equal to enqueue order"""
        ids = [
            store.enqueue("tasks", ActionOperation.CREATE, {"n": i})
            for i in range(5)
        ]

        listed = store.list()

        assert [a.id for a in listed] == ids
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)
        assert [a.payload["n"] for a in listed] == list(range(5))

    def test_ids_not_reused_after_removal(self, store):
        """Removing the newest action does not free its id"""
        first = store.enqueue("tasks", ActionOperation.CREATE)
        second = store.enqueue("tasks", ActionOperation.CREATE)
        store.remove(second)

        third = store.enqueue("tasks", ActionOperation.CREATE)

        assert third > second > first

    def test_ids_monotonic_across_restart(self, db_path):
        """The id counter is persisted"""
        queue = ActionQueueStore(db_path)
        last = queue.enqueue("tasks", ActionOperation.CREATE)
        queue.remove(last)
        queue.close()

        reopened = ActionQueueStore(db_path)
        try:
            assert reopened.enqueue("tasks", ActionOperation.CREATE) > last
        finally:
            reopened.close()

    def test_new_action_is_pending(self, store):
        action_id = store.enqueue("tasks", ActionOperation.UPDATE, {"a": 1}, resource_id="t-1")
        action = store.get(action_id)

        assert action.status is ActionStatus.PENDING
        assert action.attempts == 0
        assert action.last_error is None
        assert isinstance(action.created_at, datetime)


class TestRouting:
    """Method and route derivation"""

    def test_default_routes(self):
        assert build_route("tasks", ActionOperation.CREATE) == "/api/tasks"
        assert build_route("tasks", ActionOperation.UPDATE, "t-1") == "/api/tasks/t-1"
        assert build_route("containers/customer", ActionOperation.DELETE, "c-9") == \
            "/api/containers/customer/c-9"

    def test_update_requires_resource_id(self, store):
        with pytest.raises(ValueError):
            store.enqueue("tasks", ActionOperation.UPDATE, {"a": 1})

    def test_default_methods(self, store):
        create = store.get(store.enqueue("tasks", ActionOperation.CREATE))
        update = store.get(store.enqueue("tasks", ActionOperation.UPDATE, resource_id="1"))
        delete = store.get(store.enqueue("tasks", ActionOperation.DELETE, resource_id="1"))

        assert (create.method, create.route) == ("POST", "/api/tasks")
        assert (update.method, update.route) == ("PATCH", "/api/tasks/1")
        assert (delete.method, delete.route) == ("DELETE", "/api/tasks/1")

    def test_explicit_route(self, store):
        action_id = store.enqueue(
            "tasks", ActionOperation.UPDATE, {"location": "Gate 3"},
            resource_id="t-7", method="post", route="/api/tasks/t-7/pickup",
        )
        action = store.get(action_id)

        assert action.method == "POST"
        assert action.route == "/api/tasks/t-7/pickup"

    def test_resource_key_for_plain_create_is_unique(self, store):
        a = store.get(store.enqueue("tasks", ActionOperation.CREATE))
        b = store.get(store.enqueue("tasks", ActionOperation.CREATE))

        assert a.resource_key != b.resource_key


class TestPayloadCleaning:
    """JSON serialization of payloads"""

    def test_numpy_and_datetime_values(self, store):
        when = datetime(2024, 5, 1, 8, 30)
        action_id = store.enqueue("tasks", ActionOperation.CREATE, {
            "count": np.int64(3),
            "weight": np.float64(1.5),
            "missing": float("nan"),
            "due": when,
            "tags": ["a", "b"],
        })

        payload = store.get(action_id).payload

        assert payload == {
            "count": 3,
            "weight": 1.5,
            "missing": None,
            "due": when.isoformat(),
            "tags": ["a", "b"],
        }

    def test_no_payload(self, store):
        action_id = store.enqueue("tasks", ActionOperation.DELETE, resource_id="t-1")
        assert store.get(action_id).payload is None


class TestStatusTransitions:
    """In-flight, failed, retry and discard"""

    def test_in_flight_and_clear(self, store):
        action_id = store.enqueue("tasks", ActionOperation.CREATE)

        store.mark_in_flight(action_id)
        assert store.get(action_id).status is ActionStatus.IN_FLIGHT

        store.clear_in_flight(action_id, "timeout")
        action = store.get(action_id)
        assert action.status is ActionStatus.PENDING
        assert action.last_error == "timeout"

    def test_record_attempt_counts(self, store):
        action_id = store.enqueue("tasks", ActionOperation.CREATE)

        assert store.record_attempt(action_id, "boom") == 1
        assert store.record_attempt(action_id) == 2
        assert store.get(action_id).last_error == "boom"

    def test_failed_still_counted(self, store):
        action_id = store.enqueue("tasks", ActionOperation.CREATE)
        store.enqueue("tasks", ActionOperation.CREATE)

        store.mark_failed(action_id, "400: bad request")

        assert store.count() == 2
        assert [a.id for a in store.list(ActionStatus.FAILED)] == [action_id]

    def test_discard_only_failed(self, store):
        action_id = store.enqueue("tasks", ActionOperation.CREATE)

        assert store.discard(action_id) is False
        store.mark_failed(action_id, "rejected")
        assert store.discard(action_id) is True
        assert store.count() == 0

    def test_retry_resets_attempts(self, store):
        action_id = store.enqueue("tasks", ActionOperation.CREATE)
        store.record_attempt(action_id, "503")
        store.mark_failed(action_id, "503")

        assert store.retry(action_id) is True
        action = store.get(action_id)
        assert action.status is ActionStatus.PENDING
        assert action.attempts == 0

    def test_remove_missing(self, store):
        assert store.remove(12345) is False

    def test_clear_keeps_id_counter(self, store):
        store.enqueue("tasks", ActionOperation.CREATE)
        last = store.enqueue("tasks", ActionOperation.UPDATE, resource_id="t-2")
        store.mark_failed(last, "404: Task not found")

        assert store.clear() == 2
        assert store.count() == 0
        assert store.enqueue("tasks", ActionOperation.CREATE) > last


class TestRecovery:
    """Crash recovery and corrupt rows"""

    def test_in_flight_reset_on_reopen(self, db_path):
        queue = ActionQueueStore(db_path)
        action_id = queue.enqueue("tasks", ActionOperation.CREATE)
        queue.mark_in_flight(action_id)
        queue.close()

        reopened = ActionQueueStore(db_path)
        try:
            assert reopened.recovered_count == 1
            assert reopened.get(action_id).status is ActionStatus.PENDING
        finally:
            reopened.close()

    def test_corrupt_row_dropped(self, store, db_path):
        good = store.enqueue("tasks", ActionOperation.CREATE, {"ok": True})
        bad = store.enqueue("tasks", ActionOperation.CREATE, {"ok": False})

        raw = sqlite3.connect(str(db_path))
        raw.execute("UPDATE pending_actions SET payload_json = ? WHERE id = ?", ["{not json", bad])
        raw.commit()
        raw.close()

        assert [a.id for a in store.list()] == [good]
        assert store.count() == 1

    def test_corrupt_row_dropped_on_get(self, store, db_path):
        bad = store.enqueue("tasks", ActionOperation.CREATE, {"ok": False})

        raw = sqlite3.connect(str(db_path))
        raw.execute("UPDATE pending_actions SET payload_json = ? WHERE id = ?", ["{not json", bad])
        raw.commit()
        raw.close()

        assert store.get(bad) is None
        assert store.count() == 0


class TestSettingsAndFrames:
    """Settings table and DataFrame view"""

    def test_last_sync_time_roundtrip(self, store):
        assert store.get_last_sync_time() is None
        when = datetime(2024, 1, 2, 3, 4, 5)

        store.set_last_sync_time(when)

        assert store.get_last_sync_time() == when

    def test_to_dataframe(self, store):
        store.enqueue("tasks", ActionOperation.CREATE)
        store.enqueue("tasks", ActionOperation.UPDATE, resource_id="t-2")

        df = store.to_dataframe()

        assert list(df["id"]) == sorted(df["id"])
        assert set(["route", "status", "attempts"]).issubset(df.columns)
        assert (df["status"] == "pending").all()
