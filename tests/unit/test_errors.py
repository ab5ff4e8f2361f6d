# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for Error Handling
# =============================================================================

import json
import logging
from unittest.mock import patch

from containerflow.errors import (
    ClientRejectedError,
    ConfigurationError,
    TransientSyncError,
    error_boundary,
    handle_error,
)


class TestExceptions:
    """Codes and serialization"""

    def test_sync_error_details(self):
        error = ClientRejectedError("404: Task not found", action_id=7, status_code=404)

        assert error.to_dict() == {
            "error_type": "ClientRejectedError",
            "code": "SYNC_002",
            "message": "404: Task not found",
            "details": {"action_id": 7, "status_code": 404},
            "recoverable": False,
        }
        assert str(error).startswith("[SYNC_002] 404: Task not found")


class TestHandleError:
    """Logging and user-facing messages"""

    def test_recoverable_error(self, caplog):
        error = TransientSyncError("503: unavailable", action_id=3, status_code=503)

        with patch("containerflow.errors.handlers.st") as st, \
                caplog.at_level(logging.ERROR, logger="containerflow.errors.handlers"):
            handle_error(error)

        st.error.assert_called_once_with("Error: 503: unavailable")
        assert "[SYNC_003] 503: unavailable" in caplog.text

    def test_configuration_error_is_critical(self):
        error = ConfigurationError("Invalid value", config_key="CONTAINERFLOW_MAX_ATTEMPTS")

        with patch("containerflow.errors.handlers.st") as st:
            handle_error(error)

        assert st.error.call_args.args[0].startswith("Critical Error: Invalid value")

    def test_plain_exception_with_user_message(self):
        try:
            json.loads("{oops")
        except ValueError as e:
            with patch("containerflow.errors.handlers.st") as st:
                handle_error(e, user_message="Invalid input")

        st.error.assert_called_once_with("Error: Invalid input")

    def test_log_only(self):
        with patch("containerflow.errors.handlers.st") as st:
            handle_error(TransientSyncError("timeout"), show_user_message=False)

        st.error.assert_not_called()


class TestErrorBoundary:
    """Decorated render functions"""

    def test_returns_default_and_reports(self):
        @error_boundary(default_return=[], error_message="Could not list pending actions")
        def render():
            raise RuntimeError("database is locked")

        with patch("containerflow.errors.handlers.st") as st:
            assert render() == []

        st.error.assert_called_once_with("Error: Could not list pending actions")

    def test_passes_result_through(self):
        @error_boundary(error_message="unused")
        def render():
            return 3

        assert render() == 3

    def test_silent_without_message(self):
        @error_boundary(default_return=False)
        def render():
            raise RuntimeError("boom")

        with patch("containerflow.errors.handlers.st") as st:
            assert render() is False

        st.error.assert_not_called()
