# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for the Connectivity Monitor
# =============================================================================

from unittest.mock import patch

import requests

from containerflow.offline.connection_manager import (
    ConnectivityEvent,
    ConnectivityMonitor,
    http_probe,
)


class TestHoldDown:
    """Debouncing of reachability samples"""

    def test_transition_after_stable_window(self, clock):
        monitor = ConnectivityMonitor(hold_down=3.0, clock=clock)
        events = []
        monitor.register_callback(events.append)

        assert monitor.observe(True) is None
        clock.advance(2.0)
        assert monitor.observe(True) is None
        assert not monitor.is_online

        clock.advance(1.0)
        assert monitor.observe(True) is ConnectivityEvent.WENT_ONLINE
        assert monitor.is_online
        assert events == [ConnectivityEvent.WENT_ONLINE]

    def test_flapping_resets_window(self, clock):
        monitor = ConnectivityMonitor(hold_down=3.0, clock=clock)
        events = []
        monitor.register_callback(events.append)

        monitor.observe(True)
        clock.advance(2.0)
        monitor.observe(False)      # Back to the committed state
        clock.advance(2.0)
        monitor.observe(True)       # Window restarts here
        clock.advance(2.0)
        monitor.observe(True)

        assert not monitor.is_online
        assert events == []

    def test_zero_hold_down_is_immediate(self):
        monitor = ConnectivityMonitor(hold_down=0, initial_online=True)

        assert monitor.observe(False) is ConnectivityEvent.WENT_OFFLINE
        assert not monitor.is_online

    def test_no_event_without_change(self):
        monitor = ConnectivityMonitor(hold_down=0, initial_online=True)
        events = []
        monitor.register_callback(events.append)

        monitor.observe(True)
        monitor.observe(True)

        assert events == []


class TestProbe:
    """Running the probe"""

    def test_probe_result_is_observed(self):
        monitor = ConnectivityMonitor(probe=lambda: True, hold_down=0)

        assert monitor.check_connection() is ConnectivityEvent.WENT_ONLINE

    def test_probe_exception_counts_as_offline(self):
        def broken_probe():
            raise RuntimeError("radio off")

        monitor = ConnectivityMonitor(probe=broken_probe, hold_down=0, initial_online=True)

        assert monitor.check_connection() is ConnectivityEvent.WENT_OFFLINE
        assert monitor.state.error_message == "radio off"

    def test_no_probe_is_noop(self):
        monitor = ConnectivityMonitor(probe=None)
        assert monitor.check_connection() is None

    def test_http_probe_reachable_on_any_response(self):
        with patch("containerflow.offline.connection_manager.requests.get") as get:
            get.return_value.status_code = 404
            assert http_probe("http://localhost:5000")() is True

    def test_http_probe_unreachable_on_request_error(self):
        with patch("containerflow.offline.connection_manager.requests.get") as get:
            get.side_effect = requests.exceptions.ConnectionError("refused")
            assert http_probe("http://localhost:5000")() is False


class TestCallbacks:
    """Subscriber management"""

    def test_failing_callback_does_not_block_others(self):
        monitor = ConnectivityMonitor(hold_down=0)
        events = []

        def broken(event):
            raise ValueError("boom")

        monitor.register_callback(broken)
        monitor.register_callback(events.append)
        monitor.observe(True)

        assert events == [ConnectivityEvent.WENT_ONLINE]

    def test_unregister(self):
        monitor = ConnectivityMonitor(hold_down=0)
        events = []
        monitor.register_callback(events.append)
        monitor.unregister_callback(events.append)

        monitor.observe(True)

        assert events == []

    def test_force_offline(self):
        monitor = ConnectivityMonitor(hold_down=10, initial_online=True)
        events = []
        monitor.register_callback(events.append)

        monitor.force_offline()

        assert not monitor.is_online
        assert events == [ConnectivityEvent.WENT_OFFLINE]
