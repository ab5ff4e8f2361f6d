# =============================================================================
# containerflow/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectivityMonitor - Tracks backend reachability and emits transitions.

Features:
- Hold-down debounce: a change is only committed once it has been stable
  for ``hold_down`` seconds, so a flapping signal does not start a sync storm
- Periodic background probing (shorter interval while offline)
- Event callbacks for wentOnline / wentOffline transitions
- Injectable probe and clock for tests
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
import logging

import requests

logger = logging.getLogger(__name__)


class ConnectivityEvent(Enum):
    """Committed reachability transitions."""
    WENT_ONLINE = "went_online"
    WENT_OFFLINE = "went_offline"


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    is_online: bool = False
    candidate: Optional[bool] = None        # Observed value waiting out hold-down
    candidate_since: Optional[float] = None
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


def http_probe(base_url: str, timeout: float = 5.0) -> Callable[[], bool]:
    """
    Build a probe that treats any HTTP response from the backend as reachable.
    """
    def probe() -> bool:
        try:
            requests.get(base_url, timeout=timeout, allow_redirects=False)
            return True
        except requests.exceptions.RequestException as e:
            logger.debug(f"Backend probe failed: {e}")
            return False

    return probe


class ConnectivityMonitor:
    """
    Debounced view of backend reachability.

    Usage:
        monitor = ConnectivityMonitor(probe=http_probe(settings.api_url))
        monitor.register_callback(lambda event: ...)
        monitor.start_monitoring()
        if monitor.is_online:
            ...
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 5      # Seconds between checks when offline

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        hold_down: float = 3.0,
        initial_online: bool = False,
        clock: Callable[[], float] = time.monotonic,
        check_interval_online: Optional[float] = None,
        check_interval_offline: Optional[float] = None,
    ):
        self._probe = probe
        self.hold_down = hold_down
        self._clock = clock
        self._state = ConnectionState(is_online=initial_online)
        self._state_lock = threading.Lock()
        self._callbacks: List[Callable[[ConnectivityEvent], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self.check_interval_online = check_interval_online or self.CHECK_INTERVAL_ONLINE
        self.check_interval_offline = check_interval_offline or self.CHECK_INTERVAL_OFFLINE

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_online(self) -> bool:
        """Current committed reachability."""
        return self._state.is_online

    def observe(self, reachable: bool) -> Optional[ConnectivityEvent]:
        """
        Feed one raw reachability sample.

        Returns:
            The transition committed by this sample, if any
        """
        now = self._clock()
        with self._state_lock:
            state = self._state
            state.last_check = datetime.now()
            if reachable:
                state.consecutive_failures = 0
            else:
                state.consecutive_failures += 1

            if reachable == state.is_online:
                state.candidate = None
                state.candidate_since = None
                return None

            if state.candidate != reachable:
                state.candidate = reachable
                state.candidate_since = now

            if now - state.candidate_since < self.hold_down:
                return None

            state.is_online = reachable
            state.candidate = None
            state.candidate_since = None
            if reachable:
                state.last_online = datetime.now()

        event = ConnectivityEvent.WENT_ONLINE if reachable else ConnectivityEvent.WENT_OFFLINE
        logger.info(f"Connection status changed: {event.value}")
        self._notify_callbacks(event)
        return event

    def check_connection(self) -> Optional[ConnectivityEvent]:
        """Run the probe once and feed its result."""
        if self._probe is None:
            return None
        try:
            reachable = bool(self._probe())
            self._state.error_message = None
        except Exception as e:
            logger.error(f"Error in connection probe: {e}")
            self._state.error_message = str(e)
            reachable = False
        return self.observe(reachable)

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._probe is None:
            logger.debug("No probe configured, monitoring not started")
            return
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectivityMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            self.check_connection()

            if self._state.candidate is not None:
                # Re-sample as soon as the hold-down window can close
                interval = min(max(self.hold_down, 0.1), self.check_interval_offline)
            elif self.is_online:
                interval = self.check_interval_online
            else:
                interval = self.check_interval_offline

            if self._stop_monitoring.wait(timeout=interval):
                break

    def register_callback(self, callback: Callable[[ConnectivityEvent], None]) -> None:
        """
        Register a callback for connectivity transitions.

        Args:
            callback: Function called with the ConnectivityEvent
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectivityEvent], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self, event: ConnectivityEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def force_offline(self) -> None:
        """Force offline mode immediately, bypassing hold-down."""
        with self._state_lock:
            was_online = self._state.is_online
            self._state.is_online = False
            self._state.candidate = None
            self._state.candidate_since = None
        logger.info("Forced offline mode")
        if was_online:
            self._notify_callbacks(ConnectivityEvent.WENT_OFFLINE)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "is_online": self.is_online,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
