# =============================================================================
# containerflow/logging/config.py
# Logging Configuration for the ContainerFlow sync client
# =============================================================================
"""
One call at startup routes the sync client's loggers to stdout and, unless
disabled, to a daily file:

    setup_logging(settings.log_level, settings.log_dir)

Queue, monitor and engine modules log through ``logging.getLogger(__name__)``
under the ``containerflow`` namespace.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# The connectivity probe hits the backend every few seconds while offline
QUIET_LOGGERS = ("urllib3", "requests", "streamlit")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Union[str, Path]] = Path("logs"),
) -> Optional[Path]:
    """
    Configure logging for the sync client.

    Args:
        level: Level number or name, e.g. "DEBUG" to trace every queue write
        log_dir: Directory for sync_YYYY-MM-DD.log; None logs to stdout only

    Returns:
        Path of the log file, or None
    """
    if isinstance(level, str):
        level = level.upper()

    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"sync_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("containerflow").info(
        f"Logging initialized at {logging.getLevelName(logging.getLogger().level)}"
        + (f", writing to {log_file}" if log_file else "")
    )
    return log_file


class LogContext:
    """
    Times an operation and logs its start and end.

    Keyword fields are tagged onto both lines, and ``elapsed`` holds the
    duration once the block exits:

        with LogContext(logger, "Draining action queue", trigger="reconnect") as ctx:
            ...
        # Draining action queue [trigger=reconnect]... started
        # Draining action queue [trigger=reconnect]... completed (0.42s)
    """

    def __init__(self, logger: logging.Logger, operation: str, **fields):
        self.logger = logger
        self.label = operation
        if fields:
            tags = " ".join(f"{key}={value}" for key, value in fields.items())
            self.label = f"{operation} [{tags}]"
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.info(f"{self.label}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.monotonic() - self._started

        if exc_type is None:
            self.logger.info(f"{self.label}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.label}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=True,
            )
        return False
