# =============================================================================
# containerflow/config.py
# Sync Client Configuration
# =============================================================================
"""
SyncSettings - tunables for the offline action queue.

Values come from the process environment, after loading a local ``.env``
file if one exists:

    CONTAINERFLOW_API_URL=https://containerflow-api.onrender.com
    CONTAINERFLOW_MAX_ATTEMPTS=5
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from containerflow.errors import ConfigurationError

T = TypeVar("T")

ENV_PREFIX = "CONTAINERFLOW_"

DEFAULT_API_URL = "http://localhost:5000"
DEFAULT_DB_PATH = Path("local_data") / "containerflow_sync.db"
DEFAULT_LOG_DIR = Path("logs")


def normalize_api_url(url: str) -> str:
    """Ensure the base URL has a protocol and no trailing slash."""
    url = url.strip()
    if not (url.startswith("http://") or url.startswith("https://")):
        url = f"https://{url}"
    return url.rstrip("/")


def _read(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {ENV_PREFIX + name}: {raw!r}",
            config_key=ENV_PREFIX + name,
            expected_type=getattr(cast, "__name__", str(cast)),
        )


@dataclass
class SyncSettings:
    """Configuration for the sync client."""
    api_url: str = DEFAULT_API_URL
    db_path: Path = DEFAULT_DB_PATH
    max_attempts: int = 5               # Transient attempt ceiling per action
    http_timeout: float = 30.0          # Seconds per mutation call
    hold_down: float = 3.0              # Seconds reachability must be stable
    check_interval_online: float = 30.0
    check_interval_offline: float = 5.0
    log_level: str = "INFO"
    log_dir: Optional[Path] = DEFAULT_LOG_DIR    # None: stdout only

    def __post_init__(self):
        self.api_url = normalize_api_url(self.api_url)
        self.db_path = Path(self.db_path)
        if self.max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be at least 1",
                config_key="max_attempts",
                expected_type="int >= 1",
            )
        if self.hold_down < 0:
            raise ConfigurationError(
                "hold_down cannot be negative",
                config_key="hold_down",
                expected_type="float >= 0",
            )
        self.log_level = str(self.log_level).upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="log_level",
                expected_type="DEBUG, INFO, WARNING or ERROR",
            )
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir)

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> SyncSettings:
        """Build settings from the environment (and .env, if present)."""
        load_dotenv(dotenv_path)
        return cls(
            api_url=_read("API_URL", DEFAULT_API_URL, str),
            db_path=_read("SYNC_DB", DEFAULT_DB_PATH, Path),
            max_attempts=_read("MAX_ATTEMPTS", 5, int),
            http_timeout=_read("HTTP_TIMEOUT", 30.0, float),
            hold_down=_read("HOLD_DOWN", 3.0, float),
            check_interval_online=_read("CHECK_INTERVAL_ONLINE", 30.0, float),
            check_interval_offline=_read("CHECK_INTERVAL_OFFLINE", 5.0, float),
            log_level=_read("LOG_LEVEL", "INFO", str),
            log_dir=_read("LOG_DIR", DEFAULT_LOG_DIR, Path),
        )
