# =============================================================================
# containerflow/logging/__init__.py
# Centralized Logging Configuration
# =============================================================================

from .config import setup_logging, LogContext

__all__ = ["setup_logging", "LogContext"]
