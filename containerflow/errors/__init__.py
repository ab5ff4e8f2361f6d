# =============================================================================
# containerflow/errors/__init__.py
# Centralized Error Handling for the ContainerFlow sync client
# =============================================================================

from .exceptions import (
    ContainerFlowError,
    SyncError,
    AuthRequiredError,
    ClientRejectedError,
    TransientSyncError,
    StorageCorruptError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
)

__all__ = [
    # Exceptions
    "ContainerFlowError",
    "SyncError",
    "AuthRequiredError",
    "ClientRejectedError",
    "TransientSyncError",
    "StorageCorruptError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
]
