# =============================================================================
# containerflow/errors/exceptions.py
# Custom Exception Hierarchy for the ContainerFlow sync client
# =============================================================================

from typing import Optional, Dict, Any


class ContainerFlowError(Exception):
    """
    Base exception for all ContainerFlow client errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "CF_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# SYNC EXCEPTIONS
# =============================================================================

class SyncError(ContainerFlowError):
    """Base class for failures while delivering a queued action"""

    def __init__(
        self,
        message: str,
        action_id: Optional[int] = None,
        status_code: Optional[int] = None,
        code: str = "SYNC_000",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if action_id is not None:
            details["action_id"] = action_id
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(message=message, code=code, details=details, **kwargs)
        self.action_id = action_id
        self.status_code = status_code


class AuthRequiredError(SyncError):
    """Raised on a missing identity or a 401/403 from the backend"""

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message=message, code="SYNC_001", **kwargs)


class ClientRejectedError(SyncError):
    """Raised when the backend rejects an action with a 4xx response"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code="SYNC_002",
            recoverable=False,
            **kwargs,
        )


class TransientSyncError(SyncError):
    """Raised on network errors, timeouts and 5xx responses"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, code="SYNC_003", **kwargs)


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageCorruptError(ContainerFlowError):
    """Raised when a persisted queue row cannot be decoded"""

    def __init__(
        self,
        message: str,
        row_id: Optional[int] = None,
        column: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if row_id is not None:
            details["row_id"] = row_id
        if column:
            details["column"] = column

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(ContainerFlowError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
