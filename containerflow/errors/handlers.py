# =============================================================================
# containerflow/errors/handlers.py
# Error Handling Utilities for the UI layer
# =============================================================================

from __future__ import annotations
import functools
import logging
import traceback
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from .exceptions import ContainerFlowError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, ContainerFlowError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        if recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator to wrap UI render functions with error handling.

    Usage:
        @error_boundary(error_message="Could not render sync status")
        def render_network_status_bar(status):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_error(
                    e,
                    show_user_message=error_message is not None,
                    log_error=log,
                    user_message=error_message,
                )
                return default_return

        return wrapper

    return decorator
