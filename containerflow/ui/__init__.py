# =============================================================================
# containerflow/ui/__init__.py
# Streamlit components for sync status
# =============================================================================

from .network_status_bar import (
    render_network_status_bar,
    render_pending_actions,
    status_bar_message,
)

__all__ = [
    "render_network_status_bar",
    "render_pending_actions",
    "status_bar_message",
]
