# =============================================================================
# containerflow/ui/network_status_bar.py
# Network / Sync Status Bar for the Streamlit sidebar
# =============================================================================

from __future__ import annotations
from typing import Optional, Tuple

import streamlit as st

from containerflow.errors import error_boundary
from containerflow.offline.action_queue import ActionStatus
from containerflow.offline.sync_status import SyncStatus

OFFLINE_MESSAGE = "You're offline. Changes will sync when connected."
SYNCING_MESSAGE = "Syncing..."
AUTH_MESSAGE = "Your session has expired. Sign in again to sync pending changes."


def pending_actions_label(count: int) -> str:
    noun = "action" if count == 1 else "actions"
    return f"{count} pending {noun}. Tap to sync."


def status_bar_message(status: SyncStatus) -> Optional[Tuple[str, str]]:
    """
    Decide what the status bar shows.

    Returns:
        (kind, text) where kind is "offline", "auth", "syncing" or "pending";
        None when online with an empty queue
    """
    if not status.is_online:
        return "offline", OFFLINE_MESSAGE
    if status.auth_required:
        return "auth", AUTH_MESSAGE

    count = status.pending_actions_count
    if count == 0:
        return None
    if status.is_syncing:
        return "syncing", SYNCING_MESSAGE
    return "pending", pending_actions_label(count)


@error_boundary(error_message="Could not display sync status")
def render_network_status_bar(status: SyncStatus) -> None:
    """
    Renders the offline / pending-actions banner in the sidebar.
    Nothing is shown when online with nothing to sync.
    """
    message = status_bar_message(status)
    if message is None:
        return

    kind, text = message
    if kind == "offline":
        st.sidebar.error(f"📡 {text}")
    elif kind == "auth":
        st.sidebar.warning(f"🔒 {text}")
    elif kind == "syncing":
        st.sidebar.info(f"🔄 {text}")
    else:
        if st.sidebar.button(f"🔄 {text}", use_container_width=True, key="sync_pending_btn"):
            status.sync_pending_actions()
            st.rerun()

    st.sidebar.caption(status.last_sync_text)


@error_boundary(error_message="Could not list pending actions")
def render_pending_actions(status: SyncStatus) -> None:
    """
    Renders the queue as a table, with retry / discard for failed actions.
    """
    df = status.pending_actions_frame()
    if df.empty:
        st.info("No pending changes.")
        return

    st.dataframe(df, use_container_width=True, hide_index=True)

    failed = df[df["status"] == ActionStatus.FAILED.value]
    for row in failed.itertuples(index=False):
        cols = st.columns([3, 1, 1])
        cols[0].markdown(
            f"**#{row.id}** {row.method} `{row.route}`: {row.last_error or 'failed'}"
        )
        if cols[1].button("Retry", key=f"retry_action_{row.id}"):
            status.retry_action(int(row.id))
            st.rerun()
        if cols[2].button("Discard", key=f"discard_action_{row.id}"):
            status.discard_action(int(row.id))
            st.rerun()
