"""
ContainerFlow offline sync console.

Run with:  streamlit run app.py
"""

import json

import streamlit as st

from containerflow.config import SyncSettings
from containerflow.errors import ConfigurationError, handle_error
from containerflow.logging import setup_logging
from containerflow.offline import ActionOperation, SyncStatus
from containerflow.ui import render_network_status_bar, render_pending_actions


@st.cache_resource
def load_sync_status() -> SyncStatus:
    settings = SyncSettings.from_env()
    setup_logging(settings.log_level, settings.log_dir)
    status = SyncStatus.from_settings(settings)
    status.start()
    return status


st.set_page_config(page_title="ContainerFlow Sync", page_icon="🔄", layout="wide")

try:
    status = load_sync_status()
except ConfigurationError as e:
    handle_error(e)
    st.stop()

render_network_status_bar(status)

st.title("Pending changes")

with st.sidebar.expander("Signed-in user"):
    user_id = st.text_input("User id", value=status.store.get_setting("auth_user_id") or "")
    if st.button("Save user", key="save_user_btn"):
        status.set_current_user(user_id.strip() or None)
        st.rerun()
    if st.button("Clear queue", key="clear_queue_btn"):
        status.clear_pending_actions()
        st.rerun()

with st.expander("Queue a change"):
    kind = st.selectbox("Resource", ["tasks", "containers/customer", "containers/warehouse"])
    operation = ActionOperation(st.selectbox("Operation", [op.value for op in ActionOperation]))
    resource_id = st.text_input("Resource id") or None
    body = st.text_area("JSON body", value="{}")
    if st.button("Queue", key="queue_action_btn"):
        try:
            status.queue_action(kind, operation, json.loads(body), resource_id=resource_id)
            st.rerun()
        except ValueError as e:
            handle_error(e, user_message=f"Invalid input: {e}")

render_pending_actions(status)
