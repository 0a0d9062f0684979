import asyncio
import os

import streamlit as st

from snapshot_viewer.common.session import ApiSession
from snapshot_viewer.ui.components.api_client import (
    check_api_connection,
    get_big_hold_page,
    get_window_rows,
)
from snapshot_viewer.ui.components.detail_view import (
    display_detail_rows,
    get_controller,
)


def get_api_session() -> ApiSession:
    """
    Gets the analyst session of this browser session, creating it if needed.

    Returns:
        The API session, authenticated when a token is configured.
    """
    if "api_session" not in st.session_state:
        api_session = ApiSession()
        token = os.getenv("SNAPSHOT_API_TOKEN")
        if token:
            api_session.authenticate(token, os.getenv("SNAPSHOT_API_USER"))
        st.session_state.api_session = api_session
    return st.session_state.api_session


def main():
    """
    Main entry point for the Streamlit snapshot viewer application.
    """
    st.set_page_config(
        page_title="Exchange Snapshot Viewer",
        page_icon="📊",
        layout="wide",
    )
    st.title("Exchange Snapshot Viewer")
    st.sidebar.header("Controls")

    api_session = get_api_session()
    if check_api_connection(api_session):
        st.sidebar.success("✅ API Connected")
    else:
        st.sidebar.error("❌ API Disconnected")

    match_id = st.sidebar.number_input("Match ID", min_value=1, step=1)
    order = st.sidebar.selectbox(
        "Sort Order",
        [0, 1, 2],
        format_func=lambda x: ["Time", "Hold", "Amount"][x],
    )

    page = get_big_hold_page(api_session, int(match_id), order)
    if not page:
        st.info("Enter a match ID to view its detail page.")
        return

    match = page.get("match") or {}
    st.subheader(f"{match.get('homeTeam', '?')} vs {match.get('guestTeam', '?')}")

    controller = get_controller(api_session, f"{match_id}:{order}")

    windows = page.get("windows") or []
    if not windows:
        st.info("No time windows for this match")
        return

    tabs = st.tabs([window.get("label", "Window") for window in windows])
    all_rows = [get_window_rows(window) for window in windows]

    if st.sidebar.button("Prefetch Previous Records"):
        asyncio.run(
            controller.prefetch_all([row for rows in all_rows for row in rows])
        )
    if controller.failed_keys:
        st.sidebar.warning(
            f"{len(controller.failed_keys)} previous records failed to load"
        )

    for index, (tab, rows) in enumerate(zip(tabs, all_rows)):
        with tab:
            display_detail_rows(controller, rows, key_prefix=f"window{index}_")


if __name__ == "__main__":
    main()
