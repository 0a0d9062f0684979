import asyncio

import streamlit as st

from snapshot_viewer.common.models import SnapshotRow
from snapshot_viewer.common.session import ApiSession
from snapshot_viewer.detail.expand_controller import DetailExpandController
from snapshot_viewer.detail.previous_client import PreviousRecordClient
from snapshot_viewer.detail.record_cache import PreviousRecordCache
from snapshot_viewer.detail.record_store import get_shared_store
from snapshot_viewer.ui.components.ledger_table import (
    aligned_to_dataframe,
    diff_to_dataframe,
    highlight_styles,
    ledger_to_dataframe,
)


def get_controller(api_session: ApiSession, view_key: str) -> DetailExpandController:
    """
    Gets the expand controller of the detail view, creating it on first use.

    The controller lives in the Streamlit session state so its caches survive
    reruns of the script. Record IDs are tied to the match and sort order, so
    the controller is reset whenever the view changes.

    Args:
        api_session: The analyst session to fetch previous records for.
        view_key: Identifies the detail view, including its sort order.

    Returns:
        The expand controller for the view.
    """
    if "expand_controller" not in st.session_state:
        client = PreviousRecordClient(api_session, store=get_shared_store())
        st.session_state.expand_controller = DetailExpandController(
            PreviousRecordCache(client.fetch_previous)
        )
    controller = st.session_state.expand_controller
    if st.session_state.get("expand_view_key") != view_key:
        controller.reset_all()
        st.session_state.expand_view_key = view_key
    return controller


async def _toggle_ledger(controller: DetailExpandController, row: SnapshotRow) -> None:
    # Streamlit redraws after the script finishes, so wait for the previous
    # ledger rather than showing it progressively.
    task = controller.toggle_ledger(row)
    if task:
        await task


def _display_ledgers(
    controller: DetailExpandController, row: SnapshotRow, key_prefix: str
) -> None:
    """
    Displays the current, previous and diff ledgers of an expanded row.

    Args:
        controller: The expand controller of the view.
        row: The expanded row.
        key_prefix: The widget key prefix of the row's list.
    """
    current_col, previous_col, diff_col = st.columns(3)

    with current_col:
        st.write("##### Current")
        current = controller.current_ledger(row.key)
        if current:
            styles = highlight_styles(current)
            st.dataframe(
                ledger_to_dataframe(current).style.apply(lambda _: styles, axis=0),
                use_container_width=True,
            )
        else:
            st.info("No snapshot data")

    with previous_col:
        st.write("##### Previous")
        if controller.is_loading(row.key):
            st.info("Loading previous record...")
        elif controller.has_failed(row.key):
            st.error("Failed to load the previous record")
            if st.button("Retry", key=f"{key_prefix}retry_{row.key}"):
                asyncio.run(controller.retry(row))
                st.rerun()
        elif controller.previous_ledger(row.key):
            st.dataframe(
                ledger_to_dataframe(controller.previous_ledger(row.key)),
                use_container_width=True,
            )
        else:
            st.info("No previous record")

    with diff_col:
        st.write("##### New Traded Volume")
        diff_rows = controller.diff_ledger(row.key)
        if diff_rows:
            st.dataframe(diff_to_dataframe(diff_rows), use_container_width=True)
        else:
            st.info("No new traded volume")

    with st.expander("Aligned by price"):
        st.dataframe(
            aligned_to_dataframe(controller.aligned_ledger(row.key)),
            use_container_width=True,
        )


def display_detail_rows(
    controller: DetailExpandController, rows: list[SnapshotRow], key_prefix: str = ""
) -> None:
    """
    Displays the rows of a detail view with their expand controls.

    Args:
        controller: The expand controller of the view.
        rows: The rows to display, in page order.
        key_prefix: Distinguishes the widgets of this list of rows from those
                    of other lists showing the same records.
    """
    if not rows:
        st.info("No rows in this window")
        return

    for row in rows:
        label_col, ledger_col, last_price_col = st.columns([4, 1, 1])
        with label_col:
            flag = " 🔥" if controller.is_heavily_traded(row.key) else ""
            st.write(f"Record {row.key} at {row.reference_time}{flag}")
        with ledger_col:
            if st.button("Ledger", key=f"{key_prefix}ledger_{row.key}"):
                asyncio.run(_toggle_ledger(controller, row))
                st.rerun()
        with last_price_col:
            if st.button("Last Price", key=f"{key_prefix}last_price_{row.key}"):
                controller.toggle_last_price(row)
                st.rerun()

        if controller.ledger_expanded == row.key:
            _display_ledgers(controller, row, key_prefix)
        elif controller.last_price_expanded == row.key:
            last_price = controller.last_price_ledger(row.key)
            if last_price:
                st.dataframe(ledger_to_dataframe(last_price), use_container_width=True)
            else:
                st.info("No last-price data")
