import logging

import requests
import streamlit as st

from snapshot_viewer.common.models import BigHoldItem, SnapshotRow
from snapshot_viewer.common.session import ApiSession

logger = logging.getLogger(__name__)


def check_api_connection(api_session: ApiSession) -> bool:
    """
    Checks the connection to the snapshot API.

    Args:
        api_session: The analyst session to check the API of.

    Returns:
        True if the connection is successful, otherwise False.
    """
    try:
        response = requests.get(
            api_session.url("/api/health"), headers=api_session.headers, timeout=2
        )
        return response.status_code == 200
    except requests.RequestException as e:
        st.error(f"Error checking API connection: {e}")
        return False


def get_big_hold_page(
    api_session: ApiSession, match_id: int, order: int | None = None
) -> dict | None:
    """
    Fetches the big-hold detail page of a match.

    Args:
        api_session: The analyst session to make the request for.
        match_id: The ID of the match.
        order: The sort key of the page's rows, if not the default.

    Returns:
        The page data, or None if unavailable.
    """
    params = {"id": match_id}
    if order is not None:
        params["order"] = order
    try:
        response = requests.get(
            api_session.url("/api/bighold"),
            params=params,
            headers=api_session.headers,
            timeout=10,
        )
        if response.status_code != 200:
            st.error(f"Failed to fetch detail page: {response.status_code}")
            return None
        body = response.json()
    except (requests.RequestException, ValueError) as e:
        st.error(f"Error fetching detail page: {e}")
        return None

    if body.get("code") != 0:
        reason = body.get("message") or body.get("code")
        st.error(f"Detail page unavailable: {reason}")
        return None
    if not body.get("data"):
        st.warning(f"No detail page found for match {match_id}")
        return None
    return body["data"]


def get_window_rows(window: dict) -> list[SnapshotRow]:
    """
    Builds the snapshot rows of one time window of a detail page.

    Items that don't parse are skipped, so one bad item doesn't hide the rest
    of the window.

    Args:
        window: The time window data from the page payload.

    Returns:
        The snapshot rows of the window, in page order.
    """
    last_prices = {
        last_price.get("selectionId"): last_price.get("rawData")
        for last_price in window.get("lastPrices") or []
    }
    rows: list[SnapshotRow] = []
    for raw_item in window.get("items") or []:
        try:
            item = BigHoldItem.model_validate(raw_item)
        except ValueError as e:
            logger.error(f"Skipping unreadable page item: {e}")
            continue
        rows.append(item.to_snapshot_row(last_prices.get(item.selection_id)))
    return rows
