import pandas as pd

from snapshot_viewer.common.models import (
    AlignedRow,
    HighlightTier,
    LedgerDiffRow,
    PriceLevelRow,
)

TIER_LABELS = {
    HighlightTier.NONE: "",
    HighlightTier.MAX: "Max",
    HighlightTier.DOUBLE: "Max ≥2x",
    HighlightTier.TRIPLE: "Max ≥3x",
}
TIER_COLOURS = {
    HighlightTier.NONE: "",
    HighlightTier.MAX: "background-color: #fff3b0",
    HighlightTier.DOUBLE: "background-color: #ffc078",
    HighlightTier.TRIPLE: "background-color: #d0a9f5",
}


def ledger_to_dataframe(rows: list[PriceLevelRow]) -> pd.DataFrame:
    """
    Converts a ledger into a DataFrame for display.

    Args:
        rows: The ledger rows.

    Returns:
        One row per price, with the highlight tier as a label.
    """
    return pd.DataFrame(
        {
            "Price": [float(row.price) for row in rows],
            "To Back": [float(row.to_back) for row in rows],
            "To Lay": [float(row.to_lay) for row in rows],
            "Traded": [float(row.traded) for row in rows],
            "Highlight": [TIER_LABELS[row.highlight_tier] for row in rows],
        }
    )


def diff_to_dataframe(rows: list[LedgerDiffRow]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Price": [float(row.price) for row in rows],
            "Traded": [float(row.traded) for row in rows],
        }
    )


def aligned_to_dataframe(rows: list[AlignedRow]) -> pd.DataFrame:
    """
    Converts aligned ledgers into a three-column comparison DataFrame.

    Args:
        rows: The rows aligned by price.

    Returns:
        The current and previous traded volume of each price, and the change
        between them. Prices without new volume have no change shown.
    """
    return pd.DataFrame(
        {
            "Price": [float(row.price) for row in rows],
            "Current Traded": [
                float(row.current.traded) if row.current else None for row in rows
            ],
            "Previous Traded": [
                float(row.previous.traded) if row.previous else None for row in rows
            ],
            "Traded Change": [
                float(row.traded_delta) if row.traded_delta > 0 else None
                for row in rows
            ],
        }
    )


def highlight_styles(rows: list[PriceLevelRow]) -> list[str]:
    """
    Gets the CSS style of each ledger row for its highlight tier.

    Args:
        rows: The ledger rows, in display order.

    Returns:
        The background style of each row, empty for unhighlighted rows.
    """
    return [TIER_COLOURS[row.highlight_tier] for row in rows]
