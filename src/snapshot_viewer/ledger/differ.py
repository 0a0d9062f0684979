from decimal import Decimal

from snapshot_viewer.common.models import AlignedRow, LedgerDiffRow, PriceLevelRow


def diff(
    current: list[PriceLevelRow], previous: list[PriceLevelRow]
) -> list[LedgerDiffRow]:
    """
    Computes the traded volume matched at each price since the previous
    snapshot.

    Args:
        current: The ledger of the current snapshot.
        previous: The ledger of the snapshot before it.

    Returns:
        A row for each current price whose traded volume increased, in the
        order of the current ledger.
    """
    previous_traded = {row.price: row.traded for row in previous if row.traded > 0}

    diff_rows: list[LedgerDiffRow] = []
    for row in current:
        if row.traded <= 0:
            continue
        delta = row.traded - previous_traded.get(row.price, Decimal(0))
        if delta > 0:
            diff_rows.append(LedgerDiffRow(price=row.price, traded=delta))
    return diff_rows


def align(
    current: list[PriceLevelRow], previous: list[PriceLevelRow]
) -> list[AlignedRow]:
    """
    Aligns two ledgers by price for side-by-side display.

    Args:
        current: The ledger of the current snapshot.
        previous: The ledger of the snapshot before it.

    Returns:
        One row per price found in either ledger, in ascending price order.
        A price missing from one side counts as zero traded volume there.
    """
    current_by_price = {row.price: row for row in current}
    previous_by_price = {row.price: row for row in previous}

    aligned_rows: list[AlignedRow] = []
    for price in sorted(current_by_price.keys() | previous_by_price.keys()):
        current_row = current_by_price.get(price)
        previous_row = previous_by_price.get(price)
        current_traded = current_row.traded if current_row else Decimal(0)
        previous_traded = previous_row.traded if previous_row else Decimal(0)
        aligned_rows.append(
            AlignedRow(
                price=price,
                current=current_row,
                previous=previous_row,
                traded_delta=current_traded - previous_traded,
            )
        )
    return aligned_rows


def count_traded_increases(
    current: list[PriceLevelRow], previous: list[PriceLevelRow]
) -> int:
    """Counts the current prices whose traded volume rose since `previous`."""
    previous_by_price = {row.price: row for row in previous}
    count = 0
    for row in current:
        previous_row = previous_by_price.get(row.price)
        delta = row.traded - previous_row.traded if previous_row else row.traded
        if delta > 0:
            count += 1
    return count


def is_heavily_traded(
    current: list[PriceLevelRow],
    previous: list[PriceLevelRow],
    threshold: int = 3,
) -> bool:
    """
    Checks whether trading since the previous snapshot spread across more than
    `threshold` prices.

    Without a previous ledger there is nothing to compare against, so the
    snapshot is never flagged.

    Args:
        current: The ledger of the current snapshot.
        previous: The ledger of the snapshot before it.
        threshold: The number of prices with new volume to exceed.

    Returns:
        True if more than `threshold` prices gained traded volume.
    """
    if not previous:
        return False
    return count_traded_increases(current, previous) > threshold
