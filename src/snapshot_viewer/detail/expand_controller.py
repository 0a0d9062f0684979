import asyncio
import logging

from snapshot_viewer.common.models import (
    AlignedRow,
    ExpandKind,
    ExpandSelection,
    LedgerDiffRow,
    PriceLevelRow,
    SnapshotRow,
)
from snapshot_viewer.detail.record_cache import PreviousRecordCache
from snapshot_viewer.ledger import differ
from snapshot_viewer.ledger.decoder import decode

logger = logging.getLogger(__name__)


class DetailExpandController:
    """
    Manages which row of a detail view is expanded, and the ledgers shown for
    it.

    At most one row is expanded at a time, either for its back/lay/traded
    ledger or for its last-price ledger. Expanding a row is immediate; its
    previous ledger is fetched in the background and becomes available once
    the fetch settles.

    The controller and its caches belong to a single detail view. They must
    be reset whenever the mapping from rows to record IDs changes, such as
    after a re-sort.
    """

    def __init__(self, record_cache: PreviousRecordCache):
        """
        Creates a new controller with nothing expanded.

        Args:
            record_cache: The cache of previous records for the view.
        """
        self.record_cache = record_cache
        self.selection = ExpandSelection()
        self._current_ledgers: dict[int, list[PriceLevelRow]] = {}
        self._previous_ledgers: dict[int, list[PriceLevelRow]] = {}
        self._last_price_ledgers: dict[int, list[PriceLevelRow]] = {}
        # Keep references to background loads so they aren't garbage
        # collected before they finish.
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def ledger_expanded(self) -> int | None:
        """The key of the row with its ledger expanded, if any."""
        if self.selection.kind == ExpandKind.LEDGER:
            return self.selection.key
        return None

    @property
    def last_price_expanded(self) -> int | None:
        """The key of the row with its last-price ledger expanded, if any."""
        if self.selection.kind == ExpandKind.LAST_PRICE:
            return self.selection.key
        return None

    @property
    def loading_keys(self) -> set[int]:
        return self.record_cache.loading_keys

    @property
    def failed_keys(self) -> set[int]:
        return self.record_cache.failed_keys

    def is_loading(self, key: int) -> bool:
        return self.record_cache.is_loading(key)

    def has_failed(self, key: int) -> bool:
        return self.record_cache.has_failed(key)

    async def _load_previous(self, row: SnapshotRow) -> None:
        """
        Fetches the previous record of a row and decodes its snapshot.

        Args:
            row: The row whose previous record to load.
        """
        record = await self.record_cache.fetch_previous(
            row.key,
            row.market_id,
            row.selection_id,
            row.reference_time,
            row.extra_params,
        )
        if record and record.raw_payload:
            self._previous_ledgers[row.key] = decode(record.raw_payload)

    def _decode_current(self, row: SnapshotRow) -> None:
        if row.key not in self._current_ledgers:
            self._current_ledgers[row.key] = decode(row.raw_payload)

    def toggle_ledger(self, row: SnapshotRow) -> asyncio.Task[None] | None:
        """
        Expands or collapses the back/lay/traded ledger of a row.

        Expanding collapses any last-price ledger. The row's own snapshot is
        decoded straight away, whereas its previous record is fetched in a
        background task. This must be called from a running event loop when
        the previous record isn't cached.

        Args:
            row: The row that was toggled.

        Returns:
            The task loading the previous record, or None if the row was
            collapsed or there was nothing to load.
        """
        if self.ledger_expanded == row.key:
            self.selection = ExpandSelection()
            return None

        self.selection = ExpandSelection(ExpandKind.LEDGER, row.key)
        self._decode_current(row)

        if self.record_cache.has(row.key):
            return None
        task = asyncio.get_running_loop().create_task(self._load_previous(row))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def toggle_last_price(self, row: SnapshotRow) -> None:
        """
        Expands or collapses the last-price ledger of a row.

        Expanding collapses any back/lay/traded ledger.

        Args:
            row: The row that was toggled.
        """
        if self.last_price_expanded == row.key:
            self.selection = ExpandSelection()
            return

        self.selection = ExpandSelection(ExpandKind.LAST_PRICE, row.key)
        if row.key not in self._last_price_ledgers:
            self._last_price_ledgers[row.key] = decode(row.last_price_payload)

    async def retry(self, row: SnapshotRow) -> None:
        """
        Fetches the previous record of a row again, after a failure.

        Args:
            row: The row whose previous record failed to load.
        """
        await self._load_previous(row)

    async def prefetch_all(self, rows: list[SnapshotRow]) -> None:
        """
        Fetches the previous records of every row that isn't cached yet.

        Requests run concurrently, and a failed request doesn't stop the
        others. Failures end up in `failed_keys`. The rows' own snapshots are
        decoded too, so the diff of every row is available afterwards.

        Args:
            rows: The rows of the view.
        """
        for row in rows:
            self._decode_current(row)
        pending_rows = [row for row in rows if not self.record_cache.has(row.key)]
        if not pending_rows:
            return
        results = await asyncio.gather(
            *(self._load_previous(row) for row in pending_rows),
            return_exceptions=True,
        )
        for row, result in zip(pending_rows, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Error prefetching previous record for {row.key}: {result}"
                )
        failed_count = sum(1 for row in pending_rows if self.has_failed(row.key))
        logger.info(
            f"Prefetched previous records for {len(pending_rows)} rows "
            f"({failed_count} failed)"
        )

    def collapse_all(self) -> None:
        """Collapses every expanded row."""
        self.selection = ExpandSelection()

    def reset_all(self) -> None:
        """Collapses every row and forgets every cached record and ledger."""
        self.collapse_all()
        self.record_cache.clear_cache()
        self._current_ledgers.clear()
        self._previous_ledgers.clear()
        self._last_price_ledgers.clear()

    def current_ledger(self, key: int) -> list[PriceLevelRow]:
        return self._current_ledgers.get(key, [])

    def previous_ledger(self, key: int) -> list[PriceLevelRow]:
        return self._previous_ledgers.get(key, [])

    def last_price_ledger(self, key: int) -> list[PriceLevelRow]:
        return self._last_price_ledgers.get(key, [])

    def diff_ledger(self, key: int) -> list[LedgerDiffRow]:
        """
        Gets the traded volume matched at each price of a row since its
        previous record.

        Args:
            key: The key of the row.

        Returns:
            The diff rows, or an empty list if either ledger is missing.
        """
        current = self.current_ledger(key)
        previous = self.previous_ledger(key)
        if not current or not previous:
            return []
        return differ.diff(current, previous)

    def aligned_ledger(self, key: int) -> list[AlignedRow]:
        """Gets the current and previous ledgers of a row aligned by price."""
        return differ.align(self.current_ledger(key), self.previous_ledger(key))

    def is_heavily_traded(self, key: int, threshold: int = 3) -> bool:
        return differ.is_heavily_traded(
            self.current_ledger(key), self.previous_ledger(key), threshold
        )
