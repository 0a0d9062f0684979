import asyncio
from decimal import Decimal

import pytest

from conftest import MockFetcher, make_payload, make_row
from snapshot_viewer.common.models import (
    ExpandKind,
    ExpandSelection,
    LedgerDiffRow,
    PreviousRecord,
)
from snapshot_viewer.detail.expand_controller import DetailExpandController


def create_previous(
    record_id: int, traded: list[tuple[float, float]]
) -> PreviousRecord:
    """Creates a previous record whose snapshot only has traded volume."""
    return PreviousRecord(
        record_id=record_id,
        raw_payload=make_payload(traded=traded),
        reference_time="2025-01-01T11:55:00Z",
    )


@pytest.mark.asyncio
async def test_toggle_twice_collapses(controller: DetailExpandController):
    """Tests that toggling an expanded row collapses it."""
    row = make_row(1, make_payload(traded=[(2.0, 800)]))

    task = controller.toggle_ledger(row)
    assert controller.ledger_expanded == 1
    await task

    assert controller.toggle_ledger(row) is None
    assert controller.ledger_expanded is None
    assert controller.selection == ExpandSelection()


@pytest.mark.asyncio
async def test_expanding_another_row_switches_selection(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that only one row's ledger is expanded at a time."""
    first = make_row(1, make_payload(traded=[(2.0, 1)]))
    second = make_row(2, make_payload(traded=[(3.0, 1)]))

    await controller.toggle_ledger(first)
    await controller.toggle_ledger(second)

    assert controller.ledger_expanded == 2
    assert controller.selection == ExpandSelection(ExpandKind.LEDGER, 2)
    assert fetcher.call_count(1) == 1
    assert fetcher.call_count(2) == 1


@pytest.mark.asyncio
async def test_ledger_and_last_price_are_mutually_exclusive(
    controller: DetailExpandController,
):
    """Tests that expanding one kind of ledger collapses the other."""
    row = make_row(
        1,
        make_payload(traded=[(2.0, 1)]),
        last_price_payload=make_payload(traded=[(2.0, 40)]),
    )

    await controller.toggle_ledger(row)
    controller.toggle_last_price(row)

    assert controller.ledger_expanded is None
    assert controller.last_price_expanded == 1
    assert controller.last_price_ledger(1)[0].traded == Decimal("40")

    # The previous record is cached by now, so nothing is loaded.
    assert controller.toggle_ledger(row) is None

    assert controller.ledger_expanded == 1
    assert controller.last_price_expanded is None

    controller.toggle_last_price(row)
    controller.toggle_last_price(row)

    assert controller.selection == ExpandSelection()


@pytest.mark.asyncio
async def test_expand_decodes_current_and_previous_ledgers(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests the diff of a row after its previous record arrives."""
    fetcher.records[1] = create_previous(99, traded=[(2.0, 500)])
    row = make_row(1, make_payload(traded=[(2.0, 800)]))

    task = controller.toggle_ledger(row)

    # The current ledger is available before the previous record settles.
    assert controller.current_ledger(1)[0].traded == Decimal("800")
    assert controller.diff_ledger(1) == []
    await task

    assert controller.previous_ledger(1)[0].traded == Decimal("500")
    assert controller.diff_ledger(1) == [
        LedgerDiffRow(price=Decimal("2.0"), traded=Decimal("300"))
    ]


@pytest.mark.asyncio
async def test_cached_row_expands_without_fetching(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that re-expanding a settled row doesn't issue another request."""
    row = make_row(1, make_payload(traded=[(2.0, 1)]))

    await controller.toggle_ledger(row)
    controller.toggle_ledger(row)

    assert controller.toggle_ledger(row) is None
    assert controller.ledger_expanded == 1
    assert fetcher.call_count(1) == 1


@pytest.mark.asyncio
async def test_missing_previous_record_gives_empty_diff(
    controller: DetailExpandController,
):
    """Tests that a row without a previous record has no diff."""
    row = make_row(1, make_payload(traded=[(2.0, 800)]))

    await controller.toggle_ledger(row)

    assert controller.previous_ledger(1) == []
    assert controller.diff_ledger(1) == []
    assert not controller.has_failed(1)


@pytest.mark.asyncio
async def test_failed_fetch_can_be_retried(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that a failed previous record is flagged and can be retried."""
    fetcher.failing_keys.add(1)
    row = make_row(1, make_payload(traded=[(2.0, 800)]))

    await controller.toggle_ledger(row)

    assert controller.has_failed(1)
    assert 1 in controller.failed_keys
    assert controller.ledger_expanded == 1

    fetcher.failing_keys.clear()
    fetcher.records[1] = create_previous(99, traded=[(2.0, 700)])
    await controller.retry(row)

    assert not controller.has_failed(1)
    assert controller.diff_ledger(1)[0].traded == Decimal("100")


@pytest.mark.asyncio
async def test_row_is_loading_while_fetch_in_flight(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that the loading state is visible until the fetch settles."""
    fetcher.gate = asyncio.Event()
    row = make_row(1, make_payload(traded=[(2.0, 1)]))

    task = controller.toggle_ledger(row)
    await asyncio.sleep(0)

    assert controller.is_loading(1)
    assert 1 in controller.loading_keys

    fetcher.gate.set()
    await task

    assert not controller.is_loading(1)


@pytest.mark.asyncio
async def test_prefetch_all_skips_cached_and_survives_failures(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests prefetching five rows where two are cached and one fails."""
    rows = [make_row(key, make_payload(traded=[(2.0, 10 * key)])) for key in range(5)]
    await controller.toggle_ledger(rows[0])
    await controller.toggle_ledger(rows[1])
    fetcher.calls.clear()
    fetcher.failing_keys.add(3)
    fetcher.records[2] = create_previous(102, traded=[(2.0, 1)])

    await controller.prefetch_all(rows)

    assert sorted(call[0] for call in fetcher.calls) == [2, 3, 4]
    assert controller.failed_keys == {3}
    assert controller.record_cache.has(2)
    assert controller.record_cache.has(4)
    assert not controller.record_cache.has(3)
    assert controller.diff_ledger(2) == [
        LedgerDiffRow(price=Decimal("2.0"), traded=Decimal("19"))
    ]


@pytest.mark.asyncio
async def test_prefetch_all_decodes_every_current_ledger(
    controller: DetailExpandController,
):
    """Tests that every row's snapshot is decoded by a prefetch."""
    rows = [make_row(key, make_payload(back=[(1.5, key + 1)])) for key in range(3)]

    await controller.prefetch_all(rows)

    assert [controller.current_ledger(row.key)[0].to_back for row in rows] == [
        Decimal("1"),
        Decimal("2"),
        Decimal("3"),
    ]


@pytest.mark.asyncio
async def test_prefetch_all_with_everything_cached_issues_no_requests(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that a second prefetch is served entirely from the cache."""
    rows = [make_row(key) for key in range(3)]
    await controller.prefetch_all(rows)
    fetcher.calls.clear()

    await controller.prefetch_all(rows)

    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_collapse_all_keeps_caches(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that collapsing doesn't forget fetched records."""
    row = make_row(1, make_payload(traded=[(2.0, 1)]))
    await controller.toggle_ledger(row)

    controller.collapse_all()

    assert controller.selection == ExpandSelection()
    assert controller.record_cache.has(1)
    assert controller.current_ledger(1)


@pytest.mark.asyncio
async def test_reset_all_forgets_everything(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests that a reset makes the next expand fetch again."""
    fetcher.records[1] = create_previous(99, traded=[(2.0, 500)])
    row = make_row(1, make_payload(traded=[(2.0, 800)]))
    await controller.toggle_ledger(row)

    controller.reset_all()

    assert controller.selection == ExpandSelection()
    assert controller.current_ledger(1) == []
    assert controller.previous_ledger(1) == []
    assert not controller.record_cache.has(1)

    await controller.toggle_ledger(row)

    assert fetcher.call_count(1) == 2


@pytest.mark.asyncio
async def test_heavily_traded_row(
    controller: DetailExpandController, fetcher: MockFetcher
):
    """Tests flagging a row that traded across many prices."""
    fetcher.records[1] = create_previous(99, traded=[(1.5, 1)])
    row = make_row(1, make_payload(traded=[(1.5, 2), (1.6, 1), (1.7, 1), (1.8, 1)]))

    await controller.toggle_ledger(row)

    assert controller.is_heavily_traded(1)
    assert not controller.is_heavily_traded(1, threshold=4)
    assert len(controller.aligned_ledger(1)) == 4


def test_toggle_cached_row_outside_event_loop(record_cache, fetcher: MockFetcher):
    """Tests that a settled row can be toggled without a running loop."""
    controller = DetailExpandController(record_cache)
    record_cache.cache[1] = None
    row = make_row(1, make_payload(traded=[(2.0, 1)]))

    assert controller.toggle_ledger(row) is None
    assert controller.ledger_expanded == 1
    assert fetcher.calls == []
