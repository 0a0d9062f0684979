import asyncio

import orjson
import pytest

from snapshot_viewer.common.models import PreviousRecord, SnapshotRow
from snapshot_viewer.detail.expand_controller import DetailExpandController
from snapshot_viewer.detail.record_cache import PreviousRecordCache


def make_payload(
    back: list[tuple[float, float]] | None = None,
    lay: list[tuple[float, float]] | None = None,
    traded: list[tuple[float, float]] | None = None,
    pascal_case: bool = False,
) -> str:
    """Creates a raw runner snapshot in either casing convention."""

    def price_sizes(pairs):
        return [{"price": price, "size": size} for price, size in pairs or []]

    if pascal_case:
        exchange = {
            "AvailableToBack": price_sizes(back),
            "AvailableToLay": price_sizes(lay),
            "TradedVolume": price_sizes(traded),
        }
        return orjson.dumps({"Ex": exchange}).decode()
    exchange = {
        "availableToBack": price_sizes(back),
        "availableToLay": price_sizes(lay),
        "tradedVolume": price_sizes(traded),
    }
    return orjson.dumps({"ex": exchange}).decode()


def make_row(key: int, raw_payload: str | None = None, **kwargs) -> SnapshotRow:
    """Creates a snapshot row for testing."""
    return SnapshotRow(
        key=key,
        market_id=kwargs.pop("market_id", 1000 + key),
        selection_id=kwargs.pop("selection_id", 2000 + key),
        reference_time=kwargs.pop("reference_time", "2025-01-01T12:00:00Z"),
        raw_payload=raw_payload,
        **kwargs,
    )


class MockFetcher:
    """Records upstream requests and serves canned previous records."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.records: dict[int, PreviousRecord | None] = {}
        self.failing_keys: set[int] = set()
        # When set, requests wait for it before settling.
        self.gate: asyncio.Event | None = None

    async def __call__(
        self,
        record_id: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None = None,
    ) -> PreviousRecord | None:
        self.calls.append(
            (record_id, market_id, selection_id, reference_time, extra_params)
        )
        if self.gate is not None:
            await self.gate.wait()
        if record_id in self.failing_keys:
            raise ConnectionError(f"upstream unavailable for {record_id}")
        return self.records.get(record_id)

    def call_count(self, record_id: int) -> int:
        return sum(1 for call in self.calls if call[0] == record_id)


@pytest.fixture
def fetcher() -> MockFetcher:
    """Creates a mock upstream fetcher for testing."""
    return MockFetcher()


@pytest.fixture
def record_cache(fetcher: MockFetcher) -> PreviousRecordCache:
    """Creates a previous-record cache backed by the mock fetcher."""
    return PreviousRecordCache(fetcher)


@pytest.fixture
def controller(record_cache: PreviousRecordCache) -> DetailExpandController:
    """Creates an expand controller backed by the test cache."""
    return DetailExpandController(record_cache)
