"""
A benchmark harness for prefetching previous records.

The upstream API is replaced with a mock that sleeps for a fixed latency, so
this measures how well concurrent prefetching hides that latency.
"""

import asyncio
import time

from snapshot_viewer.common.models import PreviousRecord, SnapshotRow
from snapshot_viewer.detail.expand_controller import DetailExpandController
from snapshot_viewer.detail.record_cache import PreviousRecordCache


def create_controller(latency: float) -> DetailExpandController:
    """
    Creates a controller whose upstream answers after a fixed latency.

    Args:
        latency: The simulated round-trip time of each request, in seconds.

    Returns:
        The controller with a mocked upstream.
    """

    async def fetch_previous(record_id: int, *args) -> PreviousRecord:
        await asyncio.sleep(latency)
        return PreviousRecord(record_id=record_id - 1, raw_payload='{"ex":{}}')

    return DetailExpandController(PreviousRecordCache(fetch_previous))


async def benchmark_prefetch(num_rows: int = 200, latency: float = 0.05) -> float:
    """
    Benchmarks prefetching the previous records of a window of rows.

    Args:
        num_rows: The number of rows in the window.
        latency: The simulated round-trip time of each request, in seconds.

    Returns:
        The number of rows prefetched per second.
    """
    controller = create_controller(latency)
    rows = [
        SnapshotRow(
            key=key,
            market_id=1,
            selection_id=key,
            reference_time="2025-01-01T12:00:00Z",
            raw_payload='{"ex":{"tradedVolume":[{"price":2.0,"size":1}]}}',
        )
        for key in range(num_rows)
    ]

    start = time.perf_counter()
    await controller.prefetch_all(rows)
    end = time.perf_counter()

    elapsed = end - start
    rows_per_second = num_rows / elapsed
    print(
        f"Prefetched {num_rows:,} rows with {latency * 1000:.0f}ms latency in "
        f"{elapsed:.3f} seconds ({rows_per_second:,.2f} rows/second)"
    )
    return rows_per_second


async def main() -> None:
    """Runs all benchmarks."""
    await benchmark_prefetch(200, 0.05)
    await benchmark_prefetch(2_000, 0.05)


if __name__ == "__main__":
    asyncio.run(main())
