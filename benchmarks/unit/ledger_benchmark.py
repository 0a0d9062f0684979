"""
A benchmark harness for the ledger decoder and differ.

Decoding runs on every expand in the detail view, and prefetching decodes
every row of a window at once, so this measures how many snapshots can be
decoded and compared per second as the ledgers grow deeper.
"""

import random
import time

import orjson

from snapshot_viewer.ledger.decoder import decode
from snapshot_viewer.ledger.differ import align, diff


def create_payload(num_levels: int, seed: int = 0) -> str:
    """
    Creates a raw runner snapshot with the given number of price levels.

    Args:
        num_levels: The number of distinct prices on each side.
        seed: The seed for the random sizes.

    Returns:
        The snapshot as a JSON string.
    """
    rng = random.Random(seed)
    prices = [round(1.01 + index * 0.01, 2) for index in range(num_levels)]

    def price_sizes() -> list[dict]:
        return [
            {"price": price, "size": round(rng.uniform(1, 5000), 2)}
            for price in prices
        ]

    return orjson.dumps(
        {
            "ex": {
                "availableToBack": price_sizes(),
                "availableToLay": price_sizes(),
                "tradedVolume": price_sizes(),
            }
        }
    ).decode()


def benchmark_decode(num_payloads: int = 1_000, num_levels: int = 50) -> float:
    """
    Benchmarks decoding raw snapshots into ledgers.

    Args:
        num_payloads: The number of snapshots to decode.
        num_levels: The number of price levels per snapshot.

    Returns:
        The number of snapshots decoded per second.
    """
    payloads = [create_payload(num_levels, seed) for seed in range(num_payloads)]

    start = time.perf_counter()
    for payload in payloads:
        decode(payload)
    end = time.perf_counter()

    elapsed = end - start
    payloads_per_second = num_payloads / elapsed
    print(
        f"Decoded {num_payloads:,} snapshots with {num_levels:,} levels in "
        f"{elapsed:.3f} seconds ({payloads_per_second:,.2f} snapshots/second)"
    )
    return payloads_per_second


def benchmark_diff(num_pairs: int = 1_000, num_levels: int = 50) -> float:
    """
    Benchmarks diffing and aligning decoded ledgers.

    Args:
        num_pairs: The number of current and previous ledger pairs.
        num_levels: The number of price levels per ledger.

    Returns:
        The number of ledger pairs compared per second.
    """
    pairs = [
        (
            decode(create_payload(num_levels, seed)),
            decode(create_payload(num_levels, seed + num_pairs)),
        )
        for seed in range(num_pairs)
    ]

    start = time.perf_counter()
    for current, previous in pairs:
        diff(current, previous)
        align(current, previous)
    end = time.perf_counter()

    elapsed = end - start
    pairs_per_second = num_pairs / elapsed
    print(
        f"Compared {num_pairs:,} ledger pairs with {num_levels:,} levels in "
        f"{elapsed:.3f} seconds ({pairs_per_second:,.2f} pairs/second)"
    )
    return pairs_per_second


def main() -> None:
    """Runs all benchmarks."""
    benchmark_decode(1_000, 50)
    benchmark_decode(100, 1_000)
    benchmark_diff(1_000, 50)
    benchmark_diff(100, 1_000)


if __name__ == "__main__":
    main()
