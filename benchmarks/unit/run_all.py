"""Runs all unit benchmarks."""

import asyncio

from ledger_benchmark import main as run_ledger_benchmark
from prefetch_benchmark import main as run_prefetch_benchmark


def main() -> None:
    """Runs all unit benchmarks in sequence."""
    print("=" * 80)
    print("Unit Benchmarks")
    print("=" * 80)
    print()

    print("=" * 80)
    print("1. Ledger Benchmark (Decode and Diff)")
    print("=" * 80)
    print()
    run_ledger_benchmark()
    print()

    print("=" * 80)
    print("2. Prefetch Benchmark (Mocked API)")
    print("=" * 80)
    print()
    asyncio.run(run_prefetch_benchmark())
    print()

    print("=" * 80)
    print("Unit benchmarks complete")
    print("=" * 80)


if __name__ == "__main__":
    main()
