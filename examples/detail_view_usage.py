"""
An example showing how to drive the detail view's expand controller from a
script, fetching previous records from a running snapshot API.
"""

import asyncio
import logging
import os

from snapshot_viewer.common.models import BigHoldItem
from snapshot_viewer.common.session import ApiSession
from snapshot_viewer.detail.expand_controller import DetailExpandController
from snapshot_viewer.detail.previous_client import PreviousRecordClient
from snapshot_viewer.detail.record_cache import PreviousRecordCache
from snapshot_viewer.detail.record_store import get_shared_store

# Configure logging with timestamps
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

# Page items as they appear in a detail page payload.
PAGE_ITEMS = [
    {
        "pcId": 1001,
        "selection": "Over 2.5",
        "selectionId": 47973,
        "marketId": 1234,
        "refreshTime": "2025-01-01T12:00:00Z",
        "rawData": (
            '{"ex":{"availableToBack":[{"price":1.9,"size":100}],'
            '"availableToLay":[{"price":1.95,"size":80}],'
            '"tradedVolume":[{"price":1.9,"size":50},{"price":2.0,"size":800}]}}'
        ),
    },
    {
        "pcId": 1002,
        "selection": "Under 2.5",
        "selectionId": 47974,
        "marketId": 1234,
        "refreshTime": "2025-01-01T12:00:00Z",
        "rawData": '{"ex":{"tradedVolume":[{"price":2.1,"size":300}]}}',
    },
]


async def run_example() -> None:
    """Expands a row, then prefetches and prints the diff of every row."""
    api_session = ApiSession()
    token = os.getenv("SNAPSHOT_API_TOKEN")
    if token:
        api_session.authenticate(token, os.getenv("SNAPSHOT_API_USER"))

    client = PreviousRecordClient(api_session, store=get_shared_store())
    controller = DetailExpandController(PreviousRecordCache(client.fetch_previous))
    rows = [BigHoldItem.model_validate(item).to_snapshot_row() for item in PAGE_ITEMS]

    # Expanding shows the current ledger straight away.
    task = controller.toggle_ledger(rows[0])
    for level in controller.current_ledger(rows[0].key):
        logger.info(f"Current {level.price}: traded {level.traded}")
    if task:
        await task

    await controller.prefetch_all(rows)
    for row in rows:
        if controller.has_failed(row.key):
            logger.info(f"Row {row.key}: previous record unavailable")
            continue
        for diff_row in controller.diff_ledger(row.key):
            logger.info(f"Row {row.key}: {diff_row.traded} matched at {diff_row.price}")


def main() -> None:
    try:
        asyncio.run(run_example())
    except KeyboardInterrupt:
        logger.info("Example stopped by user")
    except Exception as e:
        logger.error(f"Example failed: {e}", exc_info=True)


if __name__ == "__main__":
    main()
