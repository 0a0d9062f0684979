import asyncio
import logging
from typing import Awaitable, Protocol

from snapshot_viewer.common.models import PreviousRecord

logger = logging.getLogger(__name__)


class PreviousRecordFetcher(Protocol):
    def __call__(
        self,
        record_id: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None = None,
    ) -> Awaitable[PreviousRecord | None]: ...


class PreviousRecordCache:
    """
    Lazily fetches and caches the previous record of each record.

    A key is fetched at most once after it settles: a cached None means the
    API confirmed there is no previous record, whereas an absent key has
    either never been requested or failed. Failures are never raised; they
    are recorded in `failed_keys` so the view can offer a retry.

    Attributes:
        cache: The settled previous records, keyed by record ID.
        loading_keys: The keys with a request in flight.
        failed_keys: The keys whose last request failed.
        dedupe_in_flight: Whether concurrent requests for an unsettled key
                          share one upstream request.
    """

    def __init__(self, fetcher: PreviousRecordFetcher, dedupe_in_flight: bool = True):
        """
        Creates a new, empty previous-record cache.

        Args:
            fetcher: The upstream fetch function, usually
                     PreviousRecordClient.fetch_previous.
            dedupe_in_flight: Whether concurrent callers for the same
                              unsettled key should await a single request.
        """
        self.fetcher = fetcher
        self.dedupe_in_flight = dedupe_in_flight
        self.cache: dict[int, PreviousRecord | None] = {}
        self.loading_keys: set[int] = set()
        self.failed_keys: set[int] = set()
        self._in_flight: dict[int, asyncio.Task[PreviousRecord | None]] = {}

    def has(self, key: int) -> bool:
        return key in self.cache

    def get(self, key: int) -> PreviousRecord | None:
        return self.cache.get(key)

    def is_loading(self, key: int) -> bool:
        return key in self.loading_keys

    def has_failed(self, key: int) -> bool:
        return key in self.failed_keys

    def _mark_loading(self, key: int) -> None:
        self.loading_keys.add(key)
        self.failed_keys.discard(key)

    async def _load(
        self,
        key: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None,
    ) -> PreviousRecord | None:
        """
        Issues one upstream request for a key and settles its state. The key
        must already be marked as loading.

        Returns:
            The previous record, or None if there isn't one or the request
            failed.
        """
        try:
            record = await self.fetcher(
                key, market_id, selection_id, reference_time, extra_params
            )
        except Exception as e:
            logger.error(f"Failed to fetch previous record for {key}: {e}")
            self.failed_keys.add(key)
            return None
        finally:
            self.loading_keys.discard(key)

        self.cache[key] = record
        return record

    async def fetch_previous(
        self,
        key: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None = None,
    ) -> PreviousRecord | None:
        """
        Gets the previous record of a record, fetching it if it isn't cached.

        Args:
            key: The ID of the record.
            market_id: The market the record belongs to.
            selection_id: The selection the record belongs to.
            reference_time: The ISO 8601 refresh time of the record.
            extra_params: Market-specific query parameters for the request.

        Returns:
            The previous record, or None. A None is ambiguous between "no
            previous record" and "fetch failed"; `has_failed` tells them
            apart.
        """
        if key in self.cache:
            return self.cache[key]

        if not self.dedupe_in_flight:
            self._mark_loading(key)
            return await self._load(
                key, market_id, selection_id, reference_time, extra_params
            )

        task = self._in_flight.get(key)
        if task is None:
            self._mark_loading(key)
            task = asyncio.ensure_future(
                self._load(key, market_id, selection_id, reference_time, extra_params)
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._forget_in_flight(key, task))
        # Shield the shared request so one caller being cancelled doesn't
        # cancel it for the others.
        return await asyncio.shield(task)

    def _forget_in_flight(
        self, key: int, task: asyncio.Task[PreviousRecord | None]
    ) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def clear_cache(self) -> None:
        """
        Forgets every settled record and failure.

        Requests in flight aren't cancelled and will still cache their result
        when they settle. Until then, a new request for one of their keys joins
        the request in flight rather than issuing a fresh one; previous
        records never change, so its result is still correct.
        """
        self.cache.clear()
        self.failed_keys.clear()
        logger.debug("Cleared previous-record cache")
