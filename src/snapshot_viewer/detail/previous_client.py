import asyncio
import logging
import os
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from snapshot_viewer.common.exceptions import PreviousRecordFetchError
from snapshot_viewer.common.models import ApiEnvelope, PreviousRecord
from snapshot_viewer.common.session import ApiSession
from snapshot_viewer.detail.record_store import PreviousRecordStore

logger = logging.getLogger(__name__)

PREVIOUS_RECORD_ENDPOINT = os.getenv(
    "PREVIOUS_RECORD_ENDPOINT", "/api/bighold/previous"
)


class PreviousRecordClient:
    """
    Fetches the snapshot recorded before a given record from the API.

    Retries and backoff are left to the caller; every failure is raised as a
    PreviousRecordFetchError.
    """

    def __init__(
        self,
        api_session: ApiSession,
        endpoint: str = PREVIOUS_RECORD_ENDPOINT,
        http_session: aiohttp.ClientSession | None = None,
        store: PreviousRecordStore | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ):
        """
        Creates a new previous-record client.

        Args:
            api_session: The analyst session to make requests for.
            endpoint: The path of the previous-record endpoint.
            http_session: Optional HTTP session to reuse. If None, a session
                          is opened for each request.
            store: Optional shared store checked before the API.
            timeout: Timeout settings for requests.
        """
        self.api_session = api_session
        self.endpoint = endpoint
        self.http_session = http_session
        self.store = store
        self.timeout = timeout or aiohttp.ClientTimeout(total=10, connect=5)

    def _build_params(
        self,
        record_id: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None,
    ) -> dict[str, str]:
        params = {
            "recordId": str(record_id),
            "marketId": str(market_id),
            "selectionId": str(selection_id),
            "referenceTime": reference_time,
        }
        if extra_params:
            params.update(extra_params)
        return params

    async def _get_json(
        self, session: aiohttp.ClientSession, record_id: int, params: dict[str, str]
    ) -> Any:
        """
        Requests the previous-record endpoint and parses the response body.

        Args:
            session: The HTTP session to use.
            record_id: The ID of the record being fetched, for error reporting.
            params: The query parameters of the request.

        Returns:
            The parsed JSON response body.

        Raises:
            PreviousRecordFetchError: If the response isn't a successful JSON
                                      response.
        """
        async with session.get(
            self.api_session.url(self.endpoint),
            params=params,
            headers=self.api_session.headers,
        ) as response:
            if response.status != 200:
                raise PreviousRecordFetchError(record_id, f"HTTP {response.status}")
            body = await response.read()
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise PreviousRecordFetchError(record_id, f"invalid JSON: {e}") from e

    async def fetch_previous(
        self,
        record_id: int,
        market_id: int,
        selection_id: int,
        reference_time: str,
        extra_params: dict[str, str] | None = None,
    ) -> PreviousRecord | None:
        """
        Fetches the snapshot recorded before a record.

        Args:
            record_id: The ID of the record.
            market_id: The market the record belongs to.
            selection_id: The selection the record belongs to.
            reference_time: The ISO 8601 refresh time of the record.
            extra_params: Market-specific query parameters, such as the
                          handicap line.

        Returns:
            The previous record, or None if the API reports there isn't one.

        Raises:
            PreviousRecordFetchError: If the request fails or the API doesn't
                                      report success.
        """
        if self.store:
            stored = await self.store.get_record(record_id)
            if stored is not None:
                return stored

        params = self._build_params(
            record_id, market_id, selection_id, reference_time, extra_params
        )
        try:
            if self.http_session:
                body = await self._get_json(self.http_session, record_id, params)
            else:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    body = await self._get_json(session, record_id, params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PreviousRecordFetchError(record_id, f"transport error: {e}") from e

        try:
            envelope = ApiEnvelope.model_validate(body)
        except ValidationError as e:
            raise PreviousRecordFetchError(
                record_id, f"unexpected response: {e}"
            ) from e
        if not envelope.is_success:
            raise PreviousRecordFetchError(
                record_id, f"code {envelope.code}: {envelope.message or 'no message'}"
            )

        logger.debug(
            f"Fetched previous record for {record_id}: "
            f"{envelope.data.record_id if envelope.data else 'none'}"
        )
        if self.store and envelope.data is not None:
            await self.store.set_record(record_id, envelope.data)
        return envelope.data
