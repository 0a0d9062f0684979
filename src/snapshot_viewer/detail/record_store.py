import asyncio
import logging
import os

import orjson
import redis.asyncio as redis
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from snapshot_viewer.common.models import PreviousRecord

logger = logging.getLogger(__name__)

# The shared store is only used when a Redis URL is configured.
REDIS_URL = os.getenv("REDIS_URL")
PREVIOUS_RECORD_TTL_SECONDS = int(os.getenv("PREVIOUS_RECORD_TTL_SECONDS", "86400"))


class PreviousRecordStore:
    """
    Shares fetched previous records between sessions using Redis.

    Previous records are historical snapshots that never change once they
    exist, so any session can reuse a record another session fetched. The
    store is only an optimisation: if Redis is unavailable, reads miss and
    writes are dropped.
    """

    def __init__(
        self,
        redis_client: Redis,
        ttl_seconds: int = PREVIOUS_RECORD_TTL_SECONDS,
        redis_url: str | None = None,
    ):
        """
        Creates a new previous-record store.

        Args:
            redis_client: The Redis client to store records in.
            ttl_seconds: How long a stored record is kept for.
            redis_url: The URL the client was created from. If given, a new
                       client is created for each event loop the store is
                       used on.
        """
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.redis_url = redis_url
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def from_url(cls, redis_url: str) -> "PreviousRecordStore":
        """
        Creates a store connected to the Redis instance at a URL.

        Args:
            redis_url: The Redis connection URL.

        Returns:
            The previous-record store.
        """
        return cls(redis.from_url(redis_url), redis_url=redis_url)

    def _get_redis(self) -> Redis:
        # Async Redis connections belong to the event loop that opened them,
        # and the Streamlit view runs each interaction on a new loop.
        if self.redis_url:
            loop = asyncio.get_running_loop()
            if self._loop is not None and self._loop is not loop:
                self.redis = redis.from_url(self.redis_url)
            self._loop = loop
        return self.redis

    def _get_record_key(self, record_id: int) -> str:
        """
        Gets the Redis key for the previous record of a record.

        Args:
            record_id: The ID of the record whose predecessor is stored.

        Returns:
            The Redis key for the previous record.
        """
        return f"previous_record:{record_id}"

    async def get_record(self, record_id: int) -> PreviousRecord | None:
        """
        Gets the stored previous record of a record.

        Args:
            record_id: The ID of the record whose predecessor to get.

        Returns:
            The previous record if it's stored, None otherwise.
        """
        try:
            raw_data = await self._get_redis().get(self._get_record_key(record_id))
        except RedisError as e:
            logger.warning(f"Previous-record store unavailable, skipping read: {e}")
            return None
        if not raw_data:
            return None

        try:
            return PreviousRecord.model_validate(orjson.loads(raw_data))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable stored record for {record_id}: {e}")
            return None

    async def set_record(self, record_id: int, record: PreviousRecord) -> None:
        """
        Stores the previous record of a record.

        Args:
            record_id: The ID of the record whose predecessor is stored.
            record: The previous record.
        """
        try:
            await self._get_redis().set(
                self._get_record_key(record_id),
                orjson.dumps(record.model_dump(mode="json")),
                ex=self.ttl_seconds,
            )
        except RedisError as e:
            logger.warning(f"Previous-record store unavailable, skipping write: {e}")


def get_shared_store(
    redis_url: str | None = REDIS_URL,
) -> PreviousRecordStore | None:
    """
    Gets the shared previous-record store, if one is configured.

    Args:
        redis_url: The Redis connection URL, usually from REDIS_URL.

    Returns:
        The store connected to Redis, or None if no URL is configured.
    """
    if not redis_url:
        logger.info("REDIS_URL not set, previous records won't be shared")
        return None
    logger.info("Sharing previous records through Redis")
    return PreviousRecordStore.from_url(redis_url)
