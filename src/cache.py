"""
Redis-backed result cache.

Every expensive platform read goes through here first (read-through) and is
written back afterwards (write-through). Expiry is chosen per entry by
``select_ttl`` from the number of results the call produced.
"""

import json
import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger("searchbot.cache")


class CacheKeys:
    """Key prefixes. These must stay stable across releases."""
    SEARCH_RESULTS = "twitter_search_results:"  # + query
    USER_INFO = "twitter_user_info:"  # + username
    USER_TWEETS = "twitter_user_tweets:"  # + username
    SINGLE_TWEET = "twitter_single_tweet:"  # + tweet id
    TWEET_AUTHOR = "twitter_tweet_author:"  # + author username
    USER_PROFILE = "twitter_user_profile:"  # + address or username (analysis)
    ACCOUNT_TIMEOUT = "account_timeout:"  # + identity name
    TWITTER_COOKIES = "twitter_cookies:"  # + identity name
    TWITTER_ACCOUNT = "twitter_account:"  # + identity name


def select_ttl(
    count: int,
    threshold: int,
    full_ttl: int,
    partial_ttl: int,
    empty_ttl: int,
) -> int:
    """
    Pick an expiry from result quality.

    Args:
        count: Number of results the call produced.
        threshold: Minimum count considered a full result.
        full_ttl: Expiry for full results.
        partial_ttl: Expiry for non-empty results below the threshold.
        empty_ttl: Expiry for confirmed-empty results (negative cache).
    """
    if count >= threshold:
        return full_ttl
    if count > 0:
        return partial_ttl
    return empty_ttl


class RedisCache:
    """JSON values and time-boxed flags in Redis."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.from_url(url, decode_responses=True))

    @property
    def client(self) -> redis.Redis:
        return self._client

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None on a miss or store failure."""
        try:
            data = await self._client.get(key)
        except RedisError as e:
            logger.error(f"Failed to retrieve data from Redis [{key}]: {e}")
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding undecodable cache entry [{key}]: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        """Store a JSON-serializable value with an expiry in seconds."""
        try:
            await self._client.setex(key, ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.error(f"Failed to save data to Redis [{key}]: {e}")
            raise
        logger.debug(f"Cached [{key}] for {ttl}s")

    async def set_flag(self, key: str, ttl: int) -> None:
        await self._client.setex(key, ttl, "1")

    async def has_flag(self, key: str) -> bool:
        return bool(await self._client.exists(key))

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(key))

    async def close(self) -> None:
        await self._client.aclose()
