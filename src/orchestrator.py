"""
Fetch orchestration.

Each operation follows the same protocol: cache lookup, then (on a miss)
pool acquisition, a guarded platform call, a cache write whose expiry
depends on result quality, and a release that runs on every exit path.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from redis.exceptions import RedisError
from twscrape.models import Tweet

from .analyzer import AnalysisInput, ProfileAnalyzer
from .cache import CacheKeys, RedisCache, select_ttl
from .config import CacheConfig, SearchConfig
from .credentials import IdentityRef
from .errors import NoAccountsAvailable, NotFound
from .guard import TimeoutGuard
from .pool import AccountPool
from .scraper import FormattedTweet, UserProfile

logger = logging.getLogger("searchbot.orchestrator")

# Negative-cache entry for users and tweets confirmed missing upstream
NOT_FOUND_MARKER = {"not_found": True}


@dataclass
class SearchResult:
    """Tweets matching a query (contract address or keyword)."""
    query: str
    search_results: list[FormattedTweet] = field(default_factory=list)
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"searchResults": [t.to_dict() for t in self.search_results]}


@dataclass
class UserData:
    """A user's profile and timeline; both None when the user does not exist."""
    user_info: UserProfile | None = None
    tweets: list[FormattedTweet] | None = None
    user_not_found: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "userInfo": self.user_info.to_dict() if self.user_info else None,
            "tweets": [t.to_dict() for t in self.tweets] if self.tweets is not None else None,
            "userNotFound": self.user_not_found,
        }


@dataclass
class SingleTweetData:
    """One tweet and its author."""
    user_info: UserProfile | None = None
    tweets: list[FormattedTweet] = field(default_factory=list)
    tweet_not_found: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = {
            "userInfo": self.user_info.to_dict() if self.user_info else None,
            "tweets": [t.to_dict() for t in self.tweets],
            "isSingleTweet": True,
        }
        if self.tweet_not_found:
            data["tweetNotFound"] = True
        return data


def author_key(username: str) -> str:
    """Author profiles are keyed by username so an author's tweets share one entry."""
    return f"{CacheKeys.TWEET_AUTHOR}{username}"


async def collect_tweets(source: AsyncIterator[Tweet], limit: int) -> list[FormattedTweet]:
    """
    Pull formatted tweets from a lazy source until it ends or `limit` is reached.

    The producer is not told to stop; the iterator is simply abandoned.
    """
    tweets: list[FormattedTweet] = []
    async for tweet in source:
        try:
            tweets.append(FormattedTweet.from_twscrape(tweet))
        except Exception as e:
            logger.warning(f"Failed to parse tweet {getattr(tweet, 'id', '?')}: {e}")
            continue
        if len(tweets) >= limit:
            break
    return tweets


class TwitterSearchService:
    """The cache-first fetch operations backed by the account pool."""

    def __init__(
        self,
        pool: AccountPool,
        cache: RedisCache,
        guard: TimeoutGuard,
        analyzer: ProfileAnalyzer,
        search_config: SearchConfig | None = None,
        cache_config: CacheConfig | None = None,
    ):
        self.pool = pool
        self._cache = cache
        self._guard = guard
        self._analyzer = analyzer
        self._search = search_config or SearchConfig()
        self._ttl = cache_config or CacheConfig()

    async def _cache_failed_call(self, cache_key: str) -> None:
        """Store an empty result briefly so a failing key is not retried at once."""
        try:
            await self._cache.set(cache_key, [], self._ttl.empty_expire)
        except RedisError as e:
            logger.error(f"Failed to cache empty result for {cache_key}: {e}")

    async def search_by_query(
        self,
        query: str,
        force_update: bool = False,
        preferred: IdentityRef | str | None = None,
    ) -> SearchResult:
        """
        Search tweets for a query, capped at `max_tweets_per_search`.

        Args:
            query: Contract address or keyword.
            force_update: Skip the cache read.
            preferred: Identity of the logged-in caller, tried before the pool.

        Returns:
            SearchResult with the formatted tweets.
        """
        start = time.time()
        cache_key = f"{CacheKeys.SEARCH_RESULTS}{query}"

        if not force_update:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.info(f"Using cached search results [{query}] ({len(cached)} tweets)")
                return SearchResult(
                    query=query,
                    search_results=[FormattedTweet.from_dict(t) for t in cached],
                    from_cache=True,
                )

        limit = self._search.max_tweets_per_search
        try:
            async with self.pool.session(preferred) as handle:
                results = await self._guard.run(
                    collect_tweets(handle.session.search(query, limit), limit),
                    "search",
                    handle,
                )
                ttl = select_ttl(
                    len(results),
                    threshold=self._search.min_results_for_cache,
                    full_ttl=self._ttl.default_expire,
                    partial_ttl=self._ttl.short_expire,
                    empty_ttl=self._ttl.empty_expire,
                )
                await self._cache.set(cache_key, [t.to_dict() for t in results], ttl)
        except Exception as e:
            elapsed = (time.time() - start) * 1000
            logger.error(f"Search failed [{query}], took: {elapsed:.0f}ms, error: {e}")
            # Nothing was called without an account, and a failed write needs no second try
            if not isinstance(e, (NoAccountsAvailable, RedisError)):
                await self._cache_failed_call(cache_key)
            raise

        if results:
            logger.info(f"Search successful, found {len(results)} results")
        else:
            logger.warning(f"Search completed, but no related tweets were found [{query}]")
        elapsed = (time.time() - start) * 1000
        logger.info(f"Search complete [{query}], took: {elapsed:.0f}ms, result count: {len(results)}")
        return SearchResult(query=query, search_results=results)

    async def fetch_user_data(
        self,
        username: str,
        force_update: bool = False,
        preferred: IdentityRef | str | None = None,
        skip_tweets: bool = False,
    ) -> UserData:
        """
        Fetch a user's profile and recent tweets.

        Profile and timeline are cached separately; the pool is only touched
        when one of them is missing. A user that does not exist yields
        ``UserData(user_not_found=True)`` rather than an error.
        """
        start = time.time()
        user_key = f"{CacheKeys.USER_INFO}{username}"
        tweets_key = f"{CacheKeys.USER_TWEETS}{username}"

        user_info: UserProfile | None = None
        tweets: list[FormattedTweet] | None = None

        if not force_update:
            cached_user = await self._cache.get(user_key)
            if cached_user == NOT_FOUND_MARKER:
                logger.info(f"User {username} is cached as not found")
                return UserData(user_not_found=True)
            if cached_user:
                user_info = UserProfile.from_dict(cached_user)
            if not skip_tweets:
                cached_tweets = await self._cache.get(tweets_key)
                if cached_tweets is not None:
                    tweets = [FormattedTweet.from_dict(t) for t in cached_tweets]

        if user_info is not None and (skip_tweets or tweets is not None):
            logger.info(f"Using cached user data [{username}]")
            return UserData(user_info=user_info, tweets=None if skip_tweets else tweets)

        try:
            async with self.pool.session(preferred) as handle:
                if user_info is None:
                    try:
                        user = await self._guard.run(
                            handle.session.get_profile(username), "get profile", handle
                        )
                    except NotFound:
                        logger.warning(f"User {username} not found, skipping timeline")
                        await self._cache.set(user_key, NOT_FOUND_MARKER, self._ttl.empty_expire)
                        return UserData(user_not_found=True)
                    user_info = UserProfile.from_twscrape(user)
                    await self._cache.set(user_key, user_info.to_dict(), self._ttl.default_expire)

                if not skip_tweets and tweets is None:
                    limit = self._search.max_user_tweets
                    try:
                        tweets = await self._guard.run(
                            collect_tweets(
                                handle.session.get_timeline(username, limit, user_id=int(user_info.id)),
                                limit,
                            ),
                            "get timeline",
                            handle,
                        )
                    except Exception:
                        await self._cache_failed_call(tweets_key)
                        raise
                    ttl = select_ttl(
                        len(tweets),
                        threshold=1,
                        full_ttl=self._ttl.default_expire,
                        partial_ttl=self._ttl.default_expire,
                        empty_ttl=self._ttl.empty_expire,
                    )
                    await self._cache.set(tweets_key, [t.to_dict() for t in tweets], ttl)
        except Exception as e:
            elapsed = (time.time() - start) * 1000
            logger.error(f"User data fetch failed [{username}], took: {elapsed:.0f}ms, error: {e}")
            raise

        elapsed = (time.time() - start) * 1000
        logger.info(f"User data fetch complete [{username}], took: {elapsed:.0f}ms")
        return UserData(user_info=user_info, tweets=None if skip_tweets else tweets)

    async def fetch_single_item(
        self,
        tweet_id: str,
        preferred: IdentityRef | str | None = None,
    ) -> SingleTweetData:
        """
        Fetch one tweet and its author.

        The author profile is cached under the author's username, so every
        tweet by the same author shares one entry.
        """
        start = time.time()
        tweet_key = f"{CacheKeys.SINGLE_TWEET}{tweet_id}"

        cached_tweet = await self._cache.get(tweet_key)
        if cached_tweet == NOT_FOUND_MARKER:
            logger.info(f"Tweet {tweet_id} is cached as not found")
            return SingleTweetData(tweet_not_found=True)

        tweet = FormattedTweet.from_dict(cached_tweet) if cached_tweet else None
        author: UserProfile | None = None
        if tweet is not None:
            cached_author = await self._cache.get(author_key(tweet.username))
            if cached_author:
                author = UserProfile.from_dict(cached_author)

        if tweet is not None and author is not None:
            logger.info(f"Retrieved tweet and author [{tweet_id}] from cache")
            return SingleTweetData(user_info=author, tweets=[tweet])

        try:
            async with self.pool.session(preferred) as handle:
                if tweet is None:
                    raw = await self._guard.run(handle.session.get_item(tweet_id), "get tweet", handle)
                    if raw is None:
                        logger.warning(f"Tweet does not exist or has been deleted [{tweet_id}]")
                        await self._cache.set(tweet_key, NOT_FOUND_MARKER, self._ttl.empty_expire)
                        return SingleTweetData(tweet_not_found=True)
                    tweet = FormattedTweet.from_twscrape(raw)
                    await self._cache.set(tweet_key, tweet.to_dict(), self._ttl.single_tweet)
                    logger.info(f"Cached single tweet [{tweet_id}]")

                    cached_author = await self._cache.get(author_key(tweet.username))
                    if cached_author:
                        author = UserProfile.from_dict(cached_author)

                if author is None:
                    try:
                        user = await self._guard.run(
                            handle.session.get_profile(tweet.username), "get profile", handle
                        )
                    except NotFound:
                        logger.warning(f"Author {tweet.username} of tweet {tweet_id} not found")
                    else:
                        author = UserProfile.from_twscrape(user)
                        await self._cache.set(
                            author_key(tweet.username), author.to_dict(), self._ttl.default_expire
                        )
                        logger.info(f"Cached tweet author info [{tweet.username}]")
        except Exception as e:
            elapsed = (time.time() - start) * 1000
            logger.error(f"Single tweet retrieval failed [{tweet_id}], took: {elapsed:.0f}ms, error: {e}")
            raise

        elapsed = (time.time() - start) * 1000
        logger.info(f"Single tweet retrieval complete [{tweet_id}], took: {elapsed:.0f}ms")
        return SingleTweetData(user_info=author, tweets=[tweet])

    async def analyze(
        self,
        bundle: AnalysisInput,
        address: str | None,
        force_update: bool = False,
    ) -> dict[str, str] | str:
        """Summarize the collected data. Not pool-gated."""
        start = time.time()
        try:
            result = await self._analyzer.analyze(bundle, address, force_update)
        except Exception as e:
            elapsed = (time.time() - start) * 1000
            logger.error(f"Profile analysis failed, took: {elapsed:.0f}ms, error: {e}")
            raise
        elapsed = (time.time() - start) * 1000
        logger.info(f"Profile analysis complete, took: {elapsed:.0f}ms")
        return result

    async def close(self) -> None:
        """Clean up resources."""
        await self._cache.close()
        logger.debug("Search service resources cleaned up")
