"""
Twitter Session Module using twscrape.

Wraps a single authenticated twscrape API (one identity, one accounts
database) behind the read operations the fetch service needs, and
normalizes twscrape's Tweet and User models into small JSON-friendly
records for caching.
"""

import contextlib
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator

from twscrape import API
from twscrape.accounts_pool import NoAccountError
from twscrape.models import Tweet, User

from .credentials import Identity
from .errors import AccessDenied, NotFound, SearchBotError, UpstreamError

logger = logging.getLogger("searchbot.scraper")

ACCESS_DENIED_MARKER = "denied by access control"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class QuotedStatus:
    """The quoted tweet, one level deep."""
    text: str
    username: str


@dataclass
class FormattedTweet:
    """Normalized tweet data structure."""
    id: str
    text: str
    name: str
    username: str
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    views: int | None = None
    time_parsed: str | None = None
    is_quoted: bool = False
    quoted_status: QuotedStatus | None = None

    @classmethod
    def from_twscrape(cls, tweet: Tweet) -> "FormattedTweet":
        """Create FormattedTweet from twscrape Tweet object."""
        quoted = None
        if tweet.quotedTweet is not None:
            quoted_user = tweet.quotedTweet.user
            quoted = QuotedStatus(
                text=tweet.quotedTweet.rawContent or "",
                username=quoted_user.username if quoted_user else "unknown",
            )

        return cls(
            id=str(tweet.id),
            text=tweet.rawContent or "",
            name=tweet.user.displayname if tweet.user else "Unknown",
            username=tweet.user.username if tweet.user else "unknown",
            likes=tweet.likeCount or 0,
            retweets=tweet.retweetCount or 0,
            replies=tweet.replyCount or 0,
            views=tweet.viewCount,
            time_parsed=_iso(tweet.date),
            is_quoted=quoted is not None,
            quoted_status=quoted,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FormattedTweet":
        quoted = data.get("quoted_status")
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            name=data.get("name", ""),
            username=data.get("username", ""),
            likes=data.get("likes", 0),
            retweets=data.get("retweets", 0),
            replies=data.get("replies", 0),
            views=data.get("views"),
            time_parsed=data.get("time_parsed"),
            is_quoted=data.get("is_quoted", False),
            quoted_status=QuotedStatus(**quoted) if quoted else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class UserProfile:
    """Normalized profile data structure."""
    id: str
    username: str
    name: str
    biography: str = ""
    followers_count: int = 0
    following_count: int = 0
    tweets_count: int = 0
    likes_count: int = 0
    avatar: str | None = None
    banner: str | None = None
    location: str = ""
    website: str | None = None
    joined: str | None = None
    is_verified: bool = False
    is_blue_verified: bool = False
    pinned_tweet_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_twscrape(cls, user: User) -> "UserProfile":
        """Create UserProfile from twscrape User object."""
        return cls(
            id=str(user.id),
            username=user.username,
            name=user.displayname,
            biography=user.rawDescription or "",
            followers_count=user.followersCount or 0,
            following_count=user.friendsCount or 0,
            tweets_count=user.statusesCount or 0,
            likes_count=user.favouritesCount or 0,
            avatar=user.profileImageUrl,
            banner=user.profileBannerUrl,
            location=user.location or "",
            website=user.url,
            joined=_iso(user.created),
            is_verified=bool(user.verified),
            is_blue_verified=bool(user.blue),
            pinned_tweet_ids=[str(i) for i in (user.pinnedIds or [])],
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_access_denied(error: BaseException) -> bool:
    """Whether a client failure means the platform refused this identity."""
    if isinstance(error, (AccessDenied, NoAccountError)):
        return True
    return ACCESS_DENIED_MARKER in str(error).lower()


@contextlib.contextmanager
def translate_errors(operation: str):
    """Map twscrape failures onto the service's error taxonomy."""
    try:
        yield
    except SearchBotError:
        raise
    except Exception as e:
        if is_access_denied(e):
            raise AccessDenied(operation, str(e)) from e
        raise UpstreamError(operation, e) from e


class TwitterSession:
    """
    One authenticated platform session.

    Owned by exactly one caller for the duration of one logical operation;
    never shared between concurrent operations.
    """

    def __init__(self, identity: Identity, api: API):
        self.identity = identity
        self._api = api
        self._user_ids: dict[str, int] = {}

    @property
    def api(self) -> API:
        return self._api

    async def search(self, query: str, limit: int) -> AsyncIterator[Tweet]:
        """
        Yield tweets matching a query, newest first.

        The producer pages lazily; callers may stop iterating at any point.
        """
        with translate_errors("search"):
            async for tweet in self._api.search(query, limit=limit, kv={"product": "Latest"}):
                yield tweet

    async def get_profile(self, username: str) -> User:
        """Return the user for a handle. Raises NotFound if there is none."""
        with translate_errors("get profile"):
            user = await self._api.user_by_login(username)
        if user is None:
            raise NotFound("user", username)
        self._user_ids[username.lower()] = user.id
        return user

    async def get_timeline(
        self,
        username: str,
        limit: int,
        user_id: int | None = None,
    ) -> AsyncIterator[Tweet]:
        """Yield the user's recent tweets."""
        if user_id is None:
            user_id = self._user_ids.get(username.lower())
        if user_id is None:
            user_id = (await self.get_profile(username)).id
        with translate_errors("get timeline"):
            async for tweet in self._api.user_tweets(user_id, limit=limit):
                yield tweet

    async def get_item(self, item_id: str) -> Tweet | None:
        """Return a single tweet, or None if it does not exist."""
        with translate_errors("get tweet"):
            return await self._api.tweet_details(int(item_id))
