"""
Test fixtures and sample data for searchbot tests.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

from src.scraper import FormattedTweet, UserProfile


def make_twscrape_user(
    id: int = 1001,
    username: str = "alice",
    displayname: str = "Alice",
    description: str = "Building on-chain things",
    followers: int = 1200,
) -> SimpleNamespace:
    """Create an object shaped like twscrape.models.User."""
    return SimpleNamespace(
        id=id,
        username=username,
        displayname=displayname,
        rawDescription=description,
        followersCount=followers,
        friendsCount=300,
        statusesCount=4500,
        favouritesCount=800,
        profileImageUrl="https://pbs.twimg.com/profile_images/1/avatar.jpg",
        profileBannerUrl=None,
        location="Internet",
        url="https://example.com",
        created=datetime(2020, 1, 1, tzinfo=timezone.utc),
        verified=False,
        blue=True,
        pinnedIds=[42],
    )


def make_twscrape_tweet(
    id: int = 1234567890,
    text: str = "gm, the token launches today",
    username: str = "alice",
    displayname: str = "Alice",
    likes: int = 100,
    quoted: SimpleNamespace | None = None,
) -> SimpleNamespace:
    """Create an object shaped like twscrape.models.Tweet."""
    return SimpleNamespace(
        id=id,
        rawContent=text,
        user=SimpleNamespace(username=username, displayname=displayname),
        likeCount=likes,
        retweetCount=likes // 2,
        replyCount=likes // 10,
        viewCount=likes * 10,
        date=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        quotedTweet=quoted,
    )


def make_twscrape_tweets(count: int = 10, username: str = "user") -> list[SimpleNamespace]:
    """Create a list of raw tweets from different authors."""
    return [
        make_twscrape_tweet(
            id=1234567890 + i,
            text=f"Sample tweet #{i} about the contract",
            username=f"{username}{i}",
            displayname=f"User {i}",
            likes=10 * (i + 1),
        )
        for i in range(count)
    ]


def make_formatted_tweet(
    id: str = "1234567890",
    text: str = "gm, the token launches today",
    username: str = "alice",
    likes: int = 100,
) -> FormattedTweet:
    """Create a sample FormattedTweet."""
    return FormattedTweet(
        id=id,
        text=text,
        name=username.capitalize(),
        username=username,
        likes=likes,
        retweets=likes // 2,
        replies=likes // 10,
        views=likes * 10,
        time_parsed="2024-05-01T12:00:00+00:00",
    )


def make_formatted_tweets(count: int = 10) -> list[FormattedTweet]:
    return [
        make_formatted_tweet(id=str(1234567890 + i), text=f"Sample tweet #{i}", username=f"user{i}")
        for i in range(count)
    ]


def make_profile(username: str = "alice", id: str = "1001") -> UserProfile:
    """Create a sample UserProfile."""
    return UserProfile(
        id=id,
        username=username,
        name=username.capitalize(),
        biography="Building on-chain things",
        followers_count=1200,
    )
