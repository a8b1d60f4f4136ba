"""
Shared pytest fixtures for searchbot tests.

This module provides:
- An in-memory async Redis stand-in with a controllable clock
- A scripted platform behind fake sessions and a fake provisioner
- Pool, guard and search service wired against the fakes
- Mock external services (LLM providers)
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.cache import RedisCache
from src.config import CacheConfig, SearchConfig
from src.credentials import Identity
from src.errors import LoginFailed, NotFound
from src.guard import TimeoutGuard
from src.orchestrator import TwitterSearchService
from src.pool import AccountPool


# =============================================================================
# Redis
# =============================================================================


class FakeRedis:
    """
    The subset of redis.asyncio.Redis the service uses, kept in memory.

    Expiry follows `self.now`, which tests move forward with `advance()`.
    """

    def __init__(self):
        self.now = 0.0
        self.fail_reads = False
        self.fail_writes = False
        self.closed = False
        self._values: dict[str, tuple[Any, float | None]] = {}
        self.ttls: dict[str, int] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _live(self, key: str) -> Any | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.now:
            del self._values[key]
            return None
        return value

    async def get(self, key: str):
        if self.fail_reads:
            raise RedisConnectionError("connection refused")
        return self._live(key)

    async def setex(self, key: str, ttl: int, value: str):
        if self.fail_writes:
            raise RedisConnectionError("connection refused")
        self._values[key] = (value, self.now + ttl)
        self.ttls[key] = ttl
        return True

    async def exists(self, key: str) -> int:
        return 1 if self._live(key) is not None else 0

    async def delete(self, key: str) -> int:
        return 1 if self._values.pop(key, None) is not None else 0

    async def hgetall(self, key: str) -> dict:
        return dict(self._live(key) or {})

    async def hset(self, key: str, mapping: dict):
        current = dict(self._live(key) or {})
        current.update(mapping)
        self._values[key] = (current, None)
        return len(mapping)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> RedisCache:
    return RedisCache(fake_redis)


# =============================================================================
# Platform
# =============================================================================


class FakePlatform:
    """Scripted platform data shared by every fake session."""

    def __init__(self):
        self.search_results: dict[str, list] = {}
        self.users: dict[str, Any] = {}
        self.timelines: dict[str, list] = {}
        self.items: dict[str, Any] = {}
        self.delay = 0.0
        self.delays: dict[str, float] = {}
        self.error: Exception | None = None
        self.calls: list[tuple[str, str, str]] = []

    async def _enter(self, operation: str, identity: str, key: str) -> None:
        self.calls.append((operation, identity, key))
        delay = self.delays.get(operation, self.delay)
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


class FakeSession:
    """Implements the TwitterSession read operations against a FakePlatform."""

    def __init__(self, identity: Identity, platform: FakePlatform):
        self.identity = identity
        self._platform = platform

    async def search(self, query: str, limit: int):
        await self._platform._enter("search", self.identity.name, query)
        for tweet in self._platform.search_results.get(query, []):
            yield tweet

    async def get_profile(self, username: str):
        await self._platform._enter("get_profile", self.identity.name, username)
        user = self._platform.users.get(username)
        if user is None:
            raise NotFound("user", username)
        return user

    async def get_timeline(self, username: str, limit: int, user_id: int | None = None):
        await self._platform._enter("get_timeline", self.identity.name, username)
        for tweet in self._platform.timelines.get(username, []):
            yield tweet

    async def get_item(self, item_id: str):
        await self._platform._enter("get_item", self.identity.name, item_id)
        return self._platform.items.get(item_id)


class FakeProvisioner:
    """Hands out FakeSessions; names in `failing` cannot log in."""

    def __init__(self, platform: FakePlatform):
        self.platform = platform
        self.failing: set[str] = set()
        self.provisioned: list[str] = []

    async def provision(self, identity: Identity) -> FakeSession:
        self.provisioned.append(identity.name)
        if identity.name in self.failing:
            raise LoginFailed(identity.name, "bad credentials")
        return FakeSession(identity, self.platform)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def provisioner(platform) -> FakeProvisioner:
    return FakeProvisioner(platform)


@pytest.fixture
def identities() -> list[Identity]:
    return [Identity(name="a1", secret="pw1"), Identity(name="a2", secret="pw2")]


@pytest.fixture
def pool(identities, provisioner, cache) -> AccountPool:
    return AccountPool(identities, provisioner, cache, quarantine_ttl=86400)


@pytest.fixture
def guard(pool) -> TimeoutGuard:
    return TimeoutGuard(pool, timeout=0.5)


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(
        min_results_for_cache=30,
        max_tweets_per_search=50,
        max_user_tweets=20,
        sample_search_results=30,
        sample_tweets=10,
        force_update=False,
    )


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(
        default_expire=3600,
        short_expire=300,
        empty_expire=60,
        single_tweet=604800,
        user_profile=3600,
        cookies=604800,
        account_timeout=86400,
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set mock environment variables for testing."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "test-deepseek-key")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/1")
    monkeypatch.setenv("TWITTER_ACCOUNTS", "user1:pass1:u1@example.com:mailpw:MFA1,user2:pass2")


# =============================================================================
# Service
# =============================================================================


@pytest.fixture
def mock_analyzer():
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(return_value={"chinese": "分析", "english": "analysis"})
    return analyzer


@pytest.fixture
def service(pool, cache, guard, mock_analyzer, search_config, cache_config) -> TwitterSearchService:
    return TwitterSearchService(
        pool=pool,
        cache=cache,
        guard=guard,
        analyzer=mock_analyzer,
        search_config=search_config,
        cache_config=cache_config,
    )


# =============================================================================
# Mock External Services
# =============================================================================


@pytest.fixture
def mock_openai():
    """Mock AsyncOpenAI for OpenAI API tests."""
    # Patch at the module where it's imported, not where it's defined
    with patch("src.llm.openai_client.AsyncOpenAI") as mock_client_class:
        mock_client = MagicMock()

        mock_message = MagicMock()
        mock_message.content = "This is a test response from OpenAI."
        mock_message.tool_calls = None

        mock_choice = MagicMock()
        mock_choice.message = mock_message

        mock_response = MagicMock()
        mock_response.choices = [mock_choice]
        mock_response.model = "gpt-4o-mini"
        mock_response.usage = MagicMock(
            prompt_tokens=100,
            completion_tokens=50,
            total_tokens=150,
        )

        mock_client.chat.completions.create = AsyncMock(return_value=mock_response)
        mock_client_class.return_value = mock_client
        yield mock_client_class


@pytest.fixture
def mock_google_genai():
    """Mock the google.generativeai module used by the Gemini provider."""
    with patch("src.llm.google_client.genai") as mock_genai:
        mock_response = MagicMock()
        mock_response.text = "This is a test response from Gemini."
        mock_response.usage_metadata = MagicMock(
            prompt_token_count=100,
            candidates_token_count=50,
            total_token_count=150,
        )

        mock_model = MagicMock()
        mock_model.generate_content_async = AsyncMock(return_value=mock_response)
        mock_genai.GenerativeModel.return_value = mock_model
        yield mock_genai
