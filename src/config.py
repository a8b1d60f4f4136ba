"""
Configuration module for the Twitter search service.

Loads application settings from config.yaml and secrets from environment variables.
"""

import logging
import os
import contextvars
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Context variable for request ID logging
request_context = contextvars.ContextVar("request_id", default=None)


class RequestLogFilter(logging.Filter):
    """Filter to inject the request ID into log records."""
    def filter(self, record):
        request_id = request_context.get()
        if request_id is not None:
            record.request_info = f" [Request {request_id}]"
        else:
            record.request_info = ""
        return True


# Default config file path
CONFIG_FILE = Path(__file__).parent.parent / "config.yaml"


def _load_yaml_config() -> dict:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            return yaml.safe_load(f) or {}
    return {}


# Load YAML config once at module import
_yaml_config = _load_yaml_config()


def _get_yaml(section: str, key: str, default=None):
    """Get a value from the YAML config."""
    return _yaml_config.get(section, {}).get(key, default)


def _get_yaml_section(section: str, default=None):
    """Get an entire section from the YAML config."""
    return _yaml_config.get(section, default or {})


@dataclass
class AccountConfig:
    """A single pool account as written in config.yaml or TWITTER_ACCOUNTS."""
    username: str
    password: str = ""
    email: str = ""
    email_password: str = ""
    two_factor_secret: str = ""


def parse_account_line(line: str) -> AccountConfig | None:
    """
    Parse one account in twscrape's accounts.txt order.

    Format: username:password:email:email_password:mfa_secret
    (trailing fields are optional).
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    parts = line.split(":")
    parts += [""] * (5 - len(parts))
    username, password, email, email_password, mfa = parts[:5]
    if not username:
        return None
    return AccountConfig(
        username=username,
        password=password,
        email=email,
        email_password=email_password,
        two_factor_secret=mfa,
    )


def _get_accounts() -> list[AccountConfig]:
    """Get pool accounts from .env (TWITTER_ACCOUNTS) or fall back to YAML."""
    env_accounts = os.getenv("TWITTER_ACCOUNTS", "")
    if env_accounts:
        lines = env_accounts.replace(",", "\n").splitlines()
        return [acc for acc in (parse_account_line(l) for l in lines) if acc]

    accounts = []
    for entry in _get_yaml("twitter", "accounts", []) or []:
        if not isinstance(entry, dict) or not entry.get("username"):
            continue
        accounts.append(
            AccountConfig(
                username=entry["username"],
                password=entry.get("password", ""),
                email=entry.get("email", ""),
                email_password=entry.get("email_password", ""),
                two_factor_secret=entry.get("two_factor_secret", ""),
            )
        )
    return accounts


@dataclass
class RedisConfig:
    """Redis connection used for cache entries, quarantine flags and cookies."""
    # Secret from .env (may contain a password)
    url: str = field(default_factory=lambda: os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0"))


@dataclass
class TwitterConfig:
    """Twitter/X account pool settings."""
    accounts: list[AccountConfig] = field(default_factory=lambda: _get_accounts())
    # One twscrape accounts database per identity lives here
    sessions_dir: str = field(
        default_factory=lambda: _get_yaml("twitter", "sessions_dir", ".sessions")
    )
    # Hard deadline for a single platform call (seconds)
    request_timeout: float = field(
        default_factory=lambda: _get_yaml("twitter", "request_timeout", 12.0)
    )
    proxy: str | None = field(
        default_factory=lambda: os.getenv("TWITTER_PROXY") or _get_yaml("twitter", "proxy", None)
    )


@dataclass
class SearchConfig:
    """Search limits and result-quality thresholds."""
    min_results_for_cache: int = field(
        default_factory=lambda: _get_yaml("search", "min_results_for_cache", 30)
    )
    max_tweets_per_search: int = field(
        default_factory=lambda: _get_yaml("search", "max_tweets_per_search", 30)
    )
    max_user_tweets: int = field(
        default_factory=lambda: _get_yaml("search", "max_user_tweets", 20)
    )
    sample_search_results: int = field(
        default_factory=lambda: _get_yaml("search", "sample_search_results", 30)
    )
    sample_tweets: int = field(
        default_factory=lambda: _get_yaml("search", "sample_tweets", 10)
    )
    force_update: bool = field(
        default_factory=lambda: _get_yaml("search", "force_update", False)
    )


@dataclass
class CacheConfig:
    """Cache expiration times in seconds."""
    default_expire: int = field(default_factory=lambda: _get_yaml("cache", "default_expire", 3600))
    short_expire: int = field(default_factory=lambda: _get_yaml("cache", "short_expire", 300))
    # Confirmed-empty results are kept briefly to damp retry storms
    empty_expire: int = field(default_factory=lambda: _get_yaml("cache", "empty_expire", 60))
    single_tweet: int = field(default_factory=lambda: _get_yaml("cache", "single_tweet", 7 * 24 * 60 * 60))
    user_profile: int = field(default_factory=lambda: _get_yaml("cache", "user_profile", 60 * 60))
    cookies: int = field(default_factory=lambda: _get_yaml("cache", "cookies", 7 * 24 * 60 * 60))
    account_timeout: int = field(default_factory=lambda: _get_yaml("cache", "account_timeout", 24 * 60 * 60))


@dataclass
class LLMEndpointConfig:
    """One analysis endpoint (provider + model + credentials)."""
    provider: Literal["openai", "google"] = "openai"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    # OpenAI-compatible endpoints only
    base_url: str | None = None


def _get_endpoint(key: str, defaults: dict) -> LLMEndpointConfig:
    section = _get_yaml_section("analysis").get(key, {}) or {}
    api_key_env = section.get("api_key_env", defaults["api_key_env"])
    return LLMEndpointConfig(
        provider=section.get("provider", defaults["provider"]),
        model=section.get("model", defaults["model"]),
        api_key=os.getenv(api_key_env, ""),
        base_url=section.get("base_url", defaults.get("base_url")),
    )


@dataclass
class AnalysisConfig:
    """Project analysis settings: a primary endpoint and one fallback."""
    primary: LLMEndpointConfig = field(
        default_factory=lambda: _get_endpoint(
            "primary",
            {"provider": "openai", "model": "gpt-4o-mini", "api_key_env": "OPENAI_API_KEY"},
        )
    )
    secondary: LLMEndpointConfig = field(
        default_factory=lambda: _get_endpoint(
            "secondary",
            {
                "provider": "openai",
                "model": "deepseek-chat",
                "api_key_env": "DEEPSEEK_API_KEY",
                "base_url": "https://api.deepseek.com/v1",
            },
        )
    )
    # Per-request timeout for the analysis endpoints (seconds)
    request_timeout: float = field(default_factory=lambda: _get_yaml("analysis", "request_timeout", 20.0))
    temperature: float = field(default_factory=lambda: _get_yaml("analysis", "temperature", 0.7))
    max_tokens: int = field(default_factory=lambda: _get_yaml("analysis", "max_tokens", 1000))


@dataclass
class AppConfig:
    """Application settings from YAML."""
    # Logging
    log_level: str = field(
        default_factory=lambda: _get_yaml("logging", "level", "INFO")
    )


@dataclass
class Config:
    """Main configuration container."""
    redis: RedisConfig = field(default_factory=RedisConfig)
    twitter: TwitterConfig = field(default_factory=TwitterConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    app: AppConfig = field(default_factory=AppConfig)

    def setup_logging(self) -> logging.Logger:
        """Configure and return the application logger."""
        # Reset existing handlers to ensure clean configuration
        root = logging.getLogger()
        if root.handlers:
            for handler in root.handlers:
                root.removeHandler(handler)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s%(request_info)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Add filter to the handler created by basicConfig
        for handler in logging.getLogger().handlers:
            handler.addFilter(RequestLogFilter())

        return logging.getLogger("searchbot")

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of missing/invalid settings.

        Returns:
            List of validation error messages, empty if all valid.
        """
        errors = []

        if not self.twitter.accounts:
            errors.append(
                "No pool accounts configured (set twitter.accounts in config.yaml or TWITTER_ACCOUNTS)"
            )

        if not self.analysis.primary.api_key:
            errors.append(f"API key is required for the primary {self.analysis.primary.provider} analysis endpoint")

        if self.twitter.request_timeout <= 0:
            errors.append("twitter.request_timeout must be positive")

        return errors


# Global configuration instance
config = Config()
