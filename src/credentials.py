"""
Identities and the credential store.

Pool identities are defined by configuration at startup. Identities of
site users who logged in with their own Twitter account are kept in Redis
alongside every identity's saved session cookies.
"""

import json
import logging
from dataclasses import dataclass

from .cache import CacheKeys, RedisCache
from .config import AccountConfig

logger = logging.getLogger("searchbot.credentials")


@dataclass(frozen=True)
class Identity:
    """A credential set for one platform account, unique by name."""
    name: str
    secret: str = ""
    secondary_factor: str = ""
    email: str = ""
    email_password: str = ""

    @classmethod
    def from_config(cls, account: AccountConfig) -> "Identity":
        return cls(
            name=account.username,
            secret=account.password,
            secondary_factor=account.two_factor_secret,
            email=account.email,
            email_password=account.email_password,
        )

    def __repr__(self) -> str:
        # Never leak secrets into logs
        return f"Identity(name={self.name!r})"


@dataclass(frozen=True)
class IdentityRef:
    """
    A preferred identity as supplied by a caller: either just a name or
    a full credential record. Use the constructors, not the fields.
    """
    name: str
    identity: Identity | None = None

    @classmethod
    def by_name(cls, name: str) -> "IdentityRef":
        return cls(name=name)

    @classmethod
    def full(cls, identity: Identity) -> "IdentityRef":
        return cls(name=identity.name, identity=identity)

    @property
    def is_full(self) -> bool:
        return self.identity is not None


class CredentialStore:
    """Saved session cookies and site-user credentials in Redis."""

    def __init__(self, cache: RedisCache, cookie_ttl: int = 7 * 24 * 60 * 60):
        self._cache = cache
        self._cookie_ttl = cookie_ttl

    async def load_cookies(self, name: str) -> dict[str, str] | None:
        """Return saved cookies for an identity, or None if there are none."""
        cookies = await self._cache.get(f"{CacheKeys.TWITTER_COOKIES}{name}")
        if not cookies:
            logger.debug(f"No cookies found for {name}")
            return None
        logger.debug(f"Read {len(cookies)} cookies for {name}")
        return cookies

    async def save_cookies(self, name: str, cookies: dict[str, str]) -> None:
        await self._cache.set(f"{CacheKeys.TWITTER_COOKIES}{name}", cookies, self._cookie_ttl)
        logger.info(f"Saved cookies for {name} (valid for {self._cookie_ttl}s)")

    async def delete_cookies(self, name: str) -> bool:
        return await self._cache.delete(f"{CacheKeys.TWITTER_COOKIES}{name}")

    async def get_identity(self, name: str) -> Identity | None:
        """Look up the stored credential record for a site user."""
        key = f"{CacheKeys.TWITTER_ACCOUNT}{name}"
        data = await self._cache.client.hgetall(key)
        if not data:
            return None
        return Identity(
            name=data.get("username", name),
            secret=data.get("password", ""),
            secondary_factor=data.get("two_factor_secret", ""),
            email=data.get("email", ""),
            email_password=data.get("email_password", ""),
        )

    async def put_identity(self, identity: Identity) -> None:
        key = f"{CacheKeys.TWITTER_ACCOUNT}{identity.name}"
        await self._cache.client.hset(
            key,
            mapping={
                "username": identity.name,
                "password": identity.secret,
                "two_factor_secret": identity.secondary_factor,
                "email": identity.email,
                "email_password": identity.email_password,
            },
        )


def parse_cookie_export(data) -> dict[str, str]:
    """
    Normalize exported cookies into a name -> value mapping.

    Accepts a list of {"name", "value"} objects (browser extensions),
    {"cookies": [...]} wrappers, or a plain mapping.
    """
    cookies: dict[str, str] = {}
    if isinstance(data, str):
        data = json.loads(data)

    entries = None
    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict) and "cookies" in data:
        entries = data["cookies"]
    elif isinstance(data, dict):
        return {str(k): str(v) for k, v in data.items()}

    for cookie in entries or []:
        name = cookie.get("name") or cookie.get("Name") or cookie.get("key")
        value = cookie.get("value") or cookie.get("Value")
        if name and value:
            cookies[name] = value
    return cookies
