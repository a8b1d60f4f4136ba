"""
Account pool.

Owns the configured identities, partitioned into *available* and *busy*.
Quarantine is a separate time-boxed flag in Redis; a flagged identity found
while selecting is dropped from this process's view for the rest of the run.

All membership transitions happen under one asyncio lock, so a concurrent
acquisition can never observe an identity in both sets or in neither.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator

from .cache import CacheKeys, RedisCache
from .credentials import CredentialStore, Identity, IdentityRef
from .errors import LoginFailed, NoAccountsAvailable
from .login import SessionProvisioner
from .scraper import TwitterSession

logger = logging.getLogger("searchbot.pool")

DEFAULT_QUARANTINE_TTL = 24 * 60 * 60


@dataclass
class SessionHandle:
    """An identity bound to a live session for one logical operation."""
    identity: Identity
    session: TwitterSession
    preferred: bool = False


class AccountPool:
    """Hands out sessions, demotes failing identities and accepts returns."""

    def __init__(
        self,
        identities: list[Identity],
        provisioner: SessionProvisioner,
        cache: RedisCache,
        credentials: CredentialStore | None = None,
        quarantine_ttl: int = DEFAULT_QUARANTINE_TTL,
    ):
        self._identities: dict[str, Identity] = {i.name: i for i in identities}
        # dicts keep insertion order, which makes selection reproducible
        self._available: dict[str, None] = dict.fromkeys(self._identities)
        self._busy: set[str] = set()
        self._removed: set[str] = set()
        self._provisioner = provisioner
        self._cache = cache
        self._credentials = credentials
        self._quarantine_ttl = quarantine_ttl
        self._lock = asyncio.Lock()
        logger.info(f"Account pool initialized with {len(self._identities)} accounts")

    @property
    def available(self) -> frozenset[str]:
        return frozenset(self._available)

    @property
    def busy(self) -> frozenset[str]:
        return frozenset(self._busy)

    def stats(self) -> dict[str, int]:
        """Get statistics about the account pool."""
        return {
            "total": len(self._identities),
            "available": len(self._available),
            "busy": len(self._busy),
            "quarantined": len(self._removed),
        }

    def _quarantine_key(self, name: str) -> str:
        return f"{CacheKeys.ACCOUNT_TIMEOUT}{name}"

    async def is_quarantined(self, name: str) -> bool:
        return await self._cache.has_flag(self._quarantine_key(name))

    async def _resolve(self, ref: IdentityRef) -> Identity | None:
        if ref.is_full:
            return ref.identity
        if ref.name in self._identities:
            return self._identities[ref.name]
        if self._credentials is not None:
            stored = await self._credentials.get_identity(ref.name)
            if stored is not None:
                return stored
        # Cookies alone may still authenticate a name-only identity
        return Identity(name=ref.name)

    async def _acquire_preferred(self, ref: IdentityRef) -> SessionHandle | None:
        identity = await self._resolve(ref)
        try:
            session = await self._provisioner.provision(identity)
        except LoginFailed as e:
            logger.warning(f"Session for logged-in user {ref.name} is unavailable: {e}")
            return None
        logger.info(f"Created a new session for logged-in user {ref.name}")
        return SessionHandle(identity=identity, session=session, preferred=True)

    async def acquire(self, preferred: IdentityRef | str | None = None) -> SessionHandle:
        """
        Get a session, preferring the caller's own identity when given.

        A preferred identity is provisioned directly, outside the pool sets;
        if that fails the pool is used instead and the preferred identity is
        left untouched.

        Raises:
            NoAccountsAvailable: If every pool identity is busy, quarantined
                or failed to log in.
        """
        if isinstance(preferred, str):
            preferred = IdentityRef.by_name(preferred)
        if preferred is not None:
            handle = await self._acquire_preferred(preferred)
            if handle is not None:
                return handle
            logger.warning(f"Falling back to the account pool for {preferred.name}")

        async with self._lock:
            candidates = list(self._available)

        # Each candidate is tried at most once, so the loop always terminates
        for name in candidates:
            if name not in self._available:
                continue  # taken by a concurrent acquisition

            if await self.is_quarantined(name):
                async with self._lock:
                    self._available.pop(name, None)
                    self._removed.add(name)
                logger.warning(f"Account {name} is quarantined, removing it from the pool")
                continue

            async with self._lock:
                if name not in self._available:
                    continue
                del self._available[name]
                self._busy.add(name)

            identity = self._identities[name]
            try:
                session = await self._provisioner.provision(identity)
            except LoginFailed as e:
                logger.error(f"Failed to initialize account {name}: {e}")
                await self.quarantine_and_demote(identity)
                continue
            except BaseException:
                # No handle was handed out, so nothing else will release it
                async with self._lock:
                    self._busy.discard(name)
                    self._available[name] = None
                raise

            logger.debug(f"Acquired account {name}")
            return SessionHandle(identity=identity, session=session)

        logger.warning("No fallback accounts are available")
        raise NoAccountsAvailable()

    async def release(self, handle: SessionHandle) -> None:
        """Return a handle's identity to the pool. Releasing twice is a no-op."""
        if handle.preferred:
            # Preferred sessions were never taken from the pool sets
            return
        name = handle.identity.name
        async with self._lock:
            if name in self._busy:
                self._busy.discard(name)
                self._available[name] = None
                logger.debug(f"Released account {name}")

    async def quarantine_and_demote(self, identity: Identity) -> None:
        """Take an identity out of service and flag it for the quarantine period."""
        name = identity.name
        async with self._lock:
            self._busy.discard(name)
            if name in self._identities:
                self._available.pop(name, None)
                self._removed.add(name)
        await self._cache.set_flag(self._quarantine_key(name), self._quarantine_ttl)
        logger.warning(f"Account {name} has been marked as timed out for {self._quarantine_ttl}s")

    @contextlib.asynccontextmanager
    async def session(self, preferred: IdentityRef | str | None = None) -> AsyncIterator[SessionHandle]:
        """Acquire a handle and release it when the block exits, however it exits."""
        handle = await self.acquire(preferred)
        try:
            yield handle
        finally:
            await self.release(handle)
