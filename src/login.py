"""
Session provisioning.

Turns an Identity into a ready TwitterSession. Saved cookies are tried
first; when there are none or they no longer authenticate, a fresh login
is performed and the new cookies are persisted for the next acquisition.
"""

import logging
from pathlib import Path

from twscrape import API

from .credentials import CredentialStore, Identity
from .errors import LoginFailed
from .scraper import TwitterSession

logger = logging.getLogger("searchbot.login")

# twscrape requires a password field even for cookie-only accounts
COOKIE_ONLY_PASSWORD = "cookie_based_auth"


class SessionProvisioner:
    """Creates one authenticated session per acquisition."""

    def __init__(
        self,
        credentials: CredentialStore,
        sessions_dir: str = ".sessions",
        proxy: str | None = None,
    ):
        """
        Args:
            credentials: Store holding saved cookies.
            sessions_dir: Directory for the per-identity twscrape databases.
            proxy: Optional proxy URL applied to every session.
        """
        self._credentials = credentials
        self._sessions_dir = Path(sessions_dir)
        self._sessions_dir.mkdir(parents=True, exist_ok=True)
        self._proxy = proxy

    def _db_path(self, name: str) -> str:
        return str(self._sessions_dir / f"{name}.db")

    def _create_api(self, name: str) -> API:
        # raise_when_no_account makes a locked/limited identity fail fast
        # instead of twscrape sleeping until the lock expires
        return API(self._db_path(name), proxy=self._proxy, raise_when_no_account=True)

    async def _is_logged_in(self, api: API, name: str) -> bool:
        account = await api.pool.get_account(name)
        return bool(account and account.active)

    async def _try_saved_cookies(self, api: API, identity: Identity) -> bool:
        cookies = await self._credentials.load_cookies(identity.name)
        if not cookies:
            logger.info(f"No saved cookies for {identity.name}")
            return False

        logger.info(f"Found {len(cookies)} saved cookies for {identity.name}, attempting to use them")
        await api.pool.add_account(
            username=identity.name,
            password=identity.secret or COOKIE_ONLY_PASSWORD,
            email=identity.email or f"{identity.name}@cookie.local",
            email_password=identity.email_password,
            cookies="; ".join(f"{k}={v}" for k, v in cookies.items()),
            mfa_code=identity.secondary_factor or None,
        )
        if await self._is_logged_in(api, identity.name):
            logger.info(f"Account {identity.name} logged in using saved cookies")
            return True

        logger.info(f"Cookies for {identity.name} are invalid, logging in again")
        await self._credentials.delete_cookies(identity.name)
        await api.pool.delete_accounts([identity.name])
        return False

    async def _login(self, api: API, identity: Identity) -> None:
        if not identity.secret:
            raise LoginFailed(identity.name, "no valid cookies and no password on record")

        await api.pool.add_account(
            username=identity.name,
            password=identity.secret,
            email=identity.email,
            email_password=identity.email_password,
            mfa_code=identity.secondary_factor or None,
        )
        stats = await api.pool.login_all(usernames=[identity.name])
        if not stats or not stats.get("success"):
            raise LoginFailed(identity.name, "platform rejected the login")

        account = await api.pool.get_account(identity.name)
        if account is None or not account.cookies:
            raise LoginFailed(identity.name, "login returned no session cookies")
        await self._credentials.save_cookies(identity.name, dict(account.cookies))
        logger.info(f"Account {identity.name} logged in successfully")

    async def provision(self, identity: Identity) -> TwitterSession:
        """
        Return an authenticated session for an identity.

        Raises:
            LoginFailed: If neither saved cookies nor a fresh login work.
        """
        logger.info(f"Initializing session for account {identity.name}")
        api = self._create_api(identity.name)
        try:
            # Start from a clean slate so stale locks never leak across acquisitions
            await api.pool.delete_accounts([identity.name])
            if not await self._try_saved_cookies(api, identity):
                await self._login(api, identity)
        except LoginFailed:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize account {identity.name}: {e}")
            raise LoginFailed(identity.name, str(e)) from e
        return TwitterSession(identity, api)
