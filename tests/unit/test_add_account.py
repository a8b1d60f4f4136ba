"""
Unit tests for add_account.py

Tests cookie file parsing and seeding cookies into the credential store.
"""

import json
from unittest.mock import patch

import pytest

from add_account import add_account_with_cookies, missing_required, parse_cookies_file
from src.credentials import CredentialStore


@pytest.fixture
def cookies_file(tmp_path):
    path = tmp_path / "cookies.json"
    path.write_text(
        json.dumps(
            [
                {"name": "auth_token", "value": "token", "domain": ".x.com"},
                {"name": "ct0", "value": "csrf", "domain": ".x.com"},
                {"name": "guest_id", "value": "v1%3A1", "domain": ".x.com"},
            ]
        )
    )
    return path


class TestParseCookiesFile:
    def test_browser_export(self, cookies_file):
        cookies = parse_cookies_file(str(cookies_file))

        assert cookies == {"auth_token": "token", "ct0": "csrf", "guest_id": "v1%3A1"}

    def test_missing_required(self):
        assert missing_required({"auth_token": "t", "ct0": "c"}) == []
        assert missing_required({"guest_id": "g"}) == ["auth_token", "ct0"]


class TestAddAccountWithCookies:
    @pytest.mark.asyncio
    async def test_saves_cookies(self, cookies_file, cache):
        with patch("add_account.RedisCache.from_url", return_value=cache):
            await add_account_with_cookies("alice", str(cookies_file))

        # the script closes its connection; read back through the same fake
        store = CredentialStore(cache)
        assert (await store.load_cookies("alice"))["auth_token"] == "token"

    @pytest.mark.asyncio
    async def test_rejects_incomplete_export(self, tmp_path, cache):
        path = tmp_path / "cookies.json"
        path.write_text(json.dumps({"guest_id": "g"}))

        with patch("add_account.RedisCache.from_url", return_value=cache):
            with pytest.raises(SystemExit):
                await add_account_with_cookies("alice", str(path))
