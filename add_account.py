#!/usr/bin/env python3
"""
Helper script to seed a Twitter account's session cookies into Redis.

The account pool tries saved cookies before logging in, so seeding cookies
exported from a logged-in browser avoids a password login entirely.

Usage:
    python add_account.py <username> <cookies.json>

Example:
    python add_account.py myusername cookies.json
"""

import asyncio
import json
import sys
from pathlib import Path

from src.cache import RedisCache
from src.config import config
from src.credentials import CredentialStore, parse_cookie_export

REQUIRED_COOKIES = ["auth_token", "ct0"]


def parse_cookies_file(filepath: str) -> dict[str, str]:
    """
    Parse cookies from various JSON formats and return a name -> value mapping.
    """
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)
    return parse_cookie_export(data)


def missing_required(cookies: dict[str, str]) -> list[str]:
    return [name for name in REQUIRED_COOKIES if name not in cookies]


async def add_account_with_cookies(username: str, cookies_file: str) -> None:
    """Store cookies for a Twitter account from a JSON file."""

    print(f"Reading cookies from: {cookies_file}")
    cookies = parse_cookies_file(cookies_file)
    print(f"Found {len(cookies)} cookies")

    missing = missing_required(cookies)
    if missing:
        print(f"ERROR: Missing required cookies: {missing}")
        print("Make sure you're logged into Twitter when exporting cookies.")
        sys.exit(1)

    print(f"Required cookies found: {REQUIRED_COOKIES}")

    cache = RedisCache.from_url(config.redis.url)
    store = CredentialStore(cache, cookie_ttl=config.cache.cookies)
    try:
        await store.save_cookies(username, cookies)
    finally:
        await cache.close()

    print(f"\nCookies saved for '{username}' (valid for {config.cache.cookies // 3600}h).")
    if username not in {a.username for a in config.twitter.accounts}:
        print("Note: this account is not in the pool; it will only be used as a preferred identity.")


async def main():
    if len(sys.argv) < 3:
        print("Usage: python add_account.py <twitter_username> <cookies.json>")
        print("\nExample:")
        print("  python add_account.py myusername cookies.json")
        sys.exit(1)

    username = sys.argv[1]
    cookies_file = sys.argv[2]

    if not Path(cookies_file).exists():
        print(f"Error: File not found: {cookies_file}")
        sys.exit(1)

    await add_account_with_cookies(username, cookies_file)


if __name__ == "__main__":
    asyncio.run(main())
