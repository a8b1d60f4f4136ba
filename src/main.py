"""
Main Orchestration Script for the Twitter search service.

This script coordinates one full search:
1. Contract search: tweets mentioning the contract address (or keyword)
2. User data: the project's official account, or a single tweet when the
   project links to a status instead of a profile
3. Analysis (LLM): a short bilingual summary of the narrative

Each stage is reported as an (event, payload) pair as soon as it finishes.

SETUP REQUIRED:
1. Copy .env.example to .env and fill in credentials
2. Copy config.yaml.example to config.yaml and list the pool accounts
3. Optionally seed cookies for an account:
   python add_account.py <username> cookies.json
4. Install dependencies:
   pip install -e ".[test]"
"""

import asyncio
import json
import logging
import re
import sys
import uuid
from typing import Any, AsyncIterator

from .analyzer import AnalysisInput, ProfileAnalyzer
from .cache import RedisCache
from .config import Config, config, request_context
from .credentials import CredentialStore, Identity
from .guard import TimeoutGuard
from .llm import create_llm_provider
from .login import SessionProvisioner
from .orchestrator import SingleTweetData, TwitterSearchService, UserData
from .pool import AccountPool

logger = logging.getLogger("searchbot.main")

STATUS_URL = re.compile(r"(?:x|twitter)\.com/([^/]+)/status/(\d+)")
HANDLE = re.compile(r"^[A-Za-z0-9_]{1,15}$")


def extract_twitter_username(twitter_link: str | None) -> str | None:
    """
    Get the account handle from a project's Twitter link.

    Status links are returned unchanged so the caller can fetch the single
    tweet; search and broadcast links give None.
    """
    if not twitter_link or twitter_link == "Twitter link not found":
        return None
    if "/search?" in twitter_link or "/broadcasts/" in twitter_link:
        return None
    if STATUS_URL.search(twitter_link):
        return twitter_link

    clean_url = twitter_link.split("?")[0].rstrip("/")
    candidate = clean_url.split("/")[-1]
    if candidate and "http" not in candidate and HANDLE.match(candidate):
        return candidate
    return None


def build_service(cfg: Config) -> TwitterSearchService:
    """Wire the pool, guard, cache and analyzer from configuration."""
    cache = RedisCache.from_url(cfg.redis.url)
    credentials = CredentialStore(cache, cookie_ttl=cfg.cache.cookies)
    provisioner = SessionProvisioner(
        credentials,
        sessions_dir=cfg.twitter.sessions_dir,
        proxy=cfg.twitter.proxy,
    )
    pool = AccountPool(
        identities=[Identity.from_config(a) for a in cfg.twitter.accounts],
        provisioner=provisioner,
        cache=cache,
        credentials=credentials,
        quarantine_ttl=cfg.cache.account_timeout,
    )

    primary = create_llm_provider(
        cfg.analysis.primary.provider,
        api_key=cfg.analysis.primary.api_key,
        model=cfg.analysis.primary.model,
        base_url=cfg.analysis.primary.base_url,
        timeout=cfg.analysis.request_timeout,
    )
    secondary = None
    if cfg.analysis.secondary.api_key:
        secondary = create_llm_provider(
            cfg.analysis.secondary.provider,
            api_key=cfg.analysis.secondary.api_key,
            model=cfg.analysis.secondary.model,
            base_url=cfg.analysis.secondary.base_url,
            timeout=cfg.analysis.request_timeout,
        )
    else:
        logger.warning("No fallback analysis endpoint configured")

    analyzer = ProfileAnalyzer(
        primary=primary,
        secondary=secondary,
        cache=cache,
        search_config=cfg.search,
        cache_config=cfg.cache,
        temperature=cfg.analysis.temperature,
        max_tokens=cfg.analysis.max_tokens,
    )
    return TwitterSearchService(
        pool=pool,
        cache=cache,
        guard=TimeoutGuard(pool, timeout=cfg.twitter.request_timeout),
        analyzer=analyzer,
        search_config=cfg.search,
        cache_config=cfg.cache,
    )


async def run_search_stream(
    service: TwitterSearchService,
    address: str,
    twitter_link: str | None = None,
    logged_in_username: str | None = None,
    token_description: str | None = None,
    force_update: bool = False,
) -> AsyncIterator[tuple[str, dict[str, Any]]]:
    """
    Run the three search stages, yielding each result as it completes.

    Events: contractDataComplete, userDataComplete, analysisComplete and
    error. A failed contract search ends the stream; later failures are
    reported and the stream continues with empty data.
    """
    try:
        contract_data = await service.search_by_query(address, force_update, logged_in_username)
    except Exception as e:
        logger.error(f"First step search failed: {e}")
        yield "error", {"error": str(e)}
        return
    yield "contractDataComplete", contract_data.to_dict()

    user_data: UserData | SingleTweetData
    search_username = extract_twitter_username(twitter_link)
    try:
        status = STATUS_URL.search(search_username) if search_username else None
        if status:
            user_data = await service.fetch_single_item(status.group(2), logged_in_username)
        elif search_username:
            user_data = await service.fetch_user_data(search_username, force_update, logged_in_username)
        else:
            user_data = UserData()
    except Exception as e:
        logger.error(f"User data search failed: {e}")
        yield "error", {"error": f"User data search failed: {e}"}
        user_data = UserData()
    yield "userDataComplete", user_data.to_dict()

    logger.info(
        f"Preparing to analyze data: user info={user_data.user_info is not None}, "
        f"tweets={len(user_data.tweets or [])}, "
        f"search results={len(contract_data.search_results)}"
    )
    bundle = AnalysisInput(
        user_info=user_data.user_info,
        tweets=user_data.tweets,
        search_results=contract_data.search_results,
        token_description=token_description,
    )
    try:
        analysis = await service.analyze(bundle, address, force_update)
    except Exception as e:
        logger.error(f"User profile analysis failed: {e}")
        yield "error", {"error": f"User profile analysis failed: {e}"}
        yield "analysisComplete", {"userProfile": None}
        return
    yield "analysisComplete", {"userProfile": analysis}


async def run_search(address: str, twitter_link: str | None = None) -> bool:
    """
    Run one search from the command line and print each event as JSON.

    Returns:
        True if the stream completed without error events.
    """
    logger = config.setup_logging()
    request_context.set(uuid.uuid4().hex[:8])

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return False

    service = build_service(config)
    ok = True
    try:
        async for event, payload in run_search_stream(
            service,
            address,
            twitter_link=twitter_link,
            force_update=config.search.force_update,
        ):
            ok = ok and event != "error"
            print(json.dumps({"event": event, "data": payload}, ensure_ascii=False, default=str))
    finally:
        logger.info(f"Account pool stats: {service.pool.stats()}")
        await service.close()
    return ok


def main():
    """Entry point for the application."""
    if len(sys.argv) < 2:
        print("Usage: python -m src.main <contract_address_or_query> [twitter_link]")
        sys.exit(1)

    address = sys.argv[1]
    twitter_link = sys.argv[2] if len(sys.argv) > 2 else None

    try:
        success = asyncio.run(run_search(address, twitter_link))
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
