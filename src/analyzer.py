"""
Project Analysis Module.

Summarizes what Twitter says about a project (search results for its
contract address, its official account and recent tweets) into a short
bilingual narrative using an LLM, with one fallback endpoint.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .cache import CacheKeys, RedisCache, select_ttl
from .config import CacheConfig, SearchConfig
from .errors import AnalysisFailed
from .llm import LLMProvider
from .scraper import FormattedTweet, UserProfile

logger = logging.getLogger("searchbot.analyzer")

INSUFFICIENT_DATA = (
    "Insufficient data for analysis. Please try again later or provide more relevant information."
)

ANALYSIS_FUNCTION = "setAnalysisResult"

ANALYST_SYSTEM_PROMPT = (
    "You are a professional crypto project analyst. Please analyze the project's main narrative "
    "and key people's background in concise language (try not to exceed 100 words), generating "
    "both Chinese and English versions. Output the analysis results through function call "
    f"'{ANALYSIS_FUNCTION}' with parameters 'chinese' (Chinese version) and 'english' "
    "(English version). Avoid discussing volatile information like prices, market cap, and holders."
)

ANALYSIS_TOOLS = [
    {
        "name": ANALYSIS_FUNCTION,
        "description": "Output analysis results in Chinese and English versions",
        "parameters": {
            "type": "object",
            "properties": {
                "chinese": {
                    "type": "string",
                    "description": "Chinese version of the analysis result",
                },
                "english": {
                    "type": "string",
                    "description": "English version of the analysis result",
                },
            },
            "required": ["chinese", "english"],
        },
    }
]


@dataclass
class AnalysisInput:
    """Everything the earlier stages collected about one project."""
    user_info: UserProfile | None = None
    tweets: list[FormattedTweet] | None = None
    search_results: list[FormattedTweet] = field(default_factory=list)
    token_description: str | None = None


def clean_data(data: Any) -> str:
    """Flatten data to plain text: unescape, turn <br> into newlines, drop HTML tags."""
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False, default=str)
    data = data.replace("\\n", "\n").replace('\\"', '"')
    data = re.sub(r"<br\s*/?>", "\n", data)
    data = re.sub(r"<[^>]*>", "", data)
    return data.replace("\\\\", "\\")


def _sample(tweets: list[FormattedTweet], count: int) -> list[dict[str, Any]]:
    return [
        {
            "text": t.text,
            "username": t.username,
            "timeParsed": t.time_parsed,
            "likes": t.likes,
            "retweets": t.retweets,
            "quotedText": t.quoted_status.text if t.quoted_status else None,
        }
        for t in tweets[:count]
    ]


def build_user_prompt(bundle: AnalysisInput, sample_tweets: int, sample_results: int) -> str:
    """Format the collected data into the analysis request."""
    user_info = None
    if bundle.user_info:
        user_info = clean_data({
            "username": bundle.user_info.username,
            "name": bundle.user_info.name,
            "biography": bundle.user_info.biography,
        })
    search_results = clean_data(_sample(bundle.search_results, sample_results)) if bundle.search_results else None
    tweets = clean_data(_sample(bundle.tweets, sample_tweets)) if bundle.tweets else None
    description = clean_data(bundle.token_description) if bundle.token_description else None

    sections = [
        "Please analyze this project's main narrative:",
        f"User Info: {user_info}" if user_info else "Official Twitter account not found",
    ]
    if search_results:
        sections.append(
            f"Twitter Search Results (pay special attention to most discussed points): {search_results}"
        )
    if tweets:
        sections.append(f"Recent Tweet Samples: {tweets}")
    if description:
        sections.append(f"Project Description: {description}")

    sections.append("""
Please summarize (don't use bold markers):
- Describe the project's main narrative and hype points (e.g., AI, notable figures, KOLs, TikTok, etc.)
- For key people, provide one-sentence introduction highlighting their most important background or achievement
- Token transfer movements and distribution patterns, please include all mentioned token transfer information

Notes:
- Use concise language, natural output, avoid using numbered lists
- Keep key people introductions brief and focused on most representative background
- Avoid discussing volatile information like prices, market cap, and holders""")
    if not bundle.user_info:
        sections.append("- Analysis mainly based on search results as official Twitter account not found")
    return "\n".join(sections)


def parse_analysis(content: str, tool_arguments: str | None) -> dict[str, str]:
    """
    Read the bilingual result from a function call, falling back to a JSON
    body and finally to the raw text for both languages.
    """
    for candidate in (tool_arguments, content):
        if not candidate:
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict) and "english" in parsed and "chinese" in parsed:
            return {"chinese": str(parsed["chinese"]), "english": str(parsed["english"])}
    return {"chinese": content, "english": content}


class ProfileAnalyzer:
    """LLM-backed project summary with a cache in front."""

    def __init__(
        self,
        primary: LLMProvider,
        cache: RedisCache,
        secondary: LLMProvider | None = None,
        search_config: SearchConfig | None = None,
        cache_config: CacheConfig | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self._primary = primary
        self._secondary = secondary
        self._cache = cache
        self._search = search_config or SearchConfig()
        self._ttl = cache_config or CacheConfig()
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def _call(self, llm: LLMProvider, prompt: str) -> dict[str, str]:
        logger.info(f"Generating analysis with {llm.provider_name} ({llm.model_name})")
        response = await llm.generate(
            prompt=prompt,
            system_prompt=ANALYST_SYSTEM_PROMPT,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            tools=ANALYSIS_TOOLS,
            tool_choice=ANALYSIS_FUNCTION,
        )
        arguments = None
        for call in response.tool_calls or []:
            if call.name == ANALYSIS_FUNCTION:
                arguments = call.arguments
                break
        logger.info(f"Analysis generated ({response.token_count} tokens used)")
        return parse_analysis(response.content, arguments)

    async def _store(self, cache_key: str, analysis: dict[str, str], result_count: int) -> None:
        if result_count <= 0:
            logger.info("No search results, skipping analysis cache")
            return
        ttl = select_ttl(
            result_count,
            threshold=self._search.min_results_for_cache,
            full_ttl=self._ttl.user_profile,
            partial_ttl=self._ttl.short_expire,
            empty_ttl=0,
        )
        try:
            await self._cache.set(cache_key, analysis, ttl)
        except Exception as e:
            logger.error(f"Failed to cache analysis result: {e}")
            return
        logger.info(f"Cached analysis result for {ttl}s (search results: {result_count})")

    async def analyze(
        self,
        bundle: AnalysisInput,
        address: str | None,
        force_update: bool = False,
    ) -> dict[str, str] | str:
        """
        Produce {"chinese": ..., "english": ...} for a project.

        Returns:
            The bilingual analysis, or INSUFFICIENT_DATA when there are no
            search results to analyze.

        Raises:
            AnalysisFailed: If the primary and secondary endpoints both fail.
        """
        subject = address or (bundle.user_info.username if bundle.user_info else None) or "null"
        cache_key = f"{CacheKeys.USER_PROFILE}{subject}"

        if not force_update:
            cached = await self._cache.get(cache_key)
            if cached:
                logger.info(f"Using cached analysis: {subject}")
                return cached

        if not bundle.search_results:
            return INSUFFICIENT_DATA

        prompt = build_user_prompt(
            bundle,
            sample_tweets=self._search.sample_tweets,
            sample_results=self._search.sample_search_results,
        )

        try:
            analysis = await self._call(self._primary, prompt)
        except Exception as e:
            if self._secondary is None:
                logger.error(f"Analysis failed and no fallback endpoint is configured: {e}")
                raise AnalysisFailed() from e
            logger.warning(f"Primary analysis failed, retrying with fallback endpoint: {e}")
            try:
                analysis = await self._call(self._secondary, prompt)
            except Exception as fallback_error:
                logger.error(f"All analysis attempts failed: {fallback_error}")
                raise AnalysisFailed() from fallback_error

        await self._store(cache_key, analysis, len(bundle.search_results))
        return analysis
