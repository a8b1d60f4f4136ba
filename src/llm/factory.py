"""
LLM Provider Factory.

Creates the appropriate LLM provider based on configuration.
"""

import logging
from typing import Literal

from .base import LLMProvider
from .openai_client import OpenAIProvider
from .google_client import GoogleProvider

logger = logging.getLogger("searchbot.llm.factory")


def create_llm_provider(
    provider: Literal["openai", "google"],
    api_key: str = "",
    model: str = "gpt-4o-mini",
    base_url: str | None = None,
    timeout: float = 20.0,
) -> LLMProvider:
    """
    Create an LLM provider based on the specified type.

    Args:
        provider: Which provider to use ("openai" or "google").
        api_key: API key for the provider.
        model: Model to use.
        base_url: OpenAI-compatible endpoint (ignored for Google).
        timeout: Request timeout in seconds (OpenAI-compatible only).

    Returns:
        Configured LLMProvider instance.

    Raises:
        ValueError: If provider is not supported or not properly configured.
    """
    logger.info(f"Creating LLM provider: {provider} ({model})")

    if provider == "openai":
        if not api_key:
            raise ValueError("API key is required when using an OpenAI-compatible provider")
        return OpenAIProvider(api_key=api_key, model=model, base_url=base_url, timeout=timeout)

    elif provider == "google":
        if not api_key:
            raise ValueError("Google API key is required when using Google provider")
        return GoogleProvider(api_key=api_key, model=model)

    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
