"""
OpenAI LLM Provider Implementation.

Provides integration with OpenAI's API and OpenAI-compatible endpoints
(DeepSeek etc. via base_url) for project analysis.
"""

import logging
from typing import Any

from openai import AsyncOpenAI

from .base import LLMProvider, LLMResponse, ToolCall

logger = logging.getLogger("searchbot.llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 20.0,
    ):
        """
        Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key.
            model: Model to use (default: gpt-4o-mini).
            base_url: Optional OpenAI-compatible endpoint.
            timeout: Request timeout in seconds.
        """
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._client: AsyncOpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "OpenAI" if not self._base_url else f"OpenAI-compatible ({self._base_url})"

    @property
    def model_name(self) -> str:
        return self._model

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client."""
        if self._client is None:
            kwargs: dict[str, Any] = {"api_key": self._api_key, "timeout": self._timeout}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def generate(
        self,
        prompt: str | None = None,
        messages: list[dict[str, Any]] | None = None,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: list[dict] | None = None,
        tool_choice: str | None = None,
    ) -> LLMResponse:
        """
        Generate a response using OpenAI's API.

        Args:
            prompt: The user prompt/question.
            messages: Full message list (used instead of prompt when given).
            system_prompt: Optional system prompt to set context.
            temperature: Creativity setting (0.0-1.0).
            max_tokens: Maximum tokens in response.
            tools: Optional function definitions.
            tool_choice: Force a call to this function.

        Returns:
            LLMResponse containing the generated content.
        """
        client = self._get_client()

        chat: list[dict[str, Any]] = []
        # An existing system message in `messages` takes precedence
        has_system = any(m.get("role") == "system" for m in messages or [])
        if system_prompt and not has_system:
            chat.append({"role": "system", "content": system_prompt})
        if messages:
            chat.extend(messages)
        elif prompt:
            chat.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": self._model,
            "messages": chat,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            request["tools"] = [{"type": "function", "function": t} for t in tools]
            if tool_choice:
                request["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}
            else:
                request["tool_choice"] = "auto"

        logger.debug(f"Sending request to {self.provider_name} ({self._model})")

        try:
            response = await client.chat.completions.create(**request)

            message = response.choices[0].message
            content = message.content or ""
            tool_calls = None
            if message.tool_calls:
                tool_calls = [
                    ToolCall(name=c.function.name, arguments=c.function.arguments, id=c.id)
                    for c in message.tool_calls
                ]

            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }

            logger.debug(f"OpenAI response received, tokens used: {usage}")

            return LLMResponse(
                content=content,
                model=response.model,
                usage=usage,
                tool_calls=tool_calls,
                raw_response=response,
            )

        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise
