"""
Google Generative AI (Gemini) LLM Provider Implementation.

Provides integration with Google's Generative AI API for project analysis.
"""

import json
import logging
from typing import Any

import google.generativeai as genai
from google.generativeai.types import GenerateContentResponse

from .base import LLMProvider, LLMResponse

logger = logging.getLogger("searchbot.llm.google")


def _flatten_messages(messages: list[dict[str, Any]]) -> str:
    """Render a chat message list as a single prompt."""
    lines = []
    for message in messages:
        role = message.get("role", "user")
        content = message.get("content") or ""
        lines.append(content if role == "user" else f"[{role}] {content}")
    return "\n\n".join(lines)


class GoogleProvider(LLMProvider):
    """Google Generative AI provider implementation."""

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        """
        Initialize the Google Generative AI provider.

        Args:
            api_key: Google API key.
            model: Model to use (default: gemini-2.0-flash).
        """
        self._api_key = api_key
        self._model = model
        self._configured = False

        if api_key:
            genai.configure(api_key=api_key)
            self._configured = True

    @property
    def provider_name(self) -> str:
        return "Google"

    @property
    def model_name(self) -> str:
        return self._model

    def is_configured(self) -> bool:
        return self._configured and bool(self._api_key)

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
        Generate a response using Google's Generative AI API.

        Function definitions are not sent; when a function is required the
        model is asked to answer with a JSON object matching its parameters,
        which callers read from `content`.

        Args:
            prompt: The user prompt/question.
            messages: Message list, flattened into one prompt.
            system_prompt: Optional system prompt to set context.
            temperature: Creativity setting (0.0-1.0).
            max_tokens: Maximum tokens in response.
            tools: Optional function definitions.
            tool_choice: Name of the function whose arguments to return as JSON.

        Returns:
            LLMResponse containing the generated content.
        """
        logger.debug(f"Sending request to Google ({self._model})")

        try:
            full_prompt = _flatten_messages(messages) if messages else (prompt or "")
            if system_prompt:
                full_prompt = f"{system_prompt}\n\n{full_prompt}"

            if tools and tool_choice:
                schema = next((t["parameters"] for t in tools if t["name"] == tool_choice), None)
                if schema is not None:
                    full_prompt += (
                        "\n\nRespond only with a JSON object matching this schema:\n"
                        f"{json.dumps(schema)}"
                    )

            model = genai.GenerativeModel(
                model_name=self._model,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )

            response: GenerateContentResponse = await model.generate_content_async(
                full_prompt
            )

            content = response.text if response.text else ""

            # Extract usage metadata if available
            usage = None
            if hasattr(response, "usage_metadata") and response.usage_metadata:
                usage = {
                    "prompt_tokens": response.usage_metadata.prompt_token_count,
                    "completion_tokens": response.usage_metadata.candidates_token_count,
                    "total_tokens": response.usage_metadata.total_token_count,
                }

            logger.debug(f"Google response received, tokens used: {usage}")

            return LLMResponse(
                content=content,
                model=self._model,
                usage=usage,
                raw_response=response,
            )

        except Exception as e:
            logger.error(f"Google API error: {e}")
            raise
