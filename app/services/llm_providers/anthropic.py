"""
Anthropic Claude LLM Provider - official anthropic SDK with async client.
"""

from typing import Any

from anthropic import APIError, AsyncAnthropic
from anthropic import AuthenticationError as AnthropicAuthError
from anthropic import RateLimitError as AnthropicRateLimitError

from app.services.llm_providers.base import (
    AuthenticationError,
    BaseLLMProvider,
    LLMProviderError,
    RateLimitError,
)


class AnthropicProvider(BaseLLMProvider):
    """Messages API binding. The system prompt goes in the separate `system` parameter."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.model_name = model

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self.client.messages.create(**kwargs)
            return self._extract_text(response)

        except AnthropicRateLimitError as e:
            raise RateLimitError(
                "Anthropic API rate limit exceeded. Please try again later.",
                provider=self.name,
                original_error=e,
            ) from e
        except AnthropicAuthError as e:
            raise AuthenticationError(
                "Anthropic API key is invalid.", provider=self.name, original_error=e
            ) from e
        except APIError as e:
            raise LLMProviderError(
                f"Anthropic API error: {e}", provider=self.name, original_error=e
            ) from e

    @staticmethod
    def _extract_text(response: Any) -> str:
        """Concatenate the text blocks of a Messages response."""
        return "".join(block.text for block in response.content if hasattr(block, "text"))
