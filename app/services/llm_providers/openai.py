"""
OpenAI LLM Provider - official openai SDK with async client.
"""

from openai import APIError, AsyncOpenAI
from openai import AuthenticationError as OpenAIAuthError
from openai import RateLimitError as OpenAIRateLimitError

from app.services.llm_providers.base import (
    AuthenticationError,
    BaseLLMProvider,
    LLMProviderError,
    RateLimitError,
)


class OpenAIProvider(BaseLLMProvider):
    """Chat Completions binding. Supports JSON mode via response_format."""

    name = "openai"

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        self.client = AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model_name = model

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
            return response.choices[0].message.content or ""

        except OpenAIRateLimitError as e:
            raise RateLimitError(
                "OpenAI API rate limit exceeded. Please try again later.",
                provider=self.name,
                original_error=e,
            ) from e
        except OpenAIAuthError as e:
            raise AuthenticationError(
                "OpenAI API key is invalid.", provider=self.name, original_error=e
            ) from e
        except APIError as e:
            raise LLMProviderError(
                f"OpenAI API error: {e}", provider=self.name, original_error=e
            ) from e
