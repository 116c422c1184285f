"""
OpenAI-compatible chat-completions provider over plain HTTP (httpx).

Used for DeepSeek and Perplexity, which expose the same request shape.
"""

import httpx

from app.observability.logging import get_logger
from app.services.llm_providers.base import (
    AuthenticationError,
    BaseLLMProvider,
    LLMProviderError,
    RateLimitError,
)

logger = get_logger(__name__)


class ChatCompletionsHTTPProvider(BaseLLMProvider):
    """POSTs {model, messages, temperature, max_tokens} with a bearer key."""

    def __init__(
        self,
        name: str,
        api_url: str,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self.api_url = api_url
        self.api_key = api_key
        self.model_name = model
        self.timeout = timeout
        self.transport = transport

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

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(self.api_url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise LLMProviderError(
                f"{self.name} request failed: {e}", provider=self.name, original_error=e
            ) from e

        if response.status_code == 429:
            raise RateLimitError(f"{self.name} API rate limit exceeded.", provider=self.name)
        if response.status_code in (401, 403):
            raise AuthenticationError(f"{self.name} API key is invalid.", provider=self.name)
        if response.status_code >= 400:
            logger.error(
                "llm_http_provider_error",
                provider=self.name,
                status=response.status_code,
            )
            raise LLMProviderError(
                f"{self.name} API error: {response.status_code}", provider=self.name
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMProviderError(
                f"{self.name} returned an unexpected payload", provider=self.name, original_error=e
            ) from e

        return content or ""
