"""
LLM Provider Base Class.

Abstract interface and error types shared by every provider binding.
"""

from abc import ABC, abstractmethod

from app.exceptions import ProfilerError


class LLMProviderError(ProfilerError):
    """Base exception for LLM provider errors."""

    def __init__(
        self, message: str, provider: str = "unknown", original_error: Exception | None = None
    ) -> None:
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class RateLimitError(LLMProviderError):
    """Raised when provider rate limit is exceeded."""

    pass


class AuthenticationError(LLMProviderError):
    """Raised when the provider rejects the API key."""

    pass


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations must map SDK/transport failures to LLMProviderError
    subclasses; callers never see SDK exception types.
    """

    name: str

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        """
        Generate a complete response string.

        Args:
            prompt: The user prompt to respond to
            system_prompt: Optional system instructions
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            json_mode: Ask the provider for a JSON object when it supports it

        Raises:
            LLMProviderError: On generation failure
        """
        ...
