"""
LLM provider bindings and factory.
"""

from app.config import Settings, settings
from app.exceptions import ProviderConfigurationError
from app.models.api import ProviderName
from app.services.llm_providers.anthropic import AnthropicProvider
from app.services.llm_providers.base import (
    AuthenticationError,
    BaseLLMProvider,
    LLMProviderError,
    RateLimitError,
)
from app.services.llm_providers.http_chat import ChatCompletionsHTTPProvider
from app.services.llm_providers.openai import OpenAIProvider

__all__ = [
    "AuthenticationError",
    "BaseLLMProvider",
    "LLMProviderError",
    "RateLimitError",
    "get_llm_provider",
]


def get_llm_provider(
    provider: ProviderName, report: bool = False, config: Settings = settings
) -> BaseLLMProvider:
    """
    Build the binding for a provider.

    `report` selects the long-form model where the provider has a separate one.

    Raises:
        ProviderConfigurationError: The provider's API key is not configured
    """
    timeout = config.provider_timeout_seconds

    if provider == ProviderName.OPENAI:
        if not config.openai_api_key:
            raise ProviderConfigurationError(provider.value)
        model = config.openai_report_model if report else config.openai_model
        return OpenAIProvider(config.openai_api_key, model, timeout)

    if provider == ProviderName.ANTHROPIC:
        if not config.anthropic_api_key:
            raise ProviderConfigurationError(provider.value)
        model = config.anthropic_report_model if report else config.anthropic_model
        return AnthropicProvider(config.anthropic_api_key, model, timeout)

    if provider == ProviderName.DEEPSEEK:
        if not config.deepseek_api_key:
            raise ProviderConfigurationError(provider.value)
        return ChatCompletionsHTTPProvider(
            provider.value,
            config.deepseek_api_url,
            config.deepseek_api_key,
            config.deepseek_model,
            timeout,
        )

    if not config.perplexity_api_key:
        raise ProviderConfigurationError(provider.value)
    return ChatCompletionsHTTPProvider(
        provider.value,
        config.perplexity_api_url,
        config.perplexity_api_key,
        config.perplexity_model,
        timeout,
    )
