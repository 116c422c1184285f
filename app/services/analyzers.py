"""
Cognitive Analyzers - "call a provider" and "local heuristic" behind one interface.

The DeepSeek binding is wrapped in FallbackAnalyzer, the single degradation
path: any provider or parsing failure is answered by the heuristic scorer
and the result is flagged with used_fallback=True.
"""

import time
from abc import ABC, abstractmethod

from app.config import Settings, settings
from app.exceptions import ProfilerError, ProviderConfigurationError, ProviderResponseError
from app.models.api import ProviderName
from app.models.domain import CognitiveAnalysis
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.heuristic import HeuristicScorer
from app.services.llm_providers import BaseLLMProvider, LLMProviderError, get_llm_provider
from app.services.normalizer import parse_lenient_analysis, parse_strict_analysis
from app.services.prompts import COGNITIVE_PROFILER_INSTRUCTIONS, build_short_form_prompt

logger = get_logger(__name__)


class CognitiveAnalyzer(ABC):
    """Produces a short-form CognitiveAnalysis for a text."""

    provider: ProviderName

    @abstractmethod
    async def analyze(self, text: str) -> CognitiveAnalysis: ...


class ProviderAnalyzer(CognitiveAnalyzer):
    """Calls an LLM and normalizes its answer (strict or lenient JSON)."""

    def __init__(
        self,
        provider: ProviderName,
        llm: BaseLLMProvider,
        lenient: bool = False,
        temperature: float = 0.7,
        max_tokens: int = 1500,
    ) -> None:
        self.provider = provider
        self.llm = llm
        self.lenient = lenient
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def analyze(self, text: str) -> CognitiveAnalysis:
        start = time.time()
        with trace_operation("provider_analyze", provider=self.provider.value, chars=len(text)):
            try:
                content = await self.llm.generate(
                    build_short_form_prompt(text),
                    system_prompt=COGNITIVE_PROFILER_INSTRUCTIONS,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    json_mode=not self.lenient,
                )
            except LLMProviderError as e:
                metrics.record_provider_call(
                    self.provider.value, "analyze", False, time.time() - start
                )
                logger.warning(
                    "provider_call_failed",
                    provider=self.provider.value,
                    error_type=type(e).__name__,
                    error=e.message,
                )
                raise ProviderResponseError(self.provider.value, e.message) from e

            metrics.record_provider_call(self.provider.value, "analyze", True, time.time() - start)

            if self.lenient:
                return parse_lenient_analysis(content, self.provider)
            return parse_strict_analysis(content, self.provider)


class HeuristicAnalyzer(CognitiveAnalyzer):
    """Deterministic local scorer; never calls out."""

    def __init__(
        self,
        provider: ProviderName,
        scorer: HeuristicScorer | None = None,
        used_fallback: bool = False,
    ) -> None:
        self.provider = provider
        self.scorer = scorer or HeuristicScorer()
        self.used_fallback = used_fallback

    async def analyze(self, text: str) -> CognitiveAnalysis:
        return self.scorer.analyze(text, self.provider, used_fallback=self.used_fallback)


class FallbackAnalyzer(CognitiveAnalyzer):
    """Tries the primary analyzer once; on failure answers with the heuristic."""

    def __init__(self, primary: CognitiveAnalyzer, fallback: HeuristicAnalyzer) -> None:
        self.provider = primary.provider
        self.primary = primary
        self.fallback = fallback

    async def analyze(self, text: str) -> CognitiveAnalysis:
        try:
            return await self.primary.analyze(text)
        except ProfilerError as e:
            logger.warning(
                "analysis_fallback_used",
                provider=self.provider.value,
                error_type=type(e).__name__,
            )
            metrics.record_fallback(self.provider.value, "analyze")
            return await self.fallback.analyze(text)


def build_analyzer(provider: ProviderName, config: Settings = settings) -> CognitiveAnalyzer:
    """
    Choose the analyzer for a provider.

    - openai / anthropic: strict provider analyzer, failures propagate
    - deepseek: lenient provider analyzer with heuristic fallback
    - perplexity: heuristic analyzer

    Raises:
        ProviderConfigurationError: openai / anthropic key missing
    """
    if provider == ProviderName.PERPLEXITY:
        return HeuristicAnalyzer(provider)

    if provider == ProviderName.DEEPSEEK:
        fallback = HeuristicAnalyzer(provider, used_fallback=True)
        try:
            llm = get_llm_provider(provider, config=config)
        except ProviderConfigurationError:
            logger.warning("provider_not_configured", provider=provider.value)
            metrics.record_fallback(provider.value, "analyze")
            return fallback
        return FallbackAnalyzer(
            ProviderAnalyzer(provider, llm, lenient=True, max_tokens=1000), fallback
        )

    llm = get_llm_provider(provider, config=config)
    return ProviderAnalyzer(provider, llm, lenient=False, max_tokens=1500)
