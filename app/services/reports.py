"""
Comprehensive Report Generator.

Asks a provider the ten profiler questions and parses the free-text answer.
A provider failure (including a missing API key) yields the complete
fallback report rather than an error.
"""

import time
from dataclasses import dataclass

from app.config import Settings, settings
from app.exceptions import ProfilerError
from app.models.api import ProviderName
from app.models.domain import ComprehensiveReport
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.llm_providers import BaseLLMProvider, get_llm_provider
from app.services.prompts import REPORT_SYSTEM_PROMPT, build_report_prompt
from app.services.report_parser import ReportSectionParser, fallback_report

logger = get_logger(__name__)

REPORT_TEMPERATURE = 0.4
REPORT_MAX_TOKENS = 4000


@dataclass(frozen=True)
class ReportResult:
    report: ComprehensiveReport
    used_fallback: bool


class ReportGenerator:
    """Long-form report for one provider."""

    def __init__(
        self,
        provider: ProviderName,
        llm: BaseLLMProvider | None,
        parser: ReportSectionParser | None = None,
    ) -> None:
        self.provider = provider
        self.llm = llm
        self.parser = parser or ReportSectionParser()

    async def generate(self, text: str) -> ReportResult:
        if self.llm is None:
            metrics.record_fallback(self.provider.value, "report")
            return ReportResult(fallback_report(self.provider.value), used_fallback=True)

        start = time.time()
        with trace_operation("provider_report", provider=self.provider.value, chars=len(text)):
            try:
                content = await self.llm.generate(
                    build_report_prompt(text),
                    system_prompt=REPORT_SYSTEM_PROMPT,
                    temperature=REPORT_TEMPERATURE,
                    max_tokens=REPORT_MAX_TOKENS,
                )
                if not content.strip():
                    raise ValueError("Empty response")
            except (ProfilerError, ValueError) as e:
                metrics.record_provider_call(
                    self.provider.value, "report", False, time.time() - start
                )
                metrics.record_fallback(self.provider.value, "report")
                logger.warning(
                    "report_fallback_used",
                    provider=self.provider.value,
                    error_type=type(e).__name__,
                )
                return ReportResult(fallback_report(self.provider.value), used_fallback=True)

        metrics.record_provider_call(self.provider.value, "report", True, time.time() - start)
        return ReportResult(self.parser.parse(content, self.provider.value), used_fallback=False)


def build_report_generator(
    provider: ProviderName, config: Settings = settings
) -> ReportGenerator:
    """Report generator for openai, anthropic or perplexity; unconfigured keys fall back."""
    if provider == ProviderName.DEEPSEEK:
        raise ValueError("DeepSeek has no comprehensive report binding")
    try:
        llm: BaseLLMProvider | None = get_llm_provider(provider, report=True, config=config)
    except ProfilerError:
        logger.warning("provider_not_configured", provider=provider.value)
        llm = None
    return ReportGenerator(provider, llm)
