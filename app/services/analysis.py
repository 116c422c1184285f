"""
Analysis Service - request -> provider -> normalizer -> persistence -> debit.

Tokens are debited only after the provider call has produced a result.
Analysis requests and reports are persisted for registered users only;
anonymous results are returned but not stored.
"""

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from app.db.storage import Storage
from app.models.api import (
    AnalysisType,
    CognitiveAnalysisResponse,
    ComprehensiveReportResponse,
    EventType,
    ProviderName,
)
from app.models.domain import (
    Actor,
    CognitiveAnalysis,
    ComprehensiveReport,
    LedgerEntry,
)
from app.observability.logging import get_logger
from app.services.analyzers import CognitiveAnalyzer, build_analyzer
from app.services.reports import ReportGenerator, build_report_generator
from app.services.tokens import TokenService

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    analysis: CognitiveAnalysis
    analysis_id: UUID | None
    tokens_charged: int
    tokens_remaining: int


@dataclass(frozen=True)
class ReportOutcome:
    report: ComprehensiveReport
    used_fallback: bool
    analysis_id: UUID | None
    report_id: UUID | None
    tokens_charged: int
    tokens_remaining: int


def analysis_to_response(analysis: CognitiveAnalysis) -> CognitiveAnalysisResponse:
    return CognitiveAnalysisResponse(
        intelligence_score=analysis.intelligence_score,
        characteristics=analysis.characteristics,
        detailed_analysis=analysis.detailed_analysis,
        strengths=analysis.strengths,
        tendencies=analysis.tendencies,
        provider=analysis.provider,
        used_fallback=analysis.used_fallback,
    )


def report_to_response(report: ComprehensiveReport) -> ComprehensiveReportResponse:
    return ComprehensiveReportResponse(
        intelligence=report.intelligence,
        abstract_thinking=report.abstract_thinking,
        originality=report.originality,
        reasoning_style=report.reasoning_style,
        ambiguity_handling=report.ambiguity_handling,
        metacognition=report.metacognition,
        thinking_type=report.thinking_type,
        cognitive_complexity=report.cognitive_complexity,
        thinking_quality=report.thinking_quality,
        cognitive_archetype=report.cognitive_archetype,
        generated_by=report.generated_by,
    )


class AnalysisService:
    """Runs short-form analyses and comprehensive reports for an actor."""

    def __init__(
        self,
        storage: Storage,
        tokens: TokenService,
        analyzer_factory: Callable[[ProviderName], CognitiveAnalyzer] = build_analyzer,
        report_factory: Callable[[ProviderName], ReportGenerator] = build_report_generator,
    ) -> None:
        self.storage = storage
        self.tokens = tokens
        self.analyzer_factory = analyzer_factory
        self.report_factory = report_factory

    async def analyze(
        self, actor: Actor, text: str, provider: ProviderName, estimated_tokens: int
    ) -> AnalysisOutcome:
        """
        Short-form analysis.

        Raises:
            ProviderConfigurationError: Provider key missing (openai / anthropic)
            ProviderResponseError: Provider failed or answered in the wrong shape
        """
        analyzer = self.analyzer_factory(provider)

        analysis_id: UUID | None = None
        if actor.user is not None:
            request = await self.storage.create_analysis_request(
                actor.user.user_id, text, AnalysisType.COGNITIVE, provider
            )
            analysis_id = request.analysis_id

        analysis = await analyzer.analyze(text)

        entry = await self._debit(actor, estimated_tokens, f"{provider.value} cognitive analysis")

        if actor.user is not None and analysis_id is not None:
            await self.storage.update_analysis_result(
                analysis_id,
                actor.user.user_id,
                analysis_to_response(analysis).model_dump_json(),
            )

        logger.info(
            "analysis_completed",
            provider=provider.value,
            registered=actor.is_registered,
            chars=len(text),
            tokens_charged=entry.tokens_used,
            used_fallback=analysis.used_fallback,
        )
        return AnalysisOutcome(
            analysis=analysis,
            analysis_id=analysis_id,
            tokens_charged=entry.tokens_used,
            tokens_remaining=entry.tokens_remaining,
        )

    async def comprehensive_report(
        self, actor: Actor, text: str, provider: ProviderName, estimated_tokens: int
    ) -> ReportOutcome:
        """Ten-section report. Provider failures yield the fallback report, never an error."""
        generator = self.report_factory(provider)

        analysis_id: UUID | None = None
        if actor.user is not None:
            request = await self.storage.create_analysis_request(
                actor.user.user_id, text, AnalysisType.COMPREHENSIVE, provider
            )
            analysis_id = request.analysis_id

        result = await generator.generate(text)

        entry = await self._debit(
            actor, estimated_tokens, f"{provider.value} comprehensive report"
        )

        report_id: UUID | None = None
        if actor.user is not None and analysis_id is not None:
            report_json = report_to_response(result.report).model_dump_json()
            await self.storage.update_analysis_result(analysis_id, actor.user.user_id, report_json)
            record = await self.storage.create_report(
                actor.user.user_id, analysis_id, provider, report_json
            )
            report_id = record.report_id

        logger.info(
            "report_completed",
            provider=provider.value,
            registered=actor.is_registered,
            chars=len(text),
            tokens_charged=entry.tokens_used,
            used_fallback=result.used_fallback,
        )
        return ReportOutcome(
            report=result.report,
            used_fallback=result.used_fallback,
            analysis_id=analysis_id,
            report_id=report_id,
            tokens_charged=entry.tokens_used,
            tokens_remaining=entry.tokens_remaining,
        )

    async def _debit(self, actor: Actor, tokens: int, description: str) -> LedgerEntry:
        if actor.user is not None:
            return await self.tokens.deduct_registered_user_tokens(
                actor.user.user_id, tokens, EventType.ANALYSIS, description
            )
        if actor.session_id is None:
            raise ValueError("Anonymous actor without a session")
        return await self.tokens.deduct_free_user_tokens(
            actor.session_id, tokens, description, EventType.ANALYSIS
        )
