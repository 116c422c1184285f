"""
API Routes - FastAPI endpoints for token status, analysis and documents.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text

from app.api.dependencies import (
    TokenGate,
    check_token_limits,
    check_upload_permission,
    get_analysis_service,
    get_document_service,
    get_storage,
    get_token_service,
    require_auth,
    resolve_actor,
)
from app.config import settings
from app.db.session import get_session_factory
from app.db.storage import Storage
from app.exceptions import (
    ConcurrencyError,
    InsufficientTokensError,
    ProviderConfigurationError,
    ProviderResponseError,
    UserNotFoundError,
)
from app.models.api import (
    AnalysisRecordResponse,
    AnalysisType,
    AnalyzeRequest,
    AnalyzeResponse,
    CognitiveAnalysisResponse,
    ComprehensiveAnalyzeRequest,
    ComprehensiveAnalyzeResponse,
    ComprehensiveReportResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadRequest,
    DocumentUploadResponse,
    HealthResponse,
    LedgerEntryResponse,
    PricingResponse,
    PricingTierResponse,
    ReportRecordResponse,
    TokenHistoryResponse,
    TokenStatusResponse,
)
from app.models.domain import (
    Actor,
    AnalysisRequestData,
    DocumentData,
    LedgerEntry,
    ReportRecordData,
    UserData,
)
from app.observability.logging import get_logger
from app.services.analysis import (
    AnalysisService,
    analysis_to_response,
    report_to_response,
)
from app.services.documents import DocumentService
from app.services.tokens import CREDITS_EXHAUSTED_MESSAGE, TokenService

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Converters
# ============================================================================


def _ledger_to_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        entry_id=entry.entry_id,
        event_type=entry.event_type,
        tokens_used=entry.tokens_used,
        tokens_remaining=entry.tokens_remaining,
        description=entry.description,
        created_at=entry.created_at.isoformat(),
    )


def _document_to_response(document: DocumentData, include_content: bool = False) -> DocumentResponse:
    return DocumentResponse(
        document_id=document.document_id,
        filename=document.filename,
        word_count=document.word_count,
        uploaded_at=document.uploaded_at.isoformat(),
        content=document.content if include_content else None,
    )


def _analysis_record_to_response(record: AnalysisRequestData) -> AnalysisRecordResponse:
    result = None
    if record.analysis_type == AnalysisType.COGNITIVE and record.result:
        result = CognitiveAnalysisResponse.model_validate_json(record.result)
    return AnalysisRecordResponse(
        analysis_id=record.analysis_id,
        analysis_type=record.analysis_type,
        provider=record.provider,
        text=record.text,
        result=result,
        created_at=record.created_at.isoformat(),
    )


def _report_record_to_response(record: ReportRecordData) -> ReportRecordResponse:
    return ReportRecordResponse(
        report_id=record.report_id,
        analysis_id=record.analysis_id,
        provider=record.provider,
        report=ComprehensiveReportResponse.model_validate_json(record.report_data),
        created_at=record.created_at.isoformat(),
    )


def _insufficient_tokens(exc: InsufficientTokensError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "error": "insufficient_tokens",
            "message": CREDITS_EXHAUSTED_MESSAGE,
            "current_balance": exc.balance,
            "required_tokens": exc.required,
        },
    )


# ============================================================================
# Tokens
# ============================================================================


@router.get("/api/tokens/status", response_model=TokenStatusResponse)
async def token_status(
    actor: Actor = Depends(resolve_actor),
    tokens: TokenService = Depends(get_token_service),
) -> TokenStatusResponse:
    """Balance for registered callers, free allowance for anonymous ones."""
    if actor.user is not None:
        user = actor.user
        if user.is_admin:
            user = await tokens.pin_admin_balance(user)
        return TokenStatusResponse(
            registered=True,
            user_id=user.user_id,
            token_balance=user.token_balance,
            can_upload=True,
            is_admin=user.is_admin,
        )

    session = await tokens.storage.get_session(actor.session_id or "")
    used = session.tokens_used if session else 0
    permission = await tokens.can_user_upload_files(None, actor.session_id)
    limit = tokens.config.free_token_limit
    return TokenStatusResponse(
        registered=False,
        session_id=actor.session_id,
        free_tokens_used=used,
        free_tokens_remaining=max(0, limit - used),
        free_token_limit=limit,
        can_upload=permission.can_upload,
    )


@router.get("/api/tokens/history", response_model=TokenHistoryResponse)
async def token_history(
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(resolve_actor),
    tokens: TokenService = Depends(get_token_service),
) -> TokenHistoryResponse:
    """Most recent ledger rows for the caller, newest first."""
    if actor.user is not None:
        entries = await tokens.get_user_token_history(actor.user.user_id, limit)
    else:
        entries = await tokens.get_session_token_history(actor.session_id or "", limit)

    return TokenHistoryResponse(
        entries=[_ledger_to_response(entry) for entry in entries],
        total_count=len(entries),
    )


@router.get("/api/tokens/pricing", response_model=PricingResponse)
async def token_pricing(tokens: TokenService = Depends(get_token_service)) -> PricingResponse:
    return PricingResponse(
        tiers=[
            PricingTierResponse(
                amount_cents=tier.amount_cents,
                tokens=tier.tokens,
                description=tier.description,
                popular=tier.popular,
            )
            for tier in tokens.get_pricing_tiers()
        ],
        publishable_key=settings.stripe_publishable_key or None,
    )


# ============================================================================
# Analysis
# ============================================================================


@router.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze_text(
    request: AnalyzeRequest,
    gate: TokenGate = Depends(check_token_limits),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalyzeResponse:
    """
    Short-form cognitive analysis.

    Tokens are charged only when the analysis succeeds.
    """
    try:
        outcome = await service.analyze(
            gate.actor, request.text, request.provider, gate.estimated_tokens
        )
    except ProviderConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "provider_not_configured", "message": str(exc)},
        ) from exc
    except ProviderResponseError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "analysis_failed", "message": str(exc)},
        ) from exc
    except InsufficientTokensError as exc:
        raise _insufficient_tokens(exc) from exc

    return AnalyzeResponse(
        analysis_id=outcome.analysis_id,
        analysis=analysis_to_response(outcome.analysis),
        tokens_charged=outcome.tokens_charged,
        tokens_remaining=outcome.tokens_remaining,
    )


@router.post("/api/analyze/comprehensive", response_model=ComprehensiveAnalyzeResponse)
async def analyze_comprehensive(
    request: ComprehensiveAnalyzeRequest,
    gate: TokenGate = Depends(check_token_limits),
    service: AnalysisService = Depends(get_analysis_service),
) -> ComprehensiveAnalyzeResponse:
    """Ten-section report. Provider failures return the fallback report."""
    try:
        outcome = await service.comprehensive_report(
            gate.actor, request.text, request.provider, gate.estimated_tokens
        )
    except InsufficientTokensError as exc:
        raise _insufficient_tokens(exc) from exc

    return ComprehensiveAnalyzeResponse(
        analysis_id=outcome.analysis_id,
        report_id=outcome.report_id,
        report=report_to_response(outcome.report),
        tokens_charged=outcome.tokens_charged,
        tokens_remaining=outcome.tokens_remaining,
    )


@router.get("/api/analyses", response_model=list[AnalysisRecordResponse])
async def list_analyses(
    user: UserData = Depends(require_auth),
    storage: Storage = Depends(get_storage),
) -> list[AnalysisRecordResponse]:
    records = await storage.list_analysis_requests(user.user_id)
    return [_analysis_record_to_response(record) for record in records]


@router.get("/api/analyses/{analysis_id}", response_model=AnalysisRecordResponse)
async def get_analysis(
    analysis_id: UUID,
    user: UserData = Depends(require_auth),
    storage: Storage = Depends(get_storage),
) -> AnalysisRecordResponse:
    record = await storage.get_analysis_request(analysis_id, user.user_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    return _analysis_record_to_response(record)


@router.get("/api/reports", response_model=list[ReportRecordResponse])
async def list_reports(
    user: UserData = Depends(require_auth),
    storage: Storage = Depends(get_storage),
) -> list[ReportRecordResponse]:
    records = await storage.list_reports(user.user_id)
    return [_report_record_to_response(record) for record in records]


@router.get("/api/reports/{report_id}", response_model=ReportRecordResponse)
async def get_report(
    report_id: UUID,
    user: UserData = Depends(require_auth),
    storage: Storage = Depends(get_storage),
) -> ReportRecordResponse:
    record = await storage.get_report(report_id, user.user_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return _report_record_to_response(record)


# ============================================================================
# Documents
# ============================================================================


@router.post(
    "/api/documents",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    request: DocumentUploadRequest,
    actor: Actor = Depends(check_upload_permission),
    service: DocumentService = Depends(get_document_service),
) -> DocumentUploadResponse:
    """
    Upload a text document.

    Registered uploads are stored; anonymous uploads are charged but not kept.
    """
    try:
        outcome = await service.upload(actor, request.filename, request.content)
    except InsufficientTokensError as exc:
        raise _insufficient_tokens(exc) from exc
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "authentication_required", "message": "Invalid or expired token"},
        ) from exc
    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Balance changed concurrently, please retry",
        ) from exc

    return DocumentUploadResponse(
        document=_document_to_response(outcome.document) if outcome.document else None,
        filename=outcome.filename,
        word_count=outcome.word_count,
        tokens_charged=outcome.tokens_charged,
        persisted=outcome.persisted,
    )


@router.get("/api/documents", response_model=DocumentListResponse)
async def list_documents(
    user: UserData = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
) -> DocumentListResponse:
    documents = await service.list_documents(user.user_id)
    return DocumentListResponse(
        documents=[_document_to_response(document) for document in documents],
        total_count=len(documents),
    )


@router.get("/api/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    user: UserData = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    document = await service.get_document(document_id, user.user_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return _document_to_response(document, include_content=True)


@router.delete("/api/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    user: UserData = Depends(require_auth),
    service: DocumentService = Depends(get_document_service),
) -> None:
    if not await service.delete_document(document_id, user.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity when a database is configured.
    """
    if not settings.database_enabled:
        return HealthResponse(
            status="healthy",
            storage="memory",
            version=settings.api_version,
            timestamp=datetime.now(UTC).isoformat(),
        )

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("health_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "storage": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        storage="database",
        version=settings.api_version,
        timestamp=datetime.now(UTC).isoformat(),
    )
