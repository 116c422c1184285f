"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class UserRole(str, Enum):
    """Registered user role enumeration."""

    USER = "user"
    ADMIN = "admin"


class EventType(str, Enum):
    """Token ledger event type enumeration."""

    ANALYSIS = "analysis"
    UPLOAD = "upload"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"


class PaymentStatus(str, Enum):
    """Payment lifecycle states. PENDING -> SUCCEEDED | FAILED."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AnalysisType(str, Enum):
    """Kind of analysis requested."""

    COGNITIVE = "cognitive"
    COMPREHENSIVE = "comprehensive"


class ProviderName(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    PERPLEXITY = "perplexity"


class LimitType(str, Enum):
    """Which free-tier limit denied a request."""

    INPUT = "input"
    OUTPUT = "output"
    TOTAL = "total"


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(BaseModel):
    """POST /api/auth/register request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Require a plausible address and normalize to lowercase."""
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("email must be a valid address")
        return v


class LoginRequest(BaseModel):
    """POST /api/auth/login request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserResponse(BaseModel):
    """Public view of a registered user."""

    user_id: UUID
    email: str
    role: UserRole
    token_balance: int
    created_at: str  # ISO 8601 timestamp


class AuthResponse(BaseModel):
    """Register/login response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# ============================================================================
# Token Models
# ============================================================================


class TokenStatusResponse(BaseModel):
    """GET /api/tokens/status response."""

    registered: bool
    session_id: str | None = None
    user_id: UUID | None = None
    token_balance: int | None = None
    free_tokens_used: int | None = None
    free_tokens_remaining: int | None = None
    free_token_limit: int | None = None
    can_upload: bool
    is_admin: bool = False


class LedgerEntryResponse(BaseModel):
    """Single ledger row in history responses."""

    entry_id: UUID
    event_type: EventType
    tokens_used: int
    tokens_remaining: int
    description: str
    created_at: str


class TokenHistoryResponse(BaseModel):
    """GET /api/tokens/history response."""

    entries: list[LedgerEntryResponse]
    total_count: int


class PricingTierResponse(BaseModel):
    """Single purchasable pricing tier."""

    amount_cents: int
    tokens: int
    description: str
    popular: bool = False


class PricingResponse(BaseModel):
    """GET /api/tokens/pricing response."""

    tiers: list[PricingTierResponse]
    publishable_key: str | None = None


# ============================================================================
# Analysis Models
# ============================================================================


class AnalyzeRequest(BaseModel):
    """POST /api/analyze request body."""

    text: str = Field(..., min_length=1)
    provider: ProviderName = ProviderName.OPENAI


class ComprehensiveAnalyzeRequest(BaseModel):
    """POST /api/analyze/comprehensive request body."""

    text: str = Field(..., min_length=1)
    provider: ProviderName = ProviderName.OPENAI

    @field_validator("provider")
    @classmethod
    def validate_report_provider(cls, v: ProviderName) -> ProviderName:
        """DeepSeek has no long-form report binding."""
        if v == ProviderName.DEEPSEEK:
            raise ValueError("comprehensive reports support openai, anthropic or perplexity")
        return v


class CognitiveAnalysisResponse(BaseModel):
    """Short-form cognitive analysis."""

    intelligence_score: int
    characteristics: list[str]
    detailed_analysis: str
    strengths: list[str]
    tendencies: list[str]
    provider: ProviderName
    used_fallback: bool = False


class AnalyzeResponse(BaseModel):
    """POST /api/analyze response."""

    analysis_id: UUID | None = None
    analysis: CognitiveAnalysisResponse
    tokens_charged: int
    tokens_remaining: int


class ComprehensiveReportResponse(BaseModel):
    """Ten-section comprehensive report."""

    intelligence: str
    abstract_thinking: str
    originality: str
    reasoning_style: str
    ambiguity_handling: str
    metacognition: str
    thinking_type: str
    cognitive_complexity: str
    thinking_quality: str
    cognitive_archetype: str
    generated_by: str


class ComprehensiveAnalyzeResponse(BaseModel):
    """POST /api/analyze/comprehensive response."""

    analysis_id: UUID | None = None
    report_id: UUID | None = None
    report: ComprehensiveReportResponse
    tokens_charged: int
    tokens_remaining: int


class AnalysisRecordResponse(BaseModel):
    """Stored analysis request."""

    analysis_id: UUID
    analysis_type: AnalysisType
    provider: ProviderName
    text: str
    result: CognitiveAnalysisResponse | None = None
    created_at: str


class ReportRecordResponse(BaseModel):
    """Stored comprehensive report."""

    report_id: UUID
    analysis_id: UUID
    provider: ProviderName
    report: ComprehensiveReportResponse
    created_at: str


# ============================================================================
# Document Models
# ============================================================================


class DocumentUploadRequest(BaseModel):
    """POST /api/documents request body."""

    filename: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)


class DocumentResponse(BaseModel):
    """Stored document."""

    document_id: UUID
    filename: str
    word_count: int
    uploaded_at: str
    content: str | None = None


class DocumentUploadResponse(BaseModel):
    """POST /api/documents response."""

    document: DocumentResponse | None = None
    filename: str
    word_count: int
    tokens_charged: int
    persisted: bool


class DocumentListResponse(BaseModel):
    """GET /api/documents response."""

    documents: list[DocumentResponse]
    total_count: int


# ============================================================================
# Payment Models
# ============================================================================


class CreatePaymentIntentRequest(BaseModel):
    """POST /api/payments/intents request body."""

    amount_cents: int = Field(..., gt=0)
    tokens: int = Field(..., gt=0)


class PaymentIntentResponse(BaseModel):
    """POST /api/payments/intents response."""

    payment_id: UUID
    payment_intent_id: str
    client_secret: str | None
    amount_cents: int
    tokens: int
    status: PaymentStatus
    publishable_key: str | None = None


class PaymentConfirmResponse(BaseModel):
    """POST /api/payments/{intent_id}/confirm response."""

    payment_intent_id: str
    status: PaymentStatus
    tokens_credited: int
    token_balance: int


class WebhookResponse(BaseModel):
    """POST /api/payments/webhook response."""

    received: bool = True
    event_type: str | None = None


# ============================================================================
# Error / Health Models
# ============================================================================


class ErrorDetail(BaseModel):
    """Uniform error body."""

    error: str
    message: str


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    storage: str
    version: str
    timestamp: str
