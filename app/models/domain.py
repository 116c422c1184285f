"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from app.models.api import (
    AnalysisType,
    EventType,
    LimitType,
    PaymentStatus,
    ProviderName,
    UserRole,
)


@dataclass(frozen=True)
class UserData:
    """Immutable registered user snapshot."""

    user_id: UUID
    email: str
    password_hash: str
    token_balance: int
    role: UserRole
    created_at: datetime

    def __post_init__(self) -> None:
        if self.token_balance < 0:
            raise ValueError(f"Token balance cannot be negative: {self.token_balance}")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class AnonymousSessionData:
    """Immutable anonymous session snapshot."""

    id: UUID
    session_id: str
    tokens_used: int
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    last_activity: datetime

    def __post_init__(self) -> None:
        if self.tokens_used < 0:
            raise ValueError(f"tokens_used cannot be negative: {self.tokens_used}")


@dataclass(frozen=True)
class LedgerEntry:
    """
    Append-only token ledger row.

    tokens_used is the signed delta actually applied: positive for debits,
    negative for credits. Exactly one of user_id / session_id is set.
    """

    entry_id: UUID
    user_id: UUID | None
    session_id: str | None
    event_type: EventType
    tokens_used: int
    tokens_remaining: int
    description: str
    created_at: datetime

    def __post_init__(self) -> None:
        if (self.user_id is None) == (self.session_id is None):
            raise ValueError("Ledger entry must belong to exactly one of user or session")


@dataclass(frozen=True)
class FreeLimitDecision:
    """Outcome of a free-tier limit check. Denials are data, not errors."""

    can_proceed: bool
    tokens_used: int
    message: str | None = None
    limit_type: LimitType | None = None


@dataclass(frozen=True)
class BalanceDecision:
    """Outcome of a registered-user balance check."""

    can_proceed: bool
    current_balance: int
    message: str | None = None


@dataclass(frozen=True)
class UploadPermission:
    """Whether the caller may upload documents."""

    can_upload: bool
    message: str | None = None


@dataclass(frozen=True)
class PricingTier:
    """Purchasable token bundle."""

    amount_cents: int
    tokens: int
    description: str
    popular: bool = False

    def __post_init__(self) -> None:
        if self.amount_cents <= 0 or self.tokens <= 0:
            raise ValueError("Pricing tier amounts must be positive")


@dataclass(frozen=True)
class CognitiveAnalysis:
    """Normalized short-form analysis."""

    intelligence_score: int
    characteristics: list[str]
    detailed_analysis: str
    strengths: list[str]
    tendencies: list[str]
    provider: ProviderName
    used_fallback: bool = False


@dataclass(frozen=True)
class ComprehensiveReport:
    """Ten-section long-form report. Every field is always populated."""

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


@dataclass(frozen=True)
class DocumentData:
    """Stored document snapshot."""

    document_id: UUID
    user_id: UUID
    filename: str
    content: str
    word_count: int
    uploaded_at: datetime


@dataclass(frozen=True)
class AnalysisRequestData:
    """Stored analysis request snapshot. result is JSON text once complete."""

    analysis_id: UUID
    user_id: UUID
    text: str
    analysis_type: AnalysisType
    provider: ProviderName
    result: str | None
    created_at: datetime


@dataclass(frozen=True)
class ReportRecordData:
    """Stored comprehensive report snapshot. report_data is JSON text."""

    report_id: UUID
    user_id: UUID
    analysis_id: UUID
    report_type: str
    provider: ProviderName
    report_data: str
    created_at: datetime


@dataclass(frozen=True)
class PaymentData:
    """Stored payment snapshot."""

    payment_id: UUID
    user_id: UUID
    stripe_payment_intent_id: str
    amount_cents: int
    tokens_purchased: int
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ChargeIntentResult:
    """Payment intent handed back to the client."""

    payment: PaymentData
    client_secret: str | None


@dataclass(frozen=True)
class ConfirmResult:
    """Outcome of confirming a payment."""

    payment: PaymentData
    tokens_credited: int
    token_balance: int


@dataclass(frozen=True)
class Actor:
    """
    Caller identity resolved per request.

    A registered caller carries a user; anonymous callers carry a session token.
    """

    session_id: str | None = None
    user: UserData | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    new_session: bool = False

    @property
    def is_registered(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> UUID | None:
        return self.user.user_id if self.user else None
