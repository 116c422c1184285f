"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    Registered users own a token balance. The role column is the sole
    authority for admin treatment.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    token_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_users_balance_non_negative"),
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
        Index("idx_users_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, balance={self.token_balance})>"


class AnonymousSession(Base):
    """ORM model for anonymous_sessions table. One row per free-tier visitor."""

    __tablename__ = "anonymous_sessions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("tokens_used >= 0", name="ck_sessions_tokens_used_non_negative"),
        Index("idx_anonymous_sessions_session_id", "session_id"),
    )

    def __repr__(self) -> str:
        return f"<AnonymousSession(session_id={self.session_id}, used={self.tokens_used})>"


class TokenUsage(Base):
    """
    ORM model for token_usage table (the ledger).

    Append-only. tokens_used is signed: positive debits, negative credits.
    """

    __tablename__ = "token_usage"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    tokens_used: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tokens_remaining: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (session_id IS NULL)", name="ck_token_usage_single_owner"
        ),
        CheckConstraint(
            "event_type IN ('analysis', 'upload', 'purchase', 'adjustment')",
            name="ck_token_usage_event_type",
        ),
        Index("idx_token_usage_user_created", "user_id", "created_at"),
        Index("idx_token_usage_session_created", "session_id", "created_at"),
    )


class Document(Base):
    """ORM model for documents table."""

    __tablename__ = "documents"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_documents_user_uploaded", "user_id", "uploaded_at"),)


class AnalysisRequest(Base):
    """ORM model for analysis_requests table. result holds JSON text once complete."""

    __tablename__ = "analysis_requests"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    analysis_type: Mapped[str] = mapped_column(String(20), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "analysis_type IN ('cognitive', 'comprehensive')",
            name="ck_analysis_requests_type",
        ),
        Index("idx_analysis_requests_user_created", "user_id", "created_at"),
    )


class ComprehensiveReportRecord(Base):
    """ORM model for comprehensive_reports table. report_data is JSON text."""

    __tablename__ = "comprehensive_reports"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    analysis_request_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("analysis_requests.id"), nullable=False
    )
    report_type: Mapped[str] = mapped_column(String(50), nullable=False, default="comprehensive")
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    report_data: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_comprehensive_reports_user_created", "user_id", "created_at"),)


class Payment(Base):
    """
    ORM model for payments table.

    One row per Stripe PaymentIntent. Status moves pending -> succeeded | failed.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    stripe_payment_intent_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tokens_purchased: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        CheckConstraint("tokens_purchased > 0", name="ck_payments_tokens_positive"),
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed')", name="ck_payments_status"
        ),
        Index("idx_payments_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(intent={self.stripe_payment_intent_id}, status={self.status}, "
            f"tokens={self.tokens_purchased})>"
        )
