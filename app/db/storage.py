"""
Storage Gateway - Persistence interface and its SQLAlchemy implementation.

NO DICTIONARIES - Every method returns immutable domain dataclasses.

Ownership rule: every per-user read or write takes (entity id, owner id).
A mismatch behaves exactly like a missing row (None / False), never an error.

Balance and usage mutations are compare-and-swap: the update only applies
when the stored value still equals the value the caller read, and the ledger
row is written in the same transaction.
"""

from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    AnalysisRequest,
    AnonymousSession,
    ComprehensiveReportRecord,
    Document,
    Payment,
    TokenUsage,
    User,
    utc_now,
)
from app.exceptions import UserAlreadyExistsError
from app.models.api import AnalysisType, EventType, PaymentStatus, ProviderName, UserRole
from app.models.domain import (
    AnalysisRequestData,
    AnonymousSessionData,
    DocumentData,
    LedgerEntry,
    PaymentData,
    ReportRecordData,
    UserData,
)


class Storage(Protocol):
    """Persistence operations used by the services."""

    # Users
    async def get_user(self, user_id: UUID) -> UserData | None: ...

    async def get_user_by_email(self, email: str) -> UserData | None: ...

    async def create_user(self, email: str, password_hash: str, role: UserRole) -> UserData: ...

    async def apply_user_balance_change(
        self,
        user_id: UUID,
        expected_balance: int,
        new_balance: int,
        event_type: EventType,
        tokens_used: int,
        description: str,
    ) -> LedgerEntry | None: ...

    # Anonymous sessions
    async def get_session(self, session_id: str) -> AnonymousSessionData | None: ...

    async def get_or_create_session(
        self, session_id: str, ip_address: str | None = None, user_agent: str | None = None
    ) -> AnonymousSessionData: ...

    async def touch_session(self, session_id: str) -> None: ...

    async def apply_session_usage_change(
        self,
        session_id: str,
        expected_used: int,
        new_used: int,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
    ) -> LedgerEntry | None: ...

    # Ledger
    async def append_ledger_entry(
        self,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
        user_id: UUID | None = None,
        session_id: str | None = None,
    ) -> LedgerEntry: ...

    async def list_user_ledger(self, user_id: UUID, limit: int = 100) -> list[LedgerEntry]: ...

    async def list_session_ledger(
        self, session_id: str, limit: int = 100
    ) -> list[LedgerEntry]: ...

    async def sum_user_ledger(self, user_id: UUID) -> int: ...

    async def sum_session_ledger(self, session_id: str) -> int: ...

    # Documents
    async def create_document(
        self, user_id: UUID, filename: str, content: str, word_count: int
    ) -> DocumentData: ...

    async def list_documents(self, user_id: UUID) -> list[DocumentData]: ...

    async def get_document(self, document_id: UUID, user_id: UUID) -> DocumentData | None: ...

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool: ...

    # Analyses and reports
    async def create_analysis_request(
        self, user_id: UUID, text: str, analysis_type: AnalysisType, provider: ProviderName
    ) -> AnalysisRequestData: ...

    async def update_analysis_result(
        self, analysis_id: UUID, user_id: UUID, result: str
    ) -> AnalysisRequestData | None: ...

    async def get_analysis_request(
        self, analysis_id: UUID, user_id: UUID
    ) -> AnalysisRequestData | None: ...

    async def list_analysis_requests(self, user_id: UUID) -> list[AnalysisRequestData]: ...

    async def create_report(
        self,
        user_id: UUID,
        analysis_id: UUID,
        provider: ProviderName,
        report_data: str,
        report_type: str = "comprehensive",
    ) -> ReportRecordData: ...

    async def get_report(self, report_id: UUID, user_id: UUID) -> ReportRecordData | None: ...

    async def list_reports(self, user_id: UUID) -> list[ReportRecordData]: ...

    # Payments
    async def create_payment(
        self, user_id: UUID, payment_intent_id: str, amount_cents: int, tokens_purchased: int
    ) -> PaymentData: ...

    async def get_payment_by_intent(self, payment_intent_id: str) -> PaymentData | None: ...

    async def compare_and_set_payment_status(
        self, payment_intent_id: str, expected: PaymentStatus, new: PaymentStatus
    ) -> bool: ...


# ============================================================================
# ORM -> domain conversion
# ============================================================================


def _user_to_data(user: User) -> UserData:
    return UserData(
        user_id=user.id,
        email=user.email,
        password_hash=user.password_hash,
        token_balance=user.token_balance,
        role=UserRole(user.role),
        created_at=user.created_at,
    )


def _session_to_data(row: AnonymousSession) -> AnonymousSessionData:
    return AnonymousSessionData(
        id=row.id,
        session_id=row.session_id,
        tokens_used=row.tokens_used,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
        last_activity=row.last_activity,
    )


def _usage_to_entry(row: TokenUsage) -> LedgerEntry:
    return LedgerEntry(
        entry_id=row.id,
        user_id=row.user_id,
        session_id=row.session_id,
        event_type=EventType(row.event_type),
        tokens_used=row.tokens_used,
        tokens_remaining=row.tokens_remaining,
        description=row.description,
        created_at=row.created_at,
    )


def _document_to_data(row: Document) -> DocumentData:
    return DocumentData(
        document_id=row.id,
        user_id=row.user_id,
        filename=row.filename,
        content=row.content,
        word_count=row.word_count,
        uploaded_at=row.uploaded_at,
    )


def _analysis_to_data(row: AnalysisRequest) -> AnalysisRequestData:
    return AnalysisRequestData(
        analysis_id=row.id,
        user_id=row.user_id,
        text=row.text,
        analysis_type=AnalysisType(row.analysis_type),
        provider=ProviderName(row.provider),
        result=row.result,
        created_at=row.created_at,
    )


def _report_to_data(row: ComprehensiveReportRecord) -> ReportRecordData:
    return ReportRecordData(
        report_id=row.id,
        user_id=row.user_id,
        analysis_id=row.analysis_request_id,
        report_type=row.report_type,
        provider=ProviderName(row.provider),
        report_data=row.report_data,
        created_at=row.created_at,
    )


def _payment_to_data(row: Payment) -> PaymentData:
    return PaymentData(
        payment_id=row.id,
        user_id=row.user_id,
        stripe_payment_intent_id=row.stripe_payment_intent_id,
        amount_cents=row.amount_cents,
        tokens_purchased=row.tokens_purchased,
        status=PaymentStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SQLStorage:
    """
    Storage backed by PostgreSQL through an async SQLAlchemy session.

    Each write method commits its own transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ========================================================================
    # Users
    # ========================================================================

    async def get_user(self, user_id: UUID) -> UserData | None:
        user = await self.session.get(User, user_id, populate_existing=True)
        return _user_to_data(user) if user else None

    async def get_user_by_email(self, email: str) -> UserData | None:
        result = await self.session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        return _user_to_data(user) if user else None

    async def create_user(self, email: str, password_hash: str, role: UserRole) -> UserData:
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            token_balance=0,
            role=role.value,
            created_at=utc_now(),
        )
        self.session.add(user)
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise UserAlreadyExistsError(email) from e
        return _user_to_data(user)

    async def apply_user_balance_change(
        self,
        user_id: UUID,
        expected_balance: int,
        new_balance: int,
        event_type: EventType,
        tokens_used: int,
        description: str,
    ) -> LedgerEntry | None:
        stmt = (
            update(User)
            .where(User.id == user_id, User.token_balance == expected_balance)
            .values(token_balance=new_balance, updated_at=utc_now())
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            await self.session.rollback()
            return None

        row = TokenUsage(
            user_id=user_id,
            session_id=None,
            event_type=event_type.value,
            tokens_used=tokens_used,
            tokens_remaining=new_balance,
            description=description,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _usage_to_entry(row)

    # ========================================================================
    # Anonymous sessions
    # ========================================================================

    async def _find_session(self, session_id: str) -> AnonymousSession | None:
        result = await self.session.execute(
            select(AnonymousSession)
            .where(AnonymousSession.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_session(self, session_id: str) -> AnonymousSessionData | None:
        row = await self._find_session(session_id)
        return _session_to_data(row) if row else None

    async def get_or_create_session(
        self, session_id: str, ip_address: str | None = None, user_agent: str | None = None
    ) -> AnonymousSessionData:
        existing = await self._find_session(session_id)
        if existing:
            return _session_to_data(existing)

        now = utc_now()
        row = AnonymousSession(
            session_id=session_id,
            tokens_used=0,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_activity=now,
        )
        self.session.add(row)
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError:
            # Created concurrently by another request
            await self.session.rollback()
            existing = await self._find_session(session_id)
            if existing is None:
                raise
            return _session_to_data(existing)
        return _session_to_data(row)

    async def touch_session(self, session_id: str) -> None:
        await self.session.execute(
            update(AnonymousSession)
            .where(AnonymousSession.session_id == session_id)
            .values(last_activity=utc_now())
        )
        await self.session.commit()

    async def apply_session_usage_change(
        self,
        session_id: str,
        expected_used: int,
        new_used: int,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
    ) -> LedgerEntry | None:
        stmt = (
            update(AnonymousSession)
            .where(
                AnonymousSession.session_id == session_id,
                AnonymousSession.tokens_used == expected_used,
            )
            .values(tokens_used=new_used, last_activity=utc_now())
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            await self.session.rollback()
            return None

        row = TokenUsage(
            user_id=None,
            session_id=session_id,
            event_type=event_type.value,
            tokens_used=tokens_used,
            tokens_remaining=tokens_remaining,
            description=description,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _usage_to_entry(row)

    # ========================================================================
    # Ledger
    # ========================================================================

    async def append_ledger_entry(
        self,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
        user_id: UUID | None = None,
        session_id: str | None = None,
    ) -> LedgerEntry:
        row = TokenUsage(
            user_id=user_id,
            session_id=session_id,
            event_type=event_type.value,
            tokens_used=tokens_used,
            tokens_remaining=tokens_remaining,
            description=description,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _usage_to_entry(row)

    async def list_user_ledger(self, user_id: UUID, limit: int = 100) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(TokenUsage)
            .where(TokenUsage.user_id == user_id)
            .order_by(TokenUsage.created_at.desc())
            .limit(limit)
        )
        return [_usage_to_entry(row) for row in result.scalars().all()]

    async def list_session_ledger(self, session_id: str, limit: int = 100) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(TokenUsage)
            .where(TokenUsage.session_id == session_id)
            .order_by(TokenUsage.created_at.desc())
            .limit(limit)
        )
        return [_usage_to_entry(row) for row in result.scalars().all()]

    async def sum_user_ledger(self, user_id: UUID) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(TokenUsage.tokens_used), 0)).where(
                TokenUsage.user_id == user_id
            )
        )
        return int(result.scalar_one())

    async def sum_session_ledger(self, session_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(TokenUsage.tokens_used), 0)).where(
                TokenUsage.session_id == session_id
            )
        )
        return int(result.scalar_one())

    # ========================================================================
    # Documents
    # ========================================================================

    async def create_document(
        self, user_id: UUID, filename: str, content: str, word_count: int
    ) -> DocumentData:
        row = Document(
            user_id=user_id,
            filename=filename,
            content=content,
            word_count=word_count,
            uploaded_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _document_to_data(row)

    async def list_documents(self, user_id: UUID) -> list[DocumentData]:
        result = await self.session.execute(
            select(Document)
            .where(Document.user_id == user_id)
            .order_by(Document.uploaded_at.desc())
        )
        return [_document_to_data(row) for row in result.scalars().all()]

    async def _owned_document(self, document_id: UUID, user_id: UUID) -> Document | None:
        result = await self.session.execute(
            select(Document).where(Document.id == document_id, Document.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_document(self, document_id: UUID, user_id: UUID) -> DocumentData | None:
        row = await self._owned_document(document_id, user_id)
        return _document_to_data(row) if row else None

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool:
        row = await self._owned_document(document_id, user_id)
        if row is None:
            return False
        await self.session.delete(row)
        await self.session.commit()
        return True

    # ========================================================================
    # Analyses and reports
    # ========================================================================

    async def create_analysis_request(
        self, user_id: UUID, text: str, analysis_type: AnalysisType, provider: ProviderName
    ) -> AnalysisRequestData:
        row = AnalysisRequest(
            user_id=user_id,
            text=text,
            analysis_type=analysis_type.value,
            provider=provider.value,
            result=None,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _analysis_to_data(row)

    async def _owned_analysis(self, analysis_id: UUID, user_id: UUID) -> AnalysisRequest | None:
        result = await self.session.execute(
            select(AnalysisRequest).where(
                AnalysisRequest.id == analysis_id, AnalysisRequest.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def update_analysis_result(
        self, analysis_id: UUID, user_id: UUID, result: str
    ) -> AnalysisRequestData | None:
        row = await self._owned_analysis(analysis_id, user_id)
        if row is None:
            return None
        row.result = result
        await self.session.flush()
        await self.session.commit()
        return _analysis_to_data(row)

    async def get_analysis_request(
        self, analysis_id: UUID, user_id: UUID
    ) -> AnalysisRequestData | None:
        row = await self._owned_analysis(analysis_id, user_id)
        return _analysis_to_data(row) if row else None

    async def list_analysis_requests(self, user_id: UUID) -> list[AnalysisRequestData]:
        result = await self.session.execute(
            select(AnalysisRequest)
            .where(AnalysisRequest.user_id == user_id)
            .order_by(AnalysisRequest.created_at.desc())
        )
        return [_analysis_to_data(row) for row in result.scalars().all()]

    async def create_report(
        self,
        user_id: UUID,
        analysis_id: UUID,
        provider: ProviderName,
        report_data: str,
        report_type: str = "comprehensive",
    ) -> ReportRecordData:
        row = ComprehensiveReportRecord(
            user_id=user_id,
            analysis_request_id=analysis_id,
            report_type=report_type,
            provider=provider.value,
            report_data=report_data,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _report_to_data(row)

    async def get_report(self, report_id: UUID, user_id: UUID) -> ReportRecordData | None:
        result = await self.session.execute(
            select(ComprehensiveReportRecord).where(
                ComprehensiveReportRecord.id == report_id,
                ComprehensiveReportRecord.user_id == user_id,
            )
        )
        row = result.scalar_one_or_none()
        return _report_to_data(row) if row else None

    async def list_reports(self, user_id: UUID) -> list[ReportRecordData]:
        result = await self.session.execute(
            select(ComprehensiveReportRecord)
            .where(ComprehensiveReportRecord.user_id == user_id)
            .order_by(ComprehensiveReportRecord.created_at.desc())
        )
        return [_report_to_data(row) for row in result.scalars().all()]

    # ========================================================================
    # Payments
    # ========================================================================

    async def create_payment(
        self, user_id: UUID, payment_intent_id: str, amount_cents: int, tokens_purchased: int
    ) -> PaymentData:
        now = utc_now()
        row = Payment(
            user_id=user_id,
            stripe_payment_intent_id=payment_intent_id,
            amount_cents=amount_cents,
            tokens_purchased=tokens_purchased,
            status=PaymentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.commit()
        return _payment_to_data(row)

    async def get_payment_by_intent(self, payment_intent_id: str) -> PaymentData | None:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.stripe_payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _payment_to_data(row) if row else None

    async def compare_and_set_payment_status(
        self, payment_intent_id: str, expected: PaymentStatus, new: PaymentStatus
    ) -> bool:
        result = await self.session.execute(
            update(Payment)
            .where(
                Payment.stripe_payment_intent_id == payment_intent_id,
                Payment.status == expected.value,
            )
            .values(status=new.value, updated_at=utc_now())
        )
        await self.session.commit()
        return result.rowcount == 1
