"""
In-memory Storage - used when no DATABASE_URL is configured.

Implements the same contract as SQLStorage. Methods never await between
reading and writing shared state, so each call is atomic on the event loop.
Contents are lost on restart.
"""

from dataclasses import replace
from uuid import UUID, uuid4

from app.db.models import utc_now
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


class MemoryStorage:
    """Dictionary-backed storage for development and tests."""

    def __init__(self) -> None:
        self._users: dict[UUID, UserData] = {}
        self._sessions: dict[str, AnonymousSessionData] = {}
        self._ledger: list[LedgerEntry] = []
        self._documents: dict[UUID, DocumentData] = {}
        self._analyses: dict[UUID, AnalysisRequestData] = {}
        self._reports: dict[UUID, ReportRecordData] = {}
        self._payments: dict[str, PaymentData] = {}

    # ========================================================================
    # Users
    # ========================================================================

    async def get_user(self, user_id: UUID) -> UserData | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> UserData | None:
        email = email.lower()
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def create_user(self, email: str, password_hash: str, role: UserRole) -> UserData:
        if await self.get_user_by_email(email):
            raise UserAlreadyExistsError(email)
        user = UserData(
            user_id=uuid4(),
            email=email.lower(),
            password_hash=password_hash,
            token_balance=0,
            role=role,
            created_at=utc_now(),
        )
        self._users[user.user_id] = user
        return user

    async def apply_user_balance_change(
        self,
        user_id: UUID,
        expected_balance: int,
        new_balance: int,
        event_type: EventType,
        tokens_used: int,
        description: str,
    ) -> LedgerEntry | None:
        user = self._users.get(user_id)
        if user is None or user.token_balance != expected_balance:
            return None
        self._users[user_id] = replace(user, token_balance=new_balance)
        return self._append(
            event_type, tokens_used, new_balance, description, user_id=user_id
        )

    # ========================================================================
    # Anonymous sessions
    # ========================================================================

    async def get_session(self, session_id: str) -> AnonymousSessionData | None:
        return self._sessions.get(session_id)

    async def get_or_create_session(
        self, session_id: str, ip_address: str | None = None, user_agent: str | None = None
    ) -> AnonymousSessionData:
        existing = self._sessions.get(session_id)
        if existing:
            return existing
        now = utc_now()
        row = AnonymousSessionData(
            id=uuid4(),
            session_id=session_id,
            tokens_used=0,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_activity=now,
        )
        self._sessions[session_id] = row
        return row

    async def touch_session(self, session_id: str) -> None:
        row = self._sessions.get(session_id)
        if row:
            self._sessions[session_id] = replace(row, last_activity=utc_now())

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
        row = self._sessions.get(session_id)
        if row is None or row.tokens_used != expected_used:
            return None
        self._sessions[session_id] = replace(
            row, tokens_used=new_used, last_activity=utc_now()
        )
        return self._append(
            event_type, tokens_used, tokens_remaining, description, session_id=session_id
        )

    # ========================================================================
    # Ledger
    # ========================================================================

    def _append(
        self,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
        user_id: UUID | None = None,
        session_id: str | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            entry_id=uuid4(),
            user_id=user_id,
            session_id=session_id,
            event_type=event_type,
            tokens_used=tokens_used,
            tokens_remaining=tokens_remaining,
            description=description,
            created_at=utc_now(),
        )
        self._ledger.append(entry)
        return entry

    async def append_ledger_entry(
        self,
        event_type: EventType,
        tokens_used: int,
        tokens_remaining: int,
        description: str,
        user_id: UUID | None = None,
        session_id: str | None = None,
    ) -> LedgerEntry:
        return self._append(
            event_type, tokens_used, tokens_remaining, description, user_id, session_id
        )

    async def list_user_ledger(self, user_id: UUID, limit: int = 100) -> list[LedgerEntry]:
        rows = [e for e in reversed(self._ledger) if e.user_id == user_id]
        return rows[:limit]

    async def list_session_ledger(self, session_id: str, limit: int = 100) -> list[LedgerEntry]:
        rows = [e for e in reversed(self._ledger) if e.session_id == session_id]
        return rows[:limit]

    async def sum_user_ledger(self, user_id: UUID) -> int:
        return sum(e.tokens_used for e in self._ledger if e.user_id == user_id)

    async def sum_session_ledger(self, session_id: str) -> int:
        return sum(e.tokens_used for e in self._ledger if e.session_id == session_id)

    # ========================================================================
    # Documents
    # ========================================================================

    async def create_document(
        self, user_id: UUID, filename: str, content: str, word_count: int
    ) -> DocumentData:
        doc = DocumentData(
            document_id=uuid4(),
            user_id=user_id,
            filename=filename,
            content=content,
            word_count=word_count,
            uploaded_at=utc_now(),
        )
        self._documents[doc.document_id] = doc
        return doc

    async def list_documents(self, user_id: UUID) -> list[DocumentData]:
        docs = [d for d in self._documents.values() if d.user_id == user_id]
        return sorted(docs, key=lambda d: d.uploaded_at, reverse=True)

    async def get_document(self, document_id: UUID, user_id: UUID) -> DocumentData | None:
        doc = self._documents.get(document_id)
        return doc if doc and doc.user_id == user_id else None

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool:
        if await self.get_document(document_id, user_id) is None:
            return False
        del self._documents[document_id]
        return True

    # ========================================================================
    # Analyses and reports
    # ========================================================================

    async def create_analysis_request(
        self, user_id: UUID, text: str, analysis_type: AnalysisType, provider: ProviderName
    ) -> AnalysisRequestData:
        row = AnalysisRequestData(
            analysis_id=uuid4(),
            user_id=user_id,
            text=text,
            analysis_type=analysis_type,
            provider=provider,
            result=None,
            created_at=utc_now(),
        )
        self._analyses[row.analysis_id] = row
        return row

    async def update_analysis_result(
        self, analysis_id: UUID, user_id: UUID, result: str
    ) -> AnalysisRequestData | None:
        row = await self.get_analysis_request(analysis_id, user_id)
        if row is None:
            return None
        updated = replace(row, result=result)
        self._analyses[analysis_id] = updated
        return updated

    async def get_analysis_request(
        self, analysis_id: UUID, user_id: UUID
    ) -> AnalysisRequestData | None:
        row = self._analyses.get(analysis_id)
        return row if row and row.user_id == user_id else None

    async def list_analysis_requests(self, user_id: UUID) -> list[AnalysisRequestData]:
        rows = [a for a in self._analyses.values() if a.user_id == user_id]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def create_report(
        self,
        user_id: UUID,
        analysis_id: UUID,
        provider: ProviderName,
        report_data: str,
        report_type: str = "comprehensive",
    ) -> ReportRecordData:
        row = ReportRecordData(
            report_id=uuid4(),
            user_id=user_id,
            analysis_id=analysis_id,
            report_type=report_type,
            provider=provider,
            report_data=report_data,
            created_at=utc_now(),
        )
        self._reports[row.report_id] = row
        return row

    async def get_report(self, report_id: UUID, user_id: UUID) -> ReportRecordData | None:
        row = self._reports.get(report_id)
        return row if row and row.user_id == user_id else None

    async def list_reports(self, user_id: UUID) -> list[ReportRecordData]:
        rows = [r for r in self._reports.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    # ========================================================================
    # Payments
    # ========================================================================

    async def create_payment(
        self, user_id: UUID, payment_intent_id: str, amount_cents: int, tokens_purchased: int
    ) -> PaymentData:
        now = utc_now()
        row = PaymentData(
            payment_id=uuid4(),
            user_id=user_id,
            stripe_payment_intent_id=payment_intent_id,
            amount_cents=amount_cents,
            tokens_purchased=tokens_purchased,
            status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._payments[payment_intent_id] = row
        return row

    async def get_payment_by_intent(self, payment_intent_id: str) -> PaymentData | None:
        return self._payments.get(payment_intent_id)

    async def compare_and_set_payment_status(
        self, payment_intent_id: str, expected: PaymentStatus, new: PaymentStatus
    ) -> bool:
        row = self._payments.get(payment_intent_id)
        if row is None or row.status != expected:
            return False
        self._payments[payment_intent_id] = replace(row, status=new, updated_at=utc_now())
        return True
