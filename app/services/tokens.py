"""
Token Service - Token accounting engine.

NO DICTIONARIES - All operations use strongly typed domain models.

Two kinds of actor are metered:
- anonymous sessions draw down a fixed lifetime free allowance (tokens_used grows)
- registered users spend a purchased balance (token_balance shrinks)

Every balance or usage change is a compare-and-swap against the value that
was read, written together with its ledger row. A lost race re-reads and
retries a bounded number of times before raising ConcurrencyError.

Ledger rows carry the signed delta actually applied, so for every user
token_balance == -sum(tokens_used) and for every session
tokens_used == sum(tokens_used).
"""

import math
from uuid import UUID

from app.config import Settings, settings
from app.db.storage import Storage
from app.exceptions import ConcurrencyError, InsufficientTokensError, UserNotFoundError
from app.models.api import EventType, LimitType
from app.models.domain import (
    AnonymousSessionData,
    BalanceDecision,
    FreeLimitDecision,
    LedgerEntry,
    PricingTier,
    UploadPermission,
    UserData,
)
from app.observability.logging import get_logger
from app.observability.metrics import metrics

logger = get_logger(__name__)

FREE_PARTIAL_MESSAGE = "🔒 Full results available with upgrade. [Register & Unlock Full Access]"
FREE_EXHAUSTED_MESSAGE = "🔒 You've reached the free usage limit. [Register & Unlock Full Access]"
CREDITS_EXHAUSTED_MESSAGE = "🔒 You've used all your credits. [Buy More Credits]"
USER_NOT_FOUND_MESSAGE = "User not found"
NO_SESSION_MESSAGE = "No valid session"

PRICING_TIERS: tuple[PricingTier, ...] = (
    PricingTier(amount_cents=100, tokens=2_000, description="$1 → 2,000 tokens"),
    PricingTier(
        amount_cents=1_000, tokens=30_000, description="$10 → 30,000 tokens", popular=True
    ),
    PricingTier(amount_cents=10_000, tokens=600_000, description="$100 → 600,000 tokens"),
    PricingTier(
        amount_cents=100_000, tokens=10_000_000, description="$1,000 → 10,000,000 tokens"
    ),
)

ACTOR_REGISTERED = "registered"
ACTOR_ANONYMOUS = "anonymous"


def get_pricing_tier(amount_cents: int, tokens: int) -> PricingTier | None:
    """Return the tier matching the exact (amount, tokens) pair, if any."""
    for tier in PRICING_TIERS:
        if tier.amount_cents == amount_cents and tier.tokens == tokens:
            return tier
    return None


def count_words(text: str) -> int:
    """Whitespace-separated word count."""
    return len(text.split())


class TokenService:
    """Meters anonymous free allowances and registered balances."""

    def __init__(self, storage: Storage, config: Settings = settings) -> None:
        self.storage = storage
        self.config = config

    # ========================================================================
    # Pure calculations
    # ========================================================================

    def estimate_tokens(self, text: str) -> int:
        """Approximate token count: ceil(chars / chars_per_token). Empty text is 0."""
        return math.ceil(len(text) / self.config.chars_per_token)

    def calculate_upload_cost(self, word_count: int) -> int:
        """Base upload cost with the minimum floor applied."""
        cost = math.ceil(word_count / 100) * self.config.upload_cost_per_100_words
        return max(cost, self.config.min_upload_cost)

    def calculate_free_upload_cost(self, word_count: int) -> int:
        return min(self.calculate_upload_cost(word_count), self.config.max_free_upload_cost)

    def calculate_registered_upload_cost(self, word_count: int) -> int:
        return min(self.calculate_upload_cost(word_count), self.config.max_upload_cost)

    # ========================================================================
    # Checks (never mutate except the admin self-heal)
    # ========================================================================

    async def check_free_user_limits(
        self, session_id: str, input_tokens: int, output_tokens: int = 0
    ) -> FreeLimitDecision:
        """
        Decide whether an anonymous call may proceed.

        Denies when the call alone exceeds the per-call input or output cap,
        or when it would push lifetime usage over the free allowance.
        """
        session = await self.storage.get_session(session_id)
        used = session.tokens_used if session else 0

        limit_type: LimitType | None = None
        message: str | None = None
        if input_tokens > self.config.free_input_limit:
            limit_type, message = LimitType.INPUT, FREE_PARTIAL_MESSAGE
        elif output_tokens > self.config.free_output_limit:
            limit_type, message = LimitType.OUTPUT, FREE_PARTIAL_MESSAGE
        elif (
            used >= self.config.free_token_limit
            or used + input_tokens + output_tokens > self.config.free_token_limit
        ):
            limit_type, message = LimitType.TOTAL, FREE_EXHAUSTED_MESSAGE

        if limit_type is not None:
            metrics.record_limit_denial(ACTOR_ANONYMOUS, limit_type.value)
            logger.info(
                "free_limit_denied",
                session_id=session_id,
                limit_type=limit_type.value,
                tokens_used=used,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )
            return FreeLimitDecision(
                can_proceed=False, tokens_used=used, message=message, limit_type=limit_type
            )

        return FreeLimitDecision(can_proceed=True, tokens_used=used)

    async def check_registered_user_tokens(
        self, user_id: UUID, required_tokens: int
    ) -> BalanceDecision:
        """Decide whether a registered user can afford required_tokens."""
        user = await self.storage.get_user(user_id)
        if user is None:
            return BalanceDecision(
                can_proceed=False, current_balance=0, message=USER_NOT_FOUND_MESSAGE
            )

        if user.is_admin:
            user = await self.pin_admin_balance(user)
            return BalanceDecision(can_proceed=True, current_balance=user.token_balance)

        if user.token_balance < required_tokens:
            metrics.record_limit_denial(ACTOR_REGISTERED, "balance")
            logger.info(
                "registered_balance_insufficient",
                user_id=str(user_id),
                balance=user.token_balance,
                required=required_tokens,
            )
            return BalanceDecision(
                can_proceed=False,
                current_balance=user.token_balance,
                message=CREDITS_EXHAUSTED_MESSAGE,
            )

        return BalanceDecision(can_proceed=True, current_balance=user.token_balance)

    async def can_user_upload_files(
        self, user_id: UUID | None, session_id: str | None
    ) -> UploadPermission:
        """Registered users may always upload; anonymous sessions until the allowance is spent."""
        if user_id is not None:
            return UploadPermission(can_upload=True)

        if session_id:
            session = await self.storage.get_session(session_id)
            used = session.tokens_used if session else 0
            if used >= self.config.free_token_limit:
                return UploadPermission(can_upload=False, message=FREE_EXHAUSTED_MESSAGE)
            return UploadPermission(can_upload=True)

        return UploadPermission(can_upload=False, message=NO_SESSION_MESSAGE)

    # ========================================================================
    # Mutations
    # ========================================================================

    async def pin_admin_balance(self, user: UserData) -> UserData:
        """
        Hold an admin balance at the unlimited sentinel.

        Any drift is corrected with an ADJUSTMENT ledger row so the ledger
        still projects the stored balance.
        """
        target = self.config.unlimited_balance
        for _ in range(self.config.token_cas_retries):
            if user.token_balance == target:
                return user
            delta = target - user.token_balance
            entry = await self.storage.apply_user_balance_change(
                user.user_id,
                expected_balance=user.token_balance,
                new_balance=target,
                event_type=EventType.ADJUSTMENT,
                tokens_used=-delta,
                description="Admin balance pinned to unlimited",
            )
            if entry is not None:
                logger.info(
                    "admin_balance_pinned",
                    user_id=str(user.user_id),
                    previous_balance=user.token_balance,
                )
                refreshed = await self.storage.get_user(user.user_id)
                if refreshed is None:
                    raise UserNotFoundError(user.user_id)
                return refreshed
            metrics.record_balance_conflict(ACTOR_REGISTERED)
            reread = await self.storage.get_user(user.user_id)
            if reread is None:
                raise UserNotFoundError(user.user_id)
            user = reread
        if user.token_balance == target:
            return user
        raise ConcurrencyError(f"user:{user.user_id}", self.config.token_cas_retries)

    async def deduct_free_user_tokens(
        self,
        session_id: str,
        tokens: int | float,
        description: str = "",
        event_type: EventType = EventType.ANALYSIS,
    ) -> LedgerEntry:
        """Record anonymous usage. The session is created if it does not exist yet."""
        amount = math.ceil(tokens)
        if amount < 0:
            raise ValueError(f"Token amount cannot be negative: {amount}")

        session: AnonymousSessionData | None = await self.storage.get_or_create_session(
            session_id
        )
        for _ in range(self.config.token_cas_retries):
            if session is None:
                session = await self.storage.get_or_create_session(session_id)
            new_used = session.tokens_used + amount
            remaining = max(0, self.config.free_token_limit - new_used)
            entry = await self.storage.apply_session_usage_change(
                session_id,
                expected_used=session.tokens_used,
                new_used=new_used,
                event_type=event_type,
                tokens_used=amount,
                tokens_remaining=remaining,
                description=description or f"Used {amount} tokens",
            )
            if entry is not None:
                metrics.record_debit(ACTOR_ANONYMOUS, event_type.value, amount)
                logger.info(
                    "free_tokens_deducted",
                    session_id=session_id,
                    tokens=amount,
                    tokens_used=new_used,
                    event_type=event_type.value,
                )
                return entry
            metrics.record_balance_conflict(ACTOR_ANONYMOUS)
            session = await self.storage.get_session(session_id)

        raise ConcurrencyError(f"session:{session_id}", self.config.token_cas_retries)

    async def deduct_registered_user_tokens(
        self,
        user_id: UUID,
        tokens: int | float,
        event_type: EventType = EventType.ANALYSIS,
        description: str = "",
    ) -> LedgerEntry:
        """
        Debit a registered balance.

        Admins are never debited; the usage is still recorded with a zero delta.

        Raises:
            UserNotFoundError: User doesn't exist
            InsufficientTokensError: Balance is lower than the debit
            ConcurrencyError: Conditional update kept losing
        """
        amount = math.ceil(tokens)
        if amount < 0:
            raise ValueError(f"Token amount cannot be negative: {amount}")
        description = description or f"Used {amount} tokens"

        user = await self.storage.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if user.is_admin:
            user = await self.pin_admin_balance(user)
            entry = await self.storage.append_ledger_entry(
                event_type=event_type,
                tokens_used=0,
                tokens_remaining=user.token_balance,
                description=f"{description} (admin - no deduction, {amount} tokens waived)",
                user_id=user_id,
            )
            logger.info("admin_usage_recorded", user_id=str(user_id), tokens=amount)
            return entry

        for _ in range(self.config.token_cas_retries):
            if user.token_balance < amount:
                raise InsufficientTokensError(user.token_balance, amount)
            entry = await self.storage.apply_user_balance_change(
                user_id,
                expected_balance=user.token_balance,
                new_balance=user.token_balance - amount,
                event_type=event_type,
                tokens_used=amount,
                description=description,
            )
            if entry is not None:
                metrics.record_debit(ACTOR_REGISTERED, event_type.value, amount)
                logger.info(
                    "registered_tokens_deducted",
                    user_id=str(user_id),
                    tokens=amount,
                    balance_after=entry.tokens_remaining,
                    event_type=event_type.value,
                )
                return entry
            metrics.record_balance_conflict(ACTOR_REGISTERED)
            reread = await self.storage.get_user(user_id)
            if reread is None:
                raise UserNotFoundError(user_id)
            user = reread

        raise ConcurrencyError(f"user:{user_id}", self.config.token_cas_retries)

    async def add_tokens_to_user(
        self,
        user_id: UUID,
        amount: int,
        description: str = "",
        event_type: EventType = EventType.PURCHASE,
    ) -> LedgerEntry:
        """
        Credit a registered balance. The ledger records the credit as a negative delta.

        Raises:
            UserNotFoundError: User doesn't exist
            ConcurrencyError: Conditional update kept losing
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive: {amount}")
        description = description or f"Purchased {amount} tokens"

        user = await self.storage.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if user.is_admin:
            user = await self.pin_admin_balance(user)
            return await self.storage.append_ledger_entry(
                event_type=event_type,
                tokens_used=0,
                tokens_remaining=user.token_balance,
                description=f"{description} (admin - balance unlimited)",
                user_id=user_id,
            )

        for _ in range(self.config.token_cas_retries):
            entry = await self.storage.apply_user_balance_change(
                user_id,
                expected_balance=user.token_balance,
                new_balance=user.token_balance + amount,
                event_type=event_type,
                tokens_used=-amount,
                description=description,
            )
            if entry is not None:
                metrics.record_credit(event_type.value, amount)
                logger.info(
                    "tokens_added_to_user",
                    user_id=str(user_id),
                    tokens=amount,
                    balance_after=entry.tokens_remaining,
                )
                return entry
            metrics.record_balance_conflict(ACTOR_REGISTERED)
            reread = await self.storage.get_user(user_id)
            if reread is None:
                raise UserNotFoundError(user_id)
            user = reread

        raise ConcurrencyError(f"user:{user_id}", self.config.token_cas_retries)

    # ========================================================================
    # History and projections
    # ========================================================================

    async def get_user_token_history(self, user_id: UUID, limit: int = 50) -> list[LedgerEntry]:
        return await self.storage.list_user_ledger(user_id, limit)

    async def get_session_token_history(
        self, session_id: str, limit: int = 50
    ) -> list[LedgerEntry]:
        return await self.storage.list_session_ledger(session_id, limit)

    async def project_user_balance(self, user_id: UUID) -> int:
        """Balance derived from the ledger alone."""
        return -(await self.storage.sum_user_ledger(user_id))

    async def project_session_usage(self, session_id: str) -> int:
        """Usage derived from the ledger alone."""
        return await self.storage.sum_session_ledger(session_id)

    def get_pricing_tiers(self) -> tuple[PricingTier, ...]:
        return PRICING_TIERS
