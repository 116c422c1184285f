"""
Payment Service - Stripe charges for token packs.

NO DICTIONARIES - All operations use strongly typed domain models.

A Payment row moves pending -> succeeded at most once. The move is a
conditional update, and only the caller that wins it credits the tokens, so
client confirmation and the webhook can race without double-crediting.
"""

from uuid import UUID

from app.config import Settings, settings
from app.db.storage import Storage
from app.exceptions import (
    InvalidPricingTierError,
    PaymentNotFoundError,
    ProviderConfigurationError,
)
from app.models.api import EventType, PaymentStatus
from app.models.domain import ChargeIntentResult, ConfirmResult, PaymentData
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.payment_provider import PaymentIntent, PaymentProvider, WebhookEvent
from app.services.stripe_provider import StripeProvider
from app.services.tokens import TokenService, get_pricing_tier

logger = get_logger(__name__)

STRIPE_SUCCEEDED = "succeeded"
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"


def build_payment_provider(config: Settings = settings) -> PaymentProvider:
    """
    Raises:
        ProviderConfigurationError: Stripe is not configured
    """
    if not config.stripe_api_key:
        raise ProviderConfigurationError("stripe")
    return StripeProvider(config.stripe_api_key, config.stripe_webhook_secret)


class PaymentService:
    """Creates charge intents and credits tokens once a charge settles."""

    def __init__(
        self, storage: Storage, tokens: TokenService, provider: PaymentProvider
    ) -> None:
        self.storage = storage
        self.tokens = tokens
        self.provider = provider

    async def create_charge_intent(
        self, amount_cents: int, token_count: int, user_id: UUID
    ) -> ChargeIntentResult:
        """
        Create a provider intent for a pricing tier and record it as pending.

        Raises:
            InvalidPricingTierError: (amount, tokens) is not a known tier
            PaymentProviderError: Provider call failed
        """
        tier = get_pricing_tier(amount_cents, token_count)
        if tier is None:
            logger.warning(
                "invalid_pricing_tier",
                user_id=str(user_id),
                amount_cents=amount_cents,
                tokens=token_count,
            )
            raise InvalidPricingTierError(amount_cents, token_count)

        result = await self.provider.create_payment_intent(
            PaymentIntent(
                amount_minor=tier.amount_cents,
                currency="usd",
                description=tier.description,
                metadata_user_id=str(user_id),
                metadata_tokens=tier.tokens,
            )
        )

        payment = await self.storage.create_payment(
            user_id, result.payment_id, tier.amount_cents, tier.tokens
        )
        metrics.record_payment(PaymentStatus.PENDING.value, tier.amount_cents)
        logger.info(
            "charge_intent_created",
            user_id=str(user_id),
            payment_intent_id=result.payment_id,
            amount_cents=tier.amount_cents,
            tokens=tier.tokens,
        )
        return ChargeIntentResult(payment=payment, client_secret=result.client_secret or None)

    async def handle_confirmed_charge(
        self, payment_intent_id: str, user_id: UUID | None = None
    ) -> ConfirmResult:
        """
        Credit a settled charge exactly once.

        When user_id is given the payment must belong to that user. Provider
        or crediting failures are not raised: a pending payment (or the one this
        call claimed) is marked failed, and a settled payment is left alone.

        Raises:
            PaymentNotFoundError: No local record (for this user)
        """
        payment = await self.storage.get_payment_by_intent(payment_intent_id)
        if payment is None or (user_id is not None and payment.user_id != user_id):
            raise PaymentNotFoundError(payment_intent_id)

        claimed = False
        try:
            result = await self.provider.get_payment_status(payment_intent_id)
            if result.status != STRIPE_SUCCEEDED or payment.status != PaymentStatus.PENDING:
                logger.info(
                    "charge_not_credited",
                    payment_intent_id=payment_intent_id,
                    provider_status=result.status,
                    local_status=payment.status.value,
                )
                return await self._unchanged(payment)

            claimed = await self.storage.compare_and_set_payment_status(
                payment_intent_id, PaymentStatus.PENDING, PaymentStatus.SUCCEEDED
            )
            if not claimed:
                logger.info("charge_already_claimed", payment_intent_id=payment_intent_id)
                return await self._unchanged(payment)

            entry = await self.tokens.add_tokens_to_user(
                payment.user_id,
                payment.tokens_purchased,
                f"Purchased {payment.tokens_purchased} tokens ({payment_intent_id})",
                EventType.PURCHASE,
            )
        except Exception as e:
            logger.exception(
                "charge_confirmation_failed",
                payment_intent_id=payment_intent_id,
                error_type=type(e).__name__,
                claimed=claimed,
            )
            metrics.record_error(type(e).__name__, "payment_confirmation")
            # Only the row this call claimed (or one still pending) may be failed
            expected = PaymentStatus.SUCCEEDED if claimed else PaymentStatus.PENDING
            if await self.storage.compare_and_set_payment_status(
                payment_intent_id, expected, PaymentStatus.FAILED
            ):
                metrics.record_payment(PaymentStatus.FAILED.value)
            current = await self.storage.get_payment_by_intent(payment_intent_id)
            return await self._unchanged(current or payment)

        metrics.record_payment(PaymentStatus.SUCCEEDED.value, payment.amount_cents)
        logger.info(
            "charge_credited",
            payment_intent_id=payment_intent_id,
            user_id=str(payment.user_id),
            tokens=payment.tokens_purchased,
        )
        refreshed = await self.storage.get_payment_by_intent(payment_intent_id)
        return ConfirmResult(
            payment=refreshed or payment,
            tokens_credited=payment.tokens_purchased,
            token_balance=entry.tokens_remaining,
        )

    async def handle_failed_charge(self, payment_intent_id: str) -> PaymentData | None:
        """Mark a pending payment failed. Settled payments are left alone."""
        changed = await self.storage.compare_and_set_payment_status(
            payment_intent_id, PaymentStatus.PENDING, PaymentStatus.FAILED
        )
        if changed:
            metrics.record_payment(PaymentStatus.FAILED.value)
            logger.info("charge_failed", payment_intent_id=payment_intent_id)
        return await self.storage.get_payment_by_intent(payment_intent_id)

    async def handle_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify a webhook and dispatch payment events. Other event types are ignored.

        Raises:
            WebhookVerificationError: Signature or payload invalid
        """
        event = await self.provider.verify_webhook(payload, signature)

        if event.payment_id is None:
            logger.info("webhook_ignored", event_id=event.event_id, event_type=event.event_type)
            return event

        if event.event_type == EVENT_PAYMENT_SUCCEEDED:
            try:
                await self.handle_confirmed_charge(event.payment_id)
            except PaymentNotFoundError:
                logger.warning(
                    "webhook_payment_unknown",
                    event_id=event.event_id,
                    payment_intent_id=event.payment_id,
                )
        elif event.event_type == EVENT_PAYMENT_FAILED:
            await self.handle_failed_charge(event.payment_id)
        else:
            logger.info("webhook_ignored", event_id=event.event_id, event_type=event.event_type)

        return event

    async def _unchanged(self, payment: PaymentData) -> ConfirmResult:
        user = await self.storage.get_user(payment.user_id)
        return ConfirmResult(
            payment=payment,
            tokens_credited=0,
            token_balance=user.token_balance if user else 0,
        )
