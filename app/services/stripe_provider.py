"""
Stripe Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.
"""

import stripe

from app.exceptions import PaymentProviderError, WebhookVerificationError
from app.observability.logging import get_logger
from app.services.payment_provider import (
    PaymentIntent,
    PaymentResult,
    WebhookEvent,
)

logger = get_logger(__name__)


def _metadata_tokens(raw: object) -> int | None:
    if raw is None:
        return None
    try:
        return int(str(raw))
    except ValueError:
        return None


class StripeProvider:
    """
    Stripe payment provider implementation.

    Implements the PaymentProvider protocol for Stripe.
    """

    def __init__(self, api_key: str, webhook_secret: str) -> None:
        """
        Initialize Stripe provider.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.api_key = api_key

    async def create_payment_intent(self, intent: PaymentIntent) -> PaymentResult:
        """
        Create a Stripe PaymentIntent with automatic payment methods.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        try:
            logger.info(
                "creating_stripe_payment_intent",
                amount_minor=intent.amount_minor,
                currency=intent.currency,
                tokens=intent.metadata_tokens,
            )

            payment_intent = stripe.PaymentIntent.create(
                amount=intent.amount_minor,
                currency=intent.currency.lower(),
                description=intent.description,
                automatic_payment_methods={"enabled": True},
                metadata={
                    "user_id": intent.metadata_user_id,
                    "tokens": str(intent.metadata_tokens),
                },
            )

            logger.info(
                "stripe_payment_intent_created",
                payment_intent_id=payment_intent.id,
                status=payment_intent.status,
            )

            return PaymentResult(
                payment_id=payment_intent.id,
                client_secret=payment_intent.client_secret or "",
                status=payment_intent.status,
                amount_minor=payment_intent.amount,
                currency=payment_intent.currency.upper(),
            )

        except stripe.StripeError as exc:
            logger.error(
                "stripe_payment_intent_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Stripe payment failed: {exc}") from exc

    async def get_payment_status(self, payment_id: str) -> PaymentResult:
        """
        Get current status of a payment intent from Stripe.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        try:
            payment_intent = stripe.PaymentIntent.retrieve(payment_id)

            logger.info(
                "stripe_payment_status_retrieved",
                payment_intent_id=payment_id,
                status=payment_intent.status,
            )

            return PaymentResult(
                payment_id=payment_intent.id,
                client_secret=payment_intent.client_secret or "",
                status=payment_intent.status,
                amount_minor=payment_intent.amount,
                currency=payment_intent.currency.upper(),
            )

        except stripe.StripeError as exc:
            logger.error(
                "stripe_payment_status_failed",
                payment_intent_id=payment_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to get payment status: {exc}") from exc

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse Stripe webhook event.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        try:
            event = stripe.Webhook.construct_event(  # type: ignore[no-untyped-call]
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            logger.error("stripe_webhook_verification_failed", error=str(exc))
            raise WebhookVerificationError("Invalid Stripe webhook signature") from exc
        except ValueError as exc:
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise WebhookVerificationError(f"Failed to parse Stripe webhook: {exc}") from exc

        logger.info("stripe_webhook_verified", event_id=event.id, event_type=event.type)

        obj = event.data.object
        if not event.type.startswith("payment_intent."):
            return WebhookEvent(
                event_id=event.id,
                event_type=event.type,
                payment_id=None,
                status=None,
                amount_minor=None,
                metadata_user_id=None,
                metadata_tokens=None,
            )

        metadata = obj.get("metadata") or {}
        return WebhookEvent(
            event_id=event.id,
            event_type=event.type,
            payment_id=obj.get("id"),
            status=obj.get("status"),
            amount_minor=obj.get("amount"),
            metadata_user_id=metadata.get("user_id"),
            metadata_tokens=_metadata_tokens(metadata.get("tokens")),
        )
