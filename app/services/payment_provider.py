"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class PaymentIntent:
    """
    Provider-agnostic payment intent.

    Represents a request to charge a user for a token pack.
    """

    amount_minor: int
    currency: str
    description: str
    metadata_user_id: str
    metadata_tokens: int


@dataclass(frozen=True)
class PaymentResult:
    """Provider view of a payment intent."""

    payment_id: str  # Provider-specific payment ID
    client_secret: str  # For client-side payment confirmation
    status: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class WebhookEvent:
    """
    Provider-agnostic webhook event.

    Only payment-intent events carry a payment_id.
    """

    event_id: str
    event_type: str
    payment_id: str | None
    status: str | None
    amount_minor: int | None
    metadata_user_id: str | None
    metadata_tokens: int | None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The Stripe binding is the only implementation; tests substitute mocks.
    """

    async def create_payment_intent(self, intent: PaymentIntent) -> PaymentResult:
        """
        Create a payment intent with the provider.

        Raises:
            PaymentProviderError: If payment creation fails
        """
        ...

    async def get_payment_status(self, payment_id: str) -> PaymentResult:
        """
        Re-fetch a payment intent.

        Raises:
            PaymentProviderError: If the provider call fails
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse webhook event from provider.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        ...
