"""
Payment routes - Stripe token purchases.

Intents and confirmations require a registered caller; the webhook is
authenticated by its Stripe signature.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from app.api.dependencies import get_payment_service, require_auth
from app.config import settings
from app.exceptions import (
    InvalidPricingTierError,
    PaymentNotFoundError,
    PaymentProviderError,
    WebhookVerificationError,
)
from app.models.api import (
    CreatePaymentIntentRequest,
    PaymentConfirmResponse,
    PaymentIntentResponse,
    WebhookResponse,
)
from app.models.domain import UserData
from app.observability.logging import get_logger
from app.services.payments import PaymentService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post(
    "/intents",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    user: UserData = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    """Start a purchase of one pricing tier."""
    try:
        result = await service.create_charge_intent(
            request.amount_cents, request.tokens, user.user_id
        )
    except InvalidPricingTierError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_pricing_tier", "message": str(exc)},
        ) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "payment_provider_error", "message": exc.message},
        ) from exc

    return PaymentIntentResponse(
        payment_id=result.payment.payment_id,
        payment_intent_id=result.payment.stripe_payment_intent_id,
        client_secret=result.client_secret,
        amount_cents=result.payment.amount_cents,
        tokens=result.payment.tokens_purchased,
        status=result.payment.status,
        publishable_key=settings.stripe_publishable_key or None,
    )


@router.post("/{payment_intent_id}/confirm", response_model=PaymentConfirmResponse)
async def confirm_payment(
    payment_intent_id: str,
    user: UserData = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentConfirmResponse:
    """
    Client-side confirmation after Stripe.js completes.

    Safe to repeat: tokens are credited once per payment.
    """
    try:
        result = await service.handle_confirmed_charge(payment_intent_id, user.user_id)
    except PaymentNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found",
        ) from exc

    return PaymentConfirmResponse(
        payment_intent_id=payment_intent_id,
        status=result.payment.status,
        tokens_credited=result.tokens_credited,
        token_balance=result.token_balance,
    )


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    service: PaymentService = Depends(get_payment_service),
) -> WebhookResponse:
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    payload = await request.body()
    try:
        event = await service.handle_webhook(payload, stripe_signature)
    except WebhookVerificationError as exc:
        logger.warning("webhook_rejected", error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc

    return WebhookResponse(received=True, event_type=event.event_type)
