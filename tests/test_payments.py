"""
Tests for PaymentService and StripeProvider.

Payment service tests run against in-memory storage with a mocked payment
provider; Stripe SDK calls are patched at the module boundary.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import stripe

from app.config import Settings
from app.db.memory_storage import MemoryStorage
from app.exceptions import (
    InvalidPricingTierError,
    PaymentNotFoundError,
    PaymentProviderError,
    ProviderConfigurationError,
    WebhookVerificationError,
)
from app.models.api import EventType, PaymentStatus
from app.models.domain import UserData
from app.services.payment_provider import PaymentIntent, PaymentResult, WebhookEvent
from app.services.payments import PaymentService, build_payment_provider
from app.services.stripe_provider import StripeProvider
from app.services.tokens import TokenService


def webhook_event(event_type: str, payment_id: str | None = "pi_test_123") -> WebhookEvent:
    return WebhookEvent(
        event_id="evt_test_1",
        event_type=event_type,
        payment_id=payment_id,
        status=None,
        amount_minor=None,
        metadata_user_id=None,
        metadata_tokens=None,
    )


class TestCreateChargeIntent:
    """Tests for creating charge intents."""

    @pytest.mark.asyncio
    async def test_known_tier_creates_pending_payment(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        storage: MemoryStorage,
        registered_user: UserData,
    ) -> None:
        """A matching tier creates a Stripe intent and a pending local row."""
        result = await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)

        assert result.client_secret == "pi_test_123_secret_abc"
        assert result.payment.status == PaymentStatus.PENDING
        assert result.payment.tokens_purchased == 30000

        intent: PaymentIntent = payment_provider.create_payment_intent.await_args.args[0]
        assert intent.amount_minor == 1000
        assert intent.metadata_tokens == 30000
        assert intent.metadata_user_id == str(registered_user.user_id)

        stored = await storage.get_payment_by_intent("pi_test_123")
        assert stored is not None
        assert stored.user_id == registered_user.user_id

    @pytest.mark.asyncio
    async def test_unknown_tier_is_rejected(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        registered_user: UserData,
    ) -> None:
        """Amount/token pairs outside the tier table never reach Stripe."""
        with pytest.raises(InvalidPricingTierError):
            await payment_service.create_charge_intent(1000, 99999, registered_user.user_id)
        payment_provider.create_payment_intent.assert_not_awaited()


class TestConfirmCharge:
    """Tests for crediting settled charges."""

    @pytest.mark.asyncio
    async def test_confirm_credits_once(
        self,
        payment_service: PaymentService,
        token_service: TokenService,
        storage: MemoryStorage,
        registered_user: UserData,
    ) -> None:
        """Tokens are credited on the first confirm and never again."""
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)

        first = await payment_service.handle_confirmed_charge(
            "pi_test_123", registered_user.user_id
        )
        second = await payment_service.handle_confirmed_charge(
            "pi_test_123", registered_user.user_id
        )

        assert first.tokens_credited == 30000
        assert first.token_balance == registered_user.token_balance + 30000
        assert first.payment.status == PaymentStatus.SUCCEEDED
        assert second.tokens_credited == 0
        assert second.token_balance == first.token_balance

        history = await token_service.get_user_token_history(registered_user.user_id)
        purchases = [e for e in history if e.event_type == EventType.PURCHASE]
        # funding row from the fixture plus exactly one purchase credit
        assert len(purchases) == 2
        assert await token_service.project_user_balance(registered_user.user_id) == (
            registered_user.token_balance + 30000
        )

    @pytest.mark.asyncio
    async def test_unsettled_charge_is_not_credited(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        registered_user: UserData,
    ) -> None:
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        payment_provider.get_payment_status.return_value = PaymentResult(
            payment_id="pi_test_123",
            client_secret="",
            status="processing",
            amount_minor=1000,
            currency="USD",
        )

        result = await payment_service.handle_confirmed_charge("pi_test_123")

        assert result.tokens_credited == 0
        assert result.payment.status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_provider_failure_marks_payment_failed(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        registered_user: UserData,
    ) -> None:
        """Errors during confirmation are absorbed and the row is marked failed."""
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        payment_provider.get_payment_status.side_effect = PaymentProviderError("timeout")

        result = await payment_service.handle_confirmed_charge("pi_test_123")

        assert result.tokens_credited == 0
        assert result.payment.status == PaymentStatus.FAILED
        assert result.token_balance == registered_user.token_balance

    @pytest.mark.asyncio
    async def test_provider_failure_after_credit_keeps_succeeded(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        token_service: TokenService,
        registered_user: UserData,
    ) -> None:
        """A repeated confirm that errors never downgrades a credited payment."""
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        await payment_service.handle_confirmed_charge("pi_test_123")
        payment_provider.get_payment_status.side_effect = PaymentProviderError("timeout")

        result = await payment_service.handle_confirmed_charge("pi_test_123")

        assert result.tokens_credited == 0
        assert result.payment.status == PaymentStatus.SUCCEEDED
        assert result.token_balance == registered_user.token_balance + 30000
        assert await token_service.project_user_balance(registered_user.user_id) == (
            registered_user.token_balance + 30000
        )

    @pytest.mark.asyncio
    async def test_credit_failure_after_claim_marks_failed(
        self,
        payment_service: PaymentService,
        registered_user: UserData,
    ) -> None:
        """The row claimed by this call is released to failed when crediting breaks."""
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)

        with patch.object(
            payment_service.tokens,
            "add_tokens_to_user",
            AsyncMock(side_effect=RuntimeError("ledger unavailable")),
        ):
            result = await payment_service.handle_confirmed_charge("pi_test_123")

        assert result.tokens_credited == 0
        assert result.payment.status == PaymentStatus.FAILED
        assert result.token_balance == registered_user.token_balance

    @pytest.mark.asyncio
    async def test_unknown_payment_raises(self, payment_service: PaymentService) -> None:
        with pytest.raises(PaymentNotFoundError):
            await payment_service.handle_confirmed_charge("pi_missing")

    @pytest.mark.asyncio
    async def test_other_users_payment_is_hidden(
        self, payment_service: PaymentService, registered_user: UserData
    ) -> None:
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        with pytest.raises(PaymentNotFoundError):
            await payment_service.handle_confirmed_charge("pi_test_123", uuid4())

    @pytest.mark.asyncio
    async def test_failed_charge_only_moves_pending(
        self, payment_service: PaymentService, registered_user: UserData
    ) -> None:
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        await payment_service.handle_confirmed_charge("pi_test_123")

        payment = await payment_service.handle_failed_charge("pi_test_123")

        assert payment is not None
        assert payment.status == PaymentStatus.SUCCEEDED


class TestWebhook:
    """Tests for webhook dispatch."""

    @pytest.mark.asyncio
    async def test_succeeded_event_credits(
        self,
        payment_service: PaymentService,
        storage: MemoryStorage,
        registered_user: UserData,
    ) -> None:
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)

        event = await payment_service.handle_webhook(b"{}", "t=1,v1=sig")

        assert event.event_type == "payment_intent.succeeded"
        user = await storage.get_user(registered_user.user_id)
        assert user is not None
        assert user.token_balance == registered_user.token_balance + 30000

    @pytest.mark.asyncio
    async def test_failed_event_marks_failed(
        self,
        payment_service: PaymentService,
        payment_provider: AsyncMock,
        storage: MemoryStorage,
        registered_user: UserData,
    ) -> None:
        await payment_service.create_charge_intent(1000, 30000, registered_user.user_id)
        payment_provider.verify_webhook.return_value = webhook_event(
            "payment_intent.payment_failed"
        )

        await payment_service.handle_webhook(b"{}", "t=1,v1=sig")

        payment = await storage.get_payment_by_intent("pi_test_123")
        assert payment is not None
        assert payment.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_intent_is_logged_not_raised(
        self, payment_service: PaymentService
    ) -> None:
        event = await payment_service.handle_webhook(b"{}", "t=1,v1=sig")
        assert event.payment_id == "pi_test_123"

    @pytest.mark.asyncio
    async def test_non_payment_event_is_ignored(
        self, payment_service: PaymentService, payment_provider: AsyncMock
    ) -> None:
        payment_provider.verify_webhook.return_value = webhook_event(
            "customer.created", payment_id=None
        )
        event = await payment_service.handle_webhook(b"{}", "t=1,v1=sig")
        assert event.event_type == "customer.created"
        payment_provider.get_payment_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verification_failure_propagates(
        self, payment_service: PaymentService, payment_provider: AsyncMock
    ) -> None:
        payment_provider.verify_webhook.side_effect = WebhookVerificationError("bad signature")
        with pytest.raises(WebhookVerificationError):
            await payment_service.handle_webhook(b"{}", "bad")


class TestBuildPaymentProvider:
    def test_missing_key_raises(self) -> None:
        with pytest.raises(ProviderConfigurationError):
            build_payment_provider(Settings(database_url="", stripe_api_key=""))

    def test_configured_key_builds_stripe(self) -> None:
        provider = build_payment_provider(
            Settings(database_url="", stripe_api_key="sk_test_x", stripe_webhook_secret="whsec_x")
        )
        assert isinstance(provider, StripeProvider)
        assert provider.webhook_secret == "whsec_x"


class TestStripeProvider:
    """Tests for the Stripe SDK binding."""

    @pytest.fixture
    def provider(self) -> StripeProvider:
        return StripeProvider("sk_test_fake_key", "whsec_test_fake_secret")

    @pytest.mark.asyncio
    async def test_create_payment_intent(self, provider: StripeProvider) -> None:
        intent = SimpleNamespace(
            id="pi_123", client_secret="secret", status="requires_payment_method",
            amount=1000, currency="usd",
        )
        with patch.object(stripe.PaymentIntent, "create", return_value=intent) as create:
            result = await provider.create_payment_intent(
                PaymentIntent(
                    amount_minor=1000,
                    currency="USD",
                    description="$10 → 30,000 tokens",
                    metadata_user_id="user-1",
                    metadata_tokens=30000,
                )
            )

        assert result.payment_id == "pi_123"
        assert result.currency == "USD"
        kwargs = create.call_args.kwargs
        assert kwargs["currency"] == "usd"
        assert kwargs["metadata"] == {"user_id": "user-1", "tokens": "30000"}
        assert kwargs["automatic_payment_methods"] == {"enabled": True}

    @pytest.mark.asyncio
    async def test_stripe_error_is_wrapped(self, provider: StripeProvider) -> None:
        with patch.object(
            stripe.PaymentIntent, "retrieve", side_effect=stripe.StripeError("network down")
        ):
            with pytest.raises(PaymentProviderError):
                await provider.get_payment_status("pi_123")

    @pytest.mark.asyncio
    async def test_verify_webhook_payment_event(self, provider: StripeProvider) -> None:
        event = SimpleNamespace(
            id="evt_1",
            type="payment_intent.succeeded",
            data=SimpleNamespace(
                object={
                    "id": "pi_123",
                    "status": "succeeded",
                    "amount": 1000,
                    "metadata": {"user_id": "user-1", "tokens": "30000"},
                }
            ),
        )
        with patch.object(stripe.Webhook, "construct_event", return_value=event):
            parsed = await provider.verify_webhook(b"{}", "sig")

        assert parsed.payment_id == "pi_123"
        assert parsed.metadata_tokens == 30000
        assert parsed.metadata_user_id == "user-1"

    @pytest.mark.asyncio
    async def test_verify_webhook_other_event(self, provider: StripeProvider) -> None:
        event = SimpleNamespace(
            id="evt_2", type="customer.created", data=SimpleNamespace(object=MagicMock())
        )
        with patch.object(stripe.Webhook, "construct_event", return_value=event):
            parsed = await provider.verify_webhook(b"{}", "sig")
        assert parsed.payment_id is None

    @pytest.mark.asyncio
    async def test_bad_signature(self, provider: StripeProvider) -> None:
        error = stripe.SignatureVerificationError("bad", "sig")
        with patch.object(stripe.Webhook, "construct_event", side_effect=error):
            with pytest.raises(WebhookVerificationError):
                await provider.verify_webhook(b"{}", "sig")

    @pytest.mark.asyncio
    async def test_bad_payload(self, provider: StripeProvider) -> None:
        with patch.object(stripe.Webhook, "construct_event", side_effect=ValueError("junk")):
            with pytest.raises(WebhookVerificationError):
                await provider.verify_webhook(b"junk", "sig")
