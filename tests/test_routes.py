"""
Tests for API Routes.

End-to-end route tests through TestClient against the in-memory store.
Analyzers are swapped for deterministic local ones; Stripe is mocked.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.dependencies import get_analysis_service
from app.config import Settings, settings
from app.db.memory_storage import MemoryStorage
from app.exceptions import ProviderConfigurationError, ProviderResponseError
from app.models.api import ProviderName, UserRole
from app.models.domain import UserData
from app.services.analysis import AnalysisService
from app.services.analyzers import CognitiveAnalyzer, HeuristicAnalyzer
from app.services.auth import AuthService
from app.services.llm_providers import BaseLLMProvider
from app.services.reports import ReportGenerator
from app.services.tokens import TokenService
from conftest import create_user_with_balance

ANON_SESSION = "anon_1700000000000_routetest"


def local_analyzer(provider: ProviderName) -> CognitiveAnalyzer:
    """openai: unconfigured, anthropic: failing, everything else: heuristic."""
    if provider == ProviderName.OPENAI:
        raise ProviderConfigurationError(provider.value)
    if provider == ProviderName.ANTHROPIC:
        analyzer = MagicMock(spec=CognitiveAnalyzer)
        analyzer.provider = provider
        analyzer.analyze = AsyncMock(side_effect=ProviderResponseError(provider.value, "boom"))
        return analyzer
    return HeuristicAnalyzer(provider)


def local_report(provider: ProviderName) -> ReportGenerator:
    llm = MagicMock(spec=BaseLLMProvider)
    llm.generate = AsyncMock(return_value="1. Sharp.\n10. The Cartographer.")
    return ReportGenerator(provider, llm)


@pytest.fixture
def analysis_client(app: FastAPI, storage: MemoryStorage, test_settings: Settings) -> TestClient:
    def override_analysis_service() -> AnalysisService:
        return AnalysisService(
            storage,
            TokenService(storage, test_settings),
            analyzer_factory=local_analyzer,
            report_factory=local_report,
        )

    app.dependency_overrides[get_analysis_service] = override_analysis_service
    return TestClient(app)


def bearer(user: UserData, storage: MemoryStorage) -> dict[str, str]:
    token = AuthService(storage, TokenService(storage)).create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(registered_user: UserData, storage: MemoryStorage) -> dict[str, str]:
    return bearer(registered_user, storage)


# ============================================================================
# Identity
# ============================================================================


class TestAnonymousSessions:
    """Tests for anonymous session resolution."""

    def test_new_session_is_minted(self, client: TestClient) -> None:
        """A caller with no session gets one in a header and a cookie."""
        response = client.get("/api/tokens/status")

        assert response.status_code == 200
        session_id = response.headers["X-Session-Id"]
        assert session_id.startswith("anon_")
        assert response.cookies.get(settings.anonymous_cookie_name) == session_id

        body = response.json()
        assert body["registered"] is False
        assert body["session_id"] == session_id
        assert body["free_tokens_used"] == 0
        assert body["free_tokens_remaining"] == 1000
        assert body["can_upload"] is True

    def test_header_session_is_reused(self, client: TestClient, storage: MemoryStorage) -> None:
        first = client.get("/api/tokens/status", headers={"X-Session-Id": ANON_SESSION})
        second = client.get("/api/tokens/status", headers={"X-Session-Id": ANON_SESSION})

        assert first.json()["session_id"] == ANON_SESSION
        assert second.headers["X-Session-Id"] == ANON_SESSION

    def test_invalid_bearer_is_rejected(self, client: TestClient) -> None:
        response = client.get(
            "/api/tokens/status", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_token_for_unknown_user_is_rejected(
        self, client: TestClient, storage: MemoryStorage
    ) -> None:
        """A validly signed token whose user is not in this store is refused."""
        ghost = await MemoryStorage().create_user("ghost@example.com", "x", UserRole.USER)
        response = client.get("/api/tokens/status", headers=bearer(ghost, storage))
        assert response.status_code == 401

    def test_registered_routes_require_auth(self, client: TestClient) -> None:
        response = client.get("/api/documents")
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"


# ============================================================================
# Token routes
# ============================================================================


class TestTokenRoutes:
    def test_registered_status(
        self, client: TestClient, auth_headers: dict[str, str], registered_user: UserData
    ) -> None:
        body = client.get("/api/tokens/status", headers=auth_headers).json()
        assert body["registered"] is True
        assert body["token_balance"] == registered_user.token_balance
        assert body["is_admin"] is False

    def test_admin_status_is_pinned(
        self, client: TestClient, admin_user: UserData, storage: MemoryStorage
    ) -> None:
        body = client.get("/api/tokens/status", headers=bearer(admin_user, storage)).json()
        assert body["is_admin"] is True
        assert body["token_balance"] == settings.unlimited_balance

    def test_pricing(self, client: TestClient) -> None:
        body = client.get("/api/tokens/pricing").json()
        assert [tier["amount_cents"] for tier in body["tiers"]] == [100, 1000, 10000, 100000]
        assert [tier["popular"] for tier in body["tiers"]] == [False, True, False, False]
        assert body["publishable_key"] == (settings.stripe_publishable_key or None)

    def test_history_limit_is_validated(self, client: TestClient) -> None:
        assert client.get("/api/tokens/history?limit=0").status_code == 422
        assert client.get("/api/tokens/history?limit=501").status_code == 422

    def test_registered_history(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        body = client.get("/api/tokens/history", headers=auth_headers).json()
        assert body["total_count"] == 1
        assert body["entries"][0]["event_type"] == "purchase"
        assert body["entries"][0]["tokens_used"] == -5000


# ============================================================================
# Analysis routes
# ============================================================================


class TestAnalyzeAnonymous:
    """Tests for anonymous analysis calls and the free allowance."""

    def test_analysis_charges_session(self, analysis_client: TestClient) -> None:
        headers = {"X-Session-Id": ANON_SESSION}
        response = analysis_client.post(
            "/api/analyze",
            json={"text": "hello world", "provider": "perplexity"},
            headers=headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["analysis_id"] is None
        assert body["tokens_charged"] == 4
        assert body["tokens_remaining"] == 996
        assert body["analysis"]["intelligence_score"] == 72

        status_body = analysis_client.get("/api/tokens/status", headers=headers).json()
        assert status_body["free_tokens_used"] == 4

        history = analysis_client.get("/api/tokens/history", headers=headers).json()
        assert [e["event_type"] for e in history["entries"]] == ["analysis"]

    def test_input_cap_allows_partial(self, analysis_client: TestClient) -> None:
        response = analysis_client.post(
            "/api/analyze", json={"text": "a" * 1501, "provider": "perplexity"}
        )

        assert response.status_code == 402
        body = response.json()
        assert body["error"] == "free_limit_exceeded"
        assert body["limit_type"] == "input"
        assert body["tokens"] == 501
        assert body["allow_partial"] is True

    @pytest.mark.asyncio
    async def test_exhausted_session_is_denied(
        self, analysis_client: TestClient, token_service: TokenService
    ) -> None:
        await token_service.deduct_free_user_tokens(ANON_SESSION, 1000)

        response = analysis_client.post(
            "/api/analyze",
            json={"text": "hi", "provider": "perplexity"},
            headers={"X-Session-Id": ANON_SESSION},
        )

        assert response.status_code == 402
        body = response.json()
        assert body["limit_type"] == "total"
        assert body["tokens_used"] == 1000
        assert body["allow_partial"] is False

    def test_empty_text_is_rejected(self, analysis_client: TestClient) -> None:
        response = analysis_client.post("/api/analyze", json={"text": ""})
        assert response.status_code == 422


class TestAnalyzeRegistered:
    def test_analysis_is_stored_and_debited(
        self,
        analysis_client: TestClient,
        auth_headers: dict[str, str],
        registered_user: UserData,
    ) -> None:
        response = analysis_client.post(
            "/api/analyze",
            json={"text": "hello world", "provider": "deepseek"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["tokens_remaining"] == registered_user.token_balance - 4

        listed = analysis_client.get("/api/analyses", headers=auth_headers).json()
        assert len(listed) == 1
        assert listed[0]["analysis_id"] == body["analysis_id"]
        assert listed[0]["result"]["intelligence_score"] == 72

        single = analysis_client.get(f"/api/analyses/{body['analysis_id']}", headers=auth_headers)
        assert single.status_code == 200

    @pytest.mark.asyncio
    async def test_empty_balance_is_402(
        self, analysis_client: TestClient, storage: MemoryStorage, token_service: TokenService
    ) -> None:
        user = await create_user_with_balance(storage, token_service, "broke@example.com", 0)

        response = analysis_client.post(
            "/api/analyze",
            json={"text": "hello world", "provider": "perplexity"},
            headers=bearer(user, storage),
        )

        assert response.status_code == 402
        body = response.json()
        assert body["error"] == "insufficient_tokens"
        assert body["current_balance"] == 0
        assert body["required_tokens"] == 4

    def test_unconfigured_provider_is_503(
        self, analysis_client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = analysis_client.post(
            "/api/analyze", json={"text": "hello", "provider": "openai"}, headers=auth_headers
        )
        assert response.status_code == 503
        assert response.json()["error"] == "provider_not_configured"

    def test_provider_failure_is_502_and_free(
        self,
        analysis_client: TestClient,
        auth_headers: dict[str, str],
        registered_user: UserData,
    ) -> None:
        response = analysis_client.post(
            "/api/analyze", json={"text": "hello", "provider": "anthropic"}, headers=auth_headers
        )
        assert response.status_code == 502
        assert response.json()["error"] == "analysis_failed"

        body = analysis_client.get("/api/tokens/status", headers=auth_headers).json()
        assert body["token_balance"] == registered_user.token_balance

    def test_missing_analysis_is_404(
        self, analysis_client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = analysis_client.get(
            "/api/analyses/00000000-0000-0000-0000-000000000000", headers=auth_headers
        )
        assert response.status_code == 404


class TestComprehensiveReports:
    def test_report_is_stored(
        self, analysis_client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = analysis_client.post(
            "/api/analyze/comprehensive",
            json={"text": "Some long text.", "provider": "perplexity"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["report"]["intelligence"] == "Sharp."
        assert body["report"]["cognitive_archetype"] == "The Cartographer."
        assert body["report_id"] is not None

        reports = analysis_client.get("/api/reports", headers=auth_headers).json()
        assert [r["report_id"] for r in reports] == [body["report_id"]]
        single = analysis_client.get(f"/api/reports/{body['report_id']}", headers=auth_headers)
        assert single.json()["report"]["generated_by"] == "perplexity"

    def test_deepseek_is_not_a_report_provider(self, analysis_client: TestClient) -> None:
        response = analysis_client.post(
            "/api/analyze/comprehensive", json={"text": "x", "provider": "deepseek"}
        )
        assert response.status_code == 422


# ============================================================================
# Document routes
# ============================================================================


class TestDocumentRoutes:
    def test_registered_upload_lifecycle(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        created = client.post(
            "/api/documents",
            json={"filename": "notes.txt", "content": "alpha beta gamma"},
            headers=auth_headers,
        )
        assert created.status_code == 201
        body = created.json()
        assert body["persisted"] is True
        assert body["tokens_charged"] == 100
        document_id = body["document"]["document_id"]

        listed = client.get("/api/documents", headers=auth_headers).json()
        assert listed["total_count"] == 1
        assert listed["documents"][0]["content"] is None

        fetched = client.get(f"/api/documents/{document_id}", headers=auth_headers).json()
        assert fetched["content"] == "alpha beta gamma"

        assert client.delete(f"/api/documents/{document_id}", headers=auth_headers).status_code == 204
        missing = client.get(f"/api/documents/{document_id}", headers=auth_headers)
        assert missing.status_code == 404
        assert missing.json() == {"detail": "Document not found"}

    def test_anonymous_upload_is_not_stored(self, client: TestClient) -> None:
        response = client.post(
            "/api/documents",
            json={"filename": "draft.txt", "content": "alpha beta"},
            headers={"X-Session-Id": ANON_SESSION},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["persisted"] is False
        assert body["document"] is None
        assert body["tokens_charged"] == 100

    @pytest.mark.asyncio
    async def test_exhausted_session_cannot_upload(
        self, client: TestClient, token_service: TokenService
    ) -> None:
        await token_service.deduct_free_user_tokens(ANON_SESSION, 1000)

        response = client.post(
            "/api/documents",
            json={"filename": "draft.txt", "content": "alpha"},
            headers={"X-Session-Id": ANON_SESSION},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "upload_not_allowed"

    @pytest.mark.asyncio
    async def test_registered_upload_without_balance(
        self, client: TestClient, storage: MemoryStorage, token_service: TokenService
    ) -> None:
        user = await create_user_with_balance(storage, token_service, "broke@example.com", 10)

        response = client.post(
            "/api/documents",
            json={"filename": "notes.txt", "content": "alpha"},
            headers=bearer(user, storage),
        )

        assert response.status_code == 402
        assert response.json()["required_tokens"] == 100


# ============================================================================
# Auth routes
# ============================================================================


class TestAuthRoutes:
    def test_register_login_me(self, client: TestClient) -> None:
        registered = client.post(
            "/api/auth/register", json={"email": "Reader@Example.com", "password": "password123"}
        )
        assert registered.status_code == 201
        body = registered.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "reader@example.com"
        assert body["user"]["token_balance"] == 0

        login = client.post(
            "/api/auth/login", json={"email": "reader@example.com", "password": "password123"}
        )
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["user_id"] == body["user"]["user_id"]

    def test_duplicate_registration(self, client: TestClient) -> None:
        payload = {"email": "dup@example.com", "password": "password123"}
        client.post("/api/auth/register", json=payload)
        response = client.post("/api/auth/register", json=payload)
        assert response.status_code == 409
        assert response.json()["error"] == "user_exists"

    def test_bad_login(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/login", json={"email": "nobody@example.com", "password": "password123"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    def test_short_password_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/register", json={"email": "a@example.com", "password": "short"}
        )
        assert response.status_code == 422

    def test_admin_registration(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/register", json={"email": "admin@example.com", "password": "password123"}
        )
        user = response.json()["user"]
        assert user["role"] == "admin"
        assert user["token_balance"] == settings.unlimited_balance


# ============================================================================
# Payment routes
# ============================================================================


class TestPaymentRoutes:
    def test_purchase_round_trip(
        self,
        payment_client: TestClient,
        auth_headers: dict[str, str],
        registered_user: UserData,
    ) -> None:
        created = payment_client.post(
            "/api/payments/intents",
            json={"amount_cents": 1000, "tokens": 30000},
            headers=auth_headers,
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"
        assert created.json()["payment_intent_id"] == "pi_test_123"

        first = payment_client.post("/api/payments/pi_test_123/confirm", headers=auth_headers)
        second = payment_client.post("/api/payments/pi_test_123/confirm", headers=auth_headers)

        assert first.json()["tokens_credited"] == 30000
        assert first.json()["status"] == "succeeded"
        assert first.json()["token_balance"] == registered_user.token_balance + 30000
        assert second.json()["tokens_credited"] == 0

    def test_invalid_tier(self, payment_client: TestClient, auth_headers: dict[str, str]) -> None:
        response = payment_client.post(
            "/api/payments/intents",
            json={"amount_cents": 500, "tokens": 30000},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_pricing_tier"

    def test_anonymous_cannot_buy(self, payment_client: TestClient) -> None:
        response = payment_client.post(
            "/api/payments/intents", json={"amount_cents": 1000, "tokens": 30000}
        )
        assert response.status_code == 401

    def test_unknown_payment_confirm(
        self, payment_client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = payment_client.post("/api/payments/pi_unknown/confirm", headers=auth_headers)
        assert response.status_code == 404

    def test_webhook_requires_signature(self, payment_client: TestClient) -> None:
        assert payment_client.post("/api/payments/webhook", content=b"{}").status_code == 400

    def test_webhook_is_acknowledged(self, payment_client: TestClient) -> None:
        response = payment_client.post(
            "/api/payments/webhook",
            content=b"{}",
            headers={"Stripe-Signature": "t=1,v1=sig"},
        )
        assert response.status_code == 200
        assert response.json() == {"received": True, "event_type": "payment_intent.succeeded"}
