"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- In-memory storage and a mocked database session
- Token, auth, analysis, document and payment services
- Registered, admin and anonymous actors
- API test client with dependency overrides
"""

import os
from collections.abc import AsyncGenerator, Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set required environment variables BEFORE importing app modules
os.environ["DATABASE_URL"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-signing-min-32-chars")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("STRIPE_API_KEY", "sk_test_fake_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_fake_key")
os.environ.setdefault("TRACING_ENABLED", "false")

from app.api.dependencies import get_payment_service, get_storage
from app.config import Settings
from app.db.memory_storage import MemoryStorage
from app.models.api import UserRole
from app.models.domain import Actor, UserData
from app.services.auth import AuthService
from app.services.payment_provider import PaymentResult, WebhookEvent
from app.services.payments import PaymentService
from app.services.tokens import TokenService

# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def storage() -> MemoryStorage:
    """Fresh in-memory store per test."""
    return MemoryStorage()


@pytest.fixture
def db_session() -> AsyncMock:
    """Create a mock database session with sensible defaults."""
    session = AsyncMock(spec=AsyncSession)

    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()

    # Default execute returns empty result
    mock_result = MagicMock()
    mock_result.scalar_one_or_none = MagicMock(return_value=None)
    mock_result.scalar_one = MagicMock(return_value=0)
    mock_result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=[])))
    mock_result.rowcount = 0
    session.execute = AsyncMock(return_value=mock_result)

    return session


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="",
        admin_emails="admin@example.com",
        jwt_secret="test-secret-key-for-jwt-signing-min-32-chars",
    )


@pytest.fixture
def token_service(storage: MemoryStorage, test_settings: Settings) -> TokenService:
    return TokenService(storage, test_settings)


@pytest.fixture
def auth_service(
    storage: MemoryStorage, token_service: TokenService, test_settings: Settings
) -> AuthService:
    return AuthService(storage, token_service, test_settings)


@pytest.fixture
def payment_provider() -> AsyncMock:
    """Mock Stripe binding: intents succeed, status reads 'succeeded'."""
    provider = AsyncMock()
    provider.create_payment_intent = AsyncMock(
        return_value=PaymentResult(
            payment_id="pi_test_123",
            client_secret="pi_test_123_secret_abc",
            status="requires_payment_method",
            amount_minor=1000,
            currency="USD",
        )
    )
    provider.get_payment_status = AsyncMock(
        return_value=PaymentResult(
            payment_id="pi_test_123",
            client_secret="pi_test_123_secret_abc",
            status="succeeded",
            amount_minor=1000,
            currency="USD",
        )
    )
    provider.verify_webhook = AsyncMock(
        return_value=WebhookEvent(
            event_id="evt_test_1",
            event_type="payment_intent.succeeded",
            payment_id="pi_test_123",
            status="succeeded",
            amount_minor=1000,
            metadata_user_id=None,
            metadata_tokens=30000,
        )
    )
    return provider


@pytest.fixture
def payment_service(
    storage: MemoryStorage, token_service: TokenService, payment_provider: AsyncMock
) -> PaymentService:
    return PaymentService(storage, token_service, payment_provider)


# ============================================================================
# Actor Fixtures
# ============================================================================


async def create_user_with_balance(
    storage: MemoryStorage,
    token_service: TokenService,
    email: str = "user@example.com",
    balance: int = 0,
    role: UserRole = UserRole.USER,
) -> UserData:
    """Create a user and fund it through the ledger so projections stay consistent."""
    user = await storage.create_user(email, "not-a-real-hash", role)
    if balance > 0:
        await token_service.add_tokens_to_user(user.user_id, balance, "Test funding")
    refreshed = await storage.get_user(user.user_id)
    assert refreshed is not None
    return refreshed


@pytest.fixture
async def registered_user(storage: MemoryStorage, token_service: TokenService) -> UserData:
    return await create_user_with_balance(storage, token_service, balance=5000)


@pytest.fixture
async def admin_user(storage: MemoryStorage) -> UserData:
    return await storage.create_user("admin@example.com", "not-a-real-hash", UserRole.ADMIN)


@pytest.fixture
def anonymous_actor() -> Actor:
    return Actor(session_id="anon_1700000000000_abc123xyz")


@pytest.fixture
def registered_actor(registered_user: UserData) -> Actor:
    return Actor(user=registered_user)


# ============================================================================
# API Client Fixtures
# ============================================================================


@pytest.fixture
def app(storage: MemoryStorage) -> Iterator[FastAPI]:
    """App wired to the per-test in-memory store."""
    from app.main import app as fastapi_app

    async def override_get_storage() -> AsyncGenerator[MemoryStorage, None]:
        yield storage

    fastapi_app.dependency_overrides[get_storage] = override_get_storage
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def payment_client(
    app: FastAPI, storage: MemoryStorage, payment_provider: AsyncMock, test_settings: Settings
) -> TestClient:
    """Client whose payment service uses the mocked Stripe binding."""

    def override_payment_service() -> PaymentService:
        return PaymentService(storage, TokenService(storage, test_settings), payment_provider)

    app.dependency_overrides[get_payment_service] = override_payment_service
    return TestClient(app)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
