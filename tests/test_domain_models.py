"""
Tests for domain models and configuration validation.
"""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from app.config import DEFAULT_JWT_SECRET, ConfigurationError, Settings
from app.models.api import EventType, ProviderName, RegisterRequest, UserRole
from app.models.domain import Actor, LedgerEntry, PricingTier, UserData


def make_user(balance: int = 0, role: UserRole = UserRole.USER) -> UserData:
    return UserData(
        user_id=uuid4(),
        email="user@example.com",
        password_hash="hash",
        token_balance=balance,
        role=role,
        created_at=datetime.now(UTC),
    )


class TestUserData:
    """Tests for UserData domain model."""

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            make_user(balance=-1)

    def test_is_admin(self):
        assert make_user(role=UserRole.ADMIN).is_admin is True
        assert make_user().is_admin is False

    def test_immutable(self):
        user = make_user()
        with pytest.raises(FrozenInstanceError):
            user.token_balance = 10  # type: ignore[misc]


class TestLedgerEntry:
    def test_requires_exactly_one_owner(self):
        """A ledger row belongs to a user or a session, never both or neither."""
        common = dict(
            entry_id=uuid4(),
            event_type=EventType.ANALYSIS,
            tokens_used=5,
            tokens_remaining=995,
            description="x",
            created_at=datetime.now(UTC),
        )
        LedgerEntry(user_id=uuid4(), session_id=None, **common)
        LedgerEntry(user_id=None, session_id="anon_1", **common)
        with pytest.raises(ValueError):
            LedgerEntry(user_id=None, session_id=None, **common)
        with pytest.raises(ValueError):
            LedgerEntry(user_id=uuid4(), session_id="anon_1", **common)


class TestPricingTier:
    @pytest.mark.parametrize(("amount", "tokens"), [(0, 100), (100, 0), (-1, 5)])
    def test_non_positive_rejected(self, amount: int, tokens: int):
        with pytest.raises(ValueError):
            PricingTier(amount_cents=amount, tokens=tokens, description="bad")


class TestActor:
    def test_anonymous(self):
        actor = Actor(session_id="anon_1")
        assert actor.is_registered is False
        assert actor.user_id is None

    def test_registered(self):
        user = make_user()
        actor = Actor(user=user)
        assert actor.is_registered is True
        assert actor.user_id == user.user_id


class TestApiModels:
    def test_register_email_normalized(self):
        request = RegisterRequest(email="  Person@Example.COM ", password="password123")
        assert request.email == "person@example.com"

    def test_register_email_requires_at(self):
        with pytest.raises(ValueError):
            RegisterRequest(email="not-an-email", password="password123")

    def test_provider_values(self):
        assert {p.value for p in ProviderName} == {"openai", "anthropic", "deepseek", "perplexity"}


class TestSettingsValidation:
    """FAIL FAST configuration checks."""

    def test_empty_database_url_selects_memory(self):
        assert Settings(database_url="").database_enabled is False

    def test_postgres_url_enables_database(self):
        config = Settings(
            database_url="postgresql+asyncpg://u:p@localhost/db",
            jwt_secret="test-secret-key-for-jwt-signing-min-32-chars",
        )
        assert config.database_enabled is True

    def test_non_postgres_url_rejected(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url="mysql://u:p@localhost/db")

    def test_default_jwt_secret_rejected_with_database(self):
        """Bearer tokens must not be signed with the development key in production."""
        with pytest.raises(ConfigurationError):
            Settings(
                database_url="postgresql+asyncpg://u:p@localhost/db",
                jwt_secret=DEFAULT_JWT_SECRET,
            )

    def test_default_jwt_secret_allowed_in_memory(self):
        config = Settings(database_url="", jwt_secret=DEFAULT_JWT_SECRET)
        assert config.database_enabled is False

    def test_upload_bounds_must_be_ordered(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url="", max_free_upload_cost=20000)

    def test_chars_per_token_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            Settings(database_url="", chars_per_token=0)

    def test_admin_email_set(self):
        config = Settings(database_url="", admin_emails=" A@Example.com, ,b@example.com")
        assert config.admin_email_set == {"a@example.com", "b@example.com"}
