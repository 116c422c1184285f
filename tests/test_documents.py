"""Tests for DocumentService uploads and ownership."""

from datetime import UTC, datetime
from unittest.mock import patch
from uuid import uuid4

import pytest

from app.db.memory_storage import MemoryStorage
from app.exceptions import InsufficientTokensError, UserNotFoundError
from app.models.api import EventType, UserRole
from app.models.domain import Actor, UserData
from app.services.documents import DocumentService
from app.services.tokens import TokenService
from conftest import create_user_with_balance


@pytest.fixture
def document_service(storage: MemoryStorage, token_service: TokenService) -> DocumentService:
    return DocumentService(storage, token_service)


def words(count: int) -> str:
    return " ".join(["word"] * count)


class TestRegisteredUploads:
    @pytest.mark.asyncio
    async def test_upload_is_stored_and_charged(
        self,
        document_service: DocumentService,
        token_service: TokenService,
        storage: MemoryStorage,
        registered_actor: Actor,
        registered_user: UserData,
    ) -> None:
        """A small document costs the minimum and is persisted."""
        outcome = await document_service.upload(registered_actor, "notes.txt", words(250))

        assert outcome.persisted is True
        assert outcome.word_count == 250
        assert outcome.tokens_charged == 100
        assert outcome.document is not None

        user = await storage.get_user(registered_user.user_id)
        assert user is not None
        assert user.token_balance == registered_user.token_balance - 100

        history = await token_service.get_user_token_history(registered_user.user_id)
        assert history[0].event_type == EventType.UPLOAD

    @pytest.mark.asyncio
    async def test_insufficient_balance_stores_nothing(
        self,
        document_service: DocumentService,
        storage: MemoryStorage,
        token_service: TokenService,
    ) -> None:
        user = await create_user_with_balance(storage, token_service, "poor@example.com", 50)

        with pytest.raises(InsufficientTokensError) as exc_info:
            await document_service.upload(Actor(user=user), "notes.txt", words(10))

        assert exc_info.value.required == 100
        assert await storage.list_documents(user.user_id) == []

    @pytest.mark.asyncio
    async def test_balance_spent_after_check_stores_nothing(
        self,
        document_service: DocumentService,
        storage: MemoryStorage,
        token_service: TokenService,
    ) -> None:
        """A competing debit between the check and the charge leaves no document behind."""
        user = await create_user_with_balance(storage, token_service, "racer@example.com", 150)
        check = token_service.check_registered_user_tokens

        async def check_then_spend(user_id, required):
            decision = await check(user_id, required)
            await token_service.deduct_registered_user_tokens(user_id, 100)
            return decision

        with patch.object(token_service, "check_registered_user_tokens", check_then_spend):
            with pytest.raises(InsufficientTokensError):
                await document_service.upload(Actor(user=user), "notes.txt", words(10))

        assert await storage.list_documents(user.user_id) == []
        refreshed = await storage.get_user(user.user_id)
        assert refreshed is not None
        assert refreshed.token_balance == 50

    @pytest.mark.asyncio
    async def test_vanished_user(self, document_service: DocumentService) -> None:
        ghost = UserData(
            user_id=uuid4(),
            email="ghost@example.com",
            password_hash="x",
            token_balance=0,
            role=UserRole.USER,
            created_at=datetime.now(UTC),
        )
        with pytest.raises(UserNotFoundError):
            await document_service.upload(Actor(user=ghost), "notes.txt", "text")

    @pytest.mark.asyncio
    async def test_admin_uploads_free(
        self,
        document_service: DocumentService,
        admin_user: UserData,
    ) -> None:
        outcome = await document_service.upload(Actor(user=admin_user), "big.txt", words(5000))
        assert outcome.persisted is True
        assert outcome.tokens_charged == 0


class TestAnonymousUploads:
    @pytest.mark.asyncio
    async def test_charged_but_not_stored(
        self,
        document_service: DocumentService,
        storage: MemoryStorage,
        anonymous_actor: Actor,
    ) -> None:
        outcome = await document_service.upload(anonymous_actor, "draft.txt", words(200_000))

        assert outcome.persisted is False
        assert outcome.document is None
        # capped at the free maximum
        assert outcome.tokens_charged == 1000

        session = await storage.get_session(anonymous_actor.session_id)
        assert session is not None
        assert session.tokens_used == 1000

    @pytest.mark.asyncio
    async def test_actor_without_identity(self, document_service: DocumentService) -> None:
        with pytest.raises(ValueError):
            await document_service.upload(Actor(), "draft.txt", "text")


class TestDocumentOwnership:
    @pytest.mark.asyncio
    async def test_list_get_delete(
        self,
        document_service: DocumentService,
        registered_actor: Actor,
        registered_user: UserData,
    ) -> None:
        outcome = await document_service.upload(registered_actor, "a.txt", "alpha beta")
        assert outcome.document is not None
        document_id = outcome.document.document_id

        listed = await document_service.list_documents(registered_user.user_id)
        assert [d.document_id for d in listed] == [document_id]

        fetched = await document_service.get_document(document_id, registered_user.user_id)
        assert fetched is not None
        assert fetched.content == "alpha beta"

        assert await document_service.delete_document(document_id, registered_user.user_id)
        assert not await document_service.delete_document(document_id, registered_user.user_id)

    @pytest.mark.asyncio
    async def test_other_user_cannot_see_document(
        self,
        document_service: DocumentService,
        registered_actor: Actor,
    ) -> None:
        outcome = await document_service.upload(registered_actor, "a.txt", "alpha beta")
        assert outcome.document is not None

        stranger = uuid4()
        assert await document_service.get_document(outcome.document.document_id, stranger) is None
        assert not await document_service.delete_document(
            outcome.document.document_id, stranger
        )

