"""
Document Service - metered text uploads.

Registered uploads are stored and charged the registered upload cost.
Anonymous uploads are charged the capped free cost against the session and
are not stored.
"""

from dataclasses import dataclass
from uuid import UUID

from app.db.storage import Storage
from app.exceptions import InsufficientTokensError, UserNotFoundError
from app.models.api import EventType
from app.models.domain import Actor, DocumentData
from app.observability.logging import get_logger
from app.services.tokens import USER_NOT_FOUND_MESSAGE, TokenService, count_words

logger = get_logger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    document: DocumentData | None
    filename: str
    word_count: int
    tokens_charged: int
    persisted: bool


class DocumentService:
    def __init__(self, storage: Storage, tokens: TokenService) -> None:
        self.storage = storage
        self.tokens = tokens

    async def upload(self, actor: Actor, filename: str, content: str) -> UploadOutcome:
        """
        Charge for and (for registered users) store a document.

        Raises:
            InsufficientTokensError: Registered balance below the upload cost
            UserNotFoundError: Registered user vanished
        """
        word_count = count_words(content)
        description = f"Document upload: {filename} ({word_count} words)"

        if actor.user is not None:
            cost = self.tokens.calculate_registered_upload_cost(word_count)
            decision = await self.tokens.check_registered_user_tokens(actor.user.user_id, cost)
            if not decision.can_proceed:
                if decision.message == USER_NOT_FOUND_MESSAGE:
                    raise UserNotFoundError(actor.user.user_id)
                raise InsufficientTokensError(decision.current_balance, cost)

            # Stored only once the debit has gone through
            entry = await self.tokens.deduct_registered_user_tokens(
                actor.user.user_id, cost, EventType.UPLOAD, description
            )
            document = await self.storage.create_document(
                actor.user.user_id, filename, content, word_count
            )
            logger.info(
                "document_uploaded",
                user_id=str(actor.user.user_id),
                document_id=str(document.document_id),
                word_count=word_count,
                cost=cost,
            )
            return UploadOutcome(
                document=document,
                filename=filename,
                word_count=word_count,
                tokens_charged=entry.tokens_used,
                persisted=True,
            )

        if actor.session_id is None:
            raise ValueError("Anonymous actor without a session")

        cost = self.tokens.calculate_free_upload_cost(word_count)
        entry = await self.tokens.deduct_free_user_tokens(
            actor.session_id, cost, description, EventType.UPLOAD
        )
        logger.info(
            "anonymous_upload_charged",
            session_id=actor.session_id,
            word_count=word_count,
            cost=cost,
        )
        return UploadOutcome(
            document=None,
            filename=filename,
            word_count=word_count,
            tokens_charged=entry.tokens_used,
            persisted=False,
        )

    async def list_documents(self, user_id: UUID) -> list[DocumentData]:
        return await self.storage.list_documents(user_id)

    async def get_document(self, document_id: UUID, user_id: UUID) -> DocumentData | None:
        return await self.storage.get_document(document_id, user_id)

    async def delete_document(self, document_id: UUID, user_id: UUID) -> bool:
        deleted = await self.storage.delete_document(document_id, user_id)
        if deleted:
            logger.info("document_deleted", user_id=str(user_id), document_id=str(document_id))
        return deleted
