"""
FastAPI Dependencies - Storage, services, caller identity and token gates.

NO DICTIONARIES - All dependencies return typed objects. Denials are raised
as HTTPException with a structured detail that the app flattens into the
response body.
"""

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.db.memory_storage import MemoryStorage
from app.db.session import get_session_factory
from app.db.storage import SQLStorage, Storage
from app.models.domain import Actor, UserData
from app.observability.logging import get_logger
from app.services.analysis import AnalysisService
from app.services.auth import AuthService, generate_session_id
from app.services.documents import DocumentService
from app.services.payments import PaymentService, build_payment_provider
from app.services.tokens import USER_NOT_FOUND_MESSAGE, TokenService

logger = get_logger(__name__)

SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 365
AUTH_REQUIRED_MESSAGE = "Please register or login to access this feature"

bearer_scheme = HTTPBearer(auto_error=False)

_memory_storage: MemoryStorage | None = None


def get_memory_storage() -> MemoryStorage:
    """Process-wide in-memory store used when no database is configured."""
    global _memory_storage
    if _memory_storage is None:
        _memory_storage = MemoryStorage()
        logger.info("memory_storage_initialized")
    return _memory_storage


# ============================================================================
# Storage and services
# ============================================================================


async def get_storage() -> AsyncGenerator[Storage, None]:
    """One SQLStorage per request when DATABASE_URL is set, else the shared memory store."""
    if not settings.database_enabled:
        yield get_memory_storage()
        return

    factory = get_session_factory()
    async with factory() as session:
        yield SQLStorage(session)


def get_token_service(storage: Storage = Depends(get_storage)) -> TokenService:
    return TokenService(storage)


def get_auth_service(
    storage: Storage = Depends(get_storage),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(storage, tokens)


def get_analysis_service(
    storage: Storage = Depends(get_storage),
    tokens: TokenService = Depends(get_token_service),
) -> AnalysisService:
    return AnalysisService(storage, tokens)


def get_document_service(
    storage: Storage = Depends(get_storage),
    tokens: TokenService = Depends(get_token_service),
) -> DocumentService:
    return DocumentService(storage, tokens)


def get_payment_service(
    storage: Storage = Depends(get_storage),
    tokens: TokenService = Depends(get_token_service),
) -> PaymentService:
    """Raises ProviderConfigurationError (503) when Stripe is not configured."""
    return PaymentService(storage, tokens, build_payment_provider())


# ============================================================================
# Caller identity
# ============================================================================


def _unauthorized(message: str = AUTH_REQUIRED_MESSAGE) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "authentication_required", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def resolve_actor(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    x_session_id: str | None = Header(None, description="Anonymous session token"),
    storage: Storage = Depends(get_storage),
    auth: AuthService = Depends(get_auth_service),
) -> Actor:
    """
    Identify the caller.

    A bearer token must name an existing user. Without one the caller is an
    anonymous session, taken from the X-Session-Id header or the session
    cookie, or minted here. The session row is created lazily.
    """
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")

    if credentials is not None:
        user_id = auth.verify_access_token(credentials.credentials)
        if user_id is None:
            raise _unauthorized("Invalid or expired token")
        user = await storage.get_user(user_id)
        if user is None:
            logger.warning("token_user_missing", user_id=str(user_id))
            raise _unauthorized("Invalid or expired token")
        return Actor(user=user, ip_address=ip_address, user_agent=user_agent)

    session_id = x_session_id or request.cookies.get(settings.anonymous_cookie_name)
    new_session = not session_id
    if not session_id:
        session_id = generate_session_id()

    existing = await storage.get_session(session_id)
    if existing is None:
        await storage.get_or_create_session(session_id, ip_address, user_agent)
        logger.info("anonymous_session_created", session_id=session_id)
    else:
        await storage.touch_session(session_id)

    response.set_cookie(
        settings.anonymous_cookie_name,
        session_id,
        max_age=SESSION_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    response.headers["X-Session-Id"] = session_id

    return Actor(
        session_id=session_id,
        ip_address=ip_address,
        user_agent=user_agent,
        new_session=new_session,
    )


async def require_auth(actor: Actor = Depends(resolve_actor)) -> UserData:
    """Registered user or 401."""
    if actor.user is None:
        raise _unauthorized()
    return actor.user


# ============================================================================
# Token gates
# ============================================================================


@dataclass(frozen=True)
class TokenGate:
    """A caller that passed the pre-flight check, with the estimate to debit later."""

    actor: Actor
    estimated_tokens: int


async def _request_text(request: Request) -> str:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ""
    if isinstance(payload, dict) and isinstance(payload.get("text"), str):
        return payload["text"]
    return ""


async def check_token_limits(
    request: Request,
    actor: Actor = Depends(resolve_actor),
    tokens: TokenService = Depends(get_token_service),
) -> TokenGate:
    """
    Pre-flight check for analysis calls (nothing is debited here).

    Registered callers need a balance covering the input estimate. Anonymous
    callers are checked against the free caps with the configured output
    reservation.
    """
    text = await _request_text(request)
    estimated = tokens.estimate_tokens(text)

    if actor.user is not None:
        decision = await tokens.check_registered_user_tokens(actor.user.user_id, estimated)
        if not decision.can_proceed:
            if decision.message == USER_NOT_FOUND_MESSAGE:
                raise _unauthorized("Invalid or expired token")
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail={
                    "error": "insufficient_tokens",
                    "message": decision.message,
                    "current_balance": decision.current_balance,
                    "required_tokens": estimated,
                },
            )
        return TokenGate(actor=actor, estimated_tokens=estimated)

    session_id = actor.session_id or ""
    decision = await tokens.check_free_user_limits(
        session_id, estimated, tokens.config.free_output_reservation
    )
    if not decision.can_proceed:
        limit_type = decision.limit_type.value if decision.limit_type else None
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "error": "free_limit_exceeded",
                "message": decision.message,
                "limit_type": limit_type,
                "tokens": estimated,
                "tokens_used": decision.tokens_used,
                "allow_partial": limit_type != "total",
            },
        )
    return TokenGate(actor=actor, estimated_tokens=estimated)


async def check_upload_permission(
    actor: Actor = Depends(resolve_actor),
    tokens: TokenService = Depends(get_token_service),
) -> Actor:
    permission = await tokens.can_user_upload_files(actor.user_id, actor.session_id)
    if not permission.can_upload:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "upload_not_allowed", "message": permission.message},
        )
    return actor
