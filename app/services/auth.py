"""
Authentication service - e-mail/password accounts and JWT bearer tokens.

Passwords are hashed with argon2. Admin status is a stored role, seeded at
registration from the configured admin e-mail list.
"""

import secrets
import string
import time
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

from app.config import Settings, settings
from app.db.storage import Storage
from app.exceptions import InvalidCredentialsError, UserAlreadyExistsError
from app.models.api import UserRole
from app.models.domain import UserData
from app.observability.logging import get_logger
from app.services.tokens import TokenService

logger = get_logger(__name__)

SESSION_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """Anonymous session token: anon_<epoch ms>_<9 random chars>."""
    suffix = "".join(secrets.choice(SESSION_ALPHABET) for _ in range(9))
    return f"anon_{int(time.time() * 1000)}_{suffix}"


class AuthService:
    """Registration, login and access tokens."""

    def __init__(
        self, storage: Storage, tokens: TokenService, config: Settings = settings
    ) -> None:
        self.storage = storage
        self.tokens = tokens
        self.config = config
        self.password_hasher = PasswordHasher()

    @property
    def token_lifetime_seconds(self) -> int:
        return self.config.jwt_expire_hours * 3600

    async def register(self, email: str, password: str) -> UserData:
        """
        Create an account with a zero balance (admins are pinned to unlimited).

        Raises:
            UserAlreadyExistsError: E-mail already registered
        """
        email = email.strip().lower()
        if await self.storage.get_user_by_email(email) is not None:
            raise UserAlreadyExistsError(email)

        role = UserRole.ADMIN if email in self.config.admin_email_set else UserRole.USER
        user = await self.storage.create_user(
            email, self.password_hasher.hash(password), role
        )
        if user.is_admin:
            user = await self.tokens.pin_admin_balance(user)

        logger.info("user_registered", user_id=str(user.user_id), role=user.role.value)
        return user

    async def login(self, email: str, password: str) -> UserData:
        """
        Raises:
            InvalidCredentialsError: Unknown e-mail or wrong password
        """
        email = email.strip().lower()
        user = await self.storage.get_user_by_email(email)
        if user is None:
            logger.warning("login_unknown_email")
            raise InvalidCredentialsError()

        try:
            self.password_hasher.verify(user.password_hash, password)
        except (VerifyMismatchError, InvalidHashError):
            logger.warning("login_password_mismatch", user_id=str(user.user_id))
            raise InvalidCredentialsError()

        if user.is_admin:
            user = await self.tokens.pin_admin_balance(user)

        logger.info("user_logged_in", user_id=str(user.user_id))
        return user

    def create_access_token(self, user: UserData) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": str(user.user_id),
            "email": user.email,
            "role": user.role.value,
            "iat": now,
            "exp": now + timedelta(hours=self.config.jwt_expire_hours),
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def verify_access_token(self, token: str) -> UUID | None:
        """Return the user id carried by a valid token, else None."""
        try:
            payload = jwt.decode(
                token, self.config.jwt_secret, algorithms=[self.config.jwt_algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            return None

        try:
            return UUID(str(payload.get("sub")))
        except ValueError:
            logger.warning("jwt_subject_invalid")
            return None
