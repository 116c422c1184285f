"""
Auth routes - registration, login and the current user.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_auth_service, require_auth
from app.exceptions import InvalidCredentialsError, UserAlreadyExistsError
from app.models.api import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from app.models.domain import UserData
from app.services.auth import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


def user_to_response(user: UserData) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        role=user.role,
        token_balance=user.token_balance,
        created_at=user.created_at.isoformat(),
    )


def _auth_response(auth: AuthService, user: UserData) -> AuthResponse:
    return AuthResponse(
        access_token=auth.create_access_token(user),
        expires_in=auth.token_lifetime_seconds,
        user=user_to_response(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Create an account. New accounts start with a zero balance."""
    try:
        user = await auth.register(request.email, request.password)
    except UserAlreadyExistsError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "user_exists", "message": "User already exists"},
        ) from exc
    return _auth_response(auth, user)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    try:
        user = await auth.login(request.email, request.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_credentials", "message": exc.message},
        ) from exc
    return _auth_response(auth, user)


@router.get("/me", response_model=UserResponse)
async def me(user: UserData = Depends(require_auth)) -> UserResponse:
    return user_to_response(user)
