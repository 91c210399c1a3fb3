"""
Account and session endpoints.

Route summary
-------------
POST /api/auth/register              create an account (needs the register code)
POST /api/auth/login                 log in, set session cookies
POST /api/auth/logout                forget the refresh token, clear cookies
POST /api/auth/refresh               rotate tokens from the refresh cookie
GET  /api/auth/me                    current user profile
POST /api/auth/need-change-password  set a new password after first login
"""
import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies.auth import get_current_user, get_optional_user
from app.models.database_models import User, UserRole
from app.models.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    DataResponse,
    LoginRequest,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    UserProfile,
    UserSummary,
)
from app.services.tokens import (
    clear_token_cookies,
    generate_tokens,
    refresh_access_token,
    set_token_cookies,
)
from app.utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Create an account. New users must change their password on first login."""
    if not settings.REGISTER_CODE or body.register_code != settings.REGISTER_CODE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid register code",
        )

    existing = await db.execute(select(User).where(User.username == body.username))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This username is already taken",
        )

    user = User(
        username=body.username,
        name=body.name,
        password=hash_password(body.password),
        role=UserRole.USER.value,
        need_change_password=True,
    )
    db.add(user)
    await db.flush()

    tokens = await generate_tokens(user, db)
    logger.info("Registered user id=%s username=%r", user.id, user.username)

    return AuthResponse(
        message="Registration successful",
        user=UserSummary.model_validate(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    result = await db.execute(select(User).where(User.username == body.username))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account does not exist",
        )

    if not verify_password(body.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )

    tokens = await generate_tokens(user, db)
    set_token_cookies(response, tokens.access_token, tokens.refresh_token)
    logger.info("User %r logged in", user.username)

    return AuthResponse(
        message="Login successful",
        user=UserSummary.model_validate(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    user: Optional[User] = Depends(get_optional_user),
) -> MessageResponse:
    """Always succeeds; the stored refresh token is only cleared for a valid session."""
    if user is not None:
        user.refresh_token = None
        logger.info("User %r logged out", user.username)

    clear_token_cookies(response)
    return MessageResponse(message="Logout successful")


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(None),
    db: AsyncSession = Depends(get_db),
) -> RefreshResponse:
    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token not found",
        )

    tokens = await refresh_access_token(refresh_token, db)
    if tokens is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    set_token_cookies(response, tokens.access_token, tokens.refresh_token)
    return RefreshResponse()


@router.get("/me", response_model=DataResponse[UserProfile])
async def me(user: User = Depends(get_current_user)) -> DataResponse[UserProfile]:
    return DataResponse[UserProfile](data=UserProfile.model_validate(user))


@router.post("/need-change-password", response_model=MessageResponse)
async def change_initial_password(
    body: ChangePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Replace the initial password; only allowed while the user is flagged."""
    if not user.need_change_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password change is not required",
        )

    user.password = hash_password(body.password)
    user.need_change_password = False

    # Re-issue so the needChangePassword claim is current
    tokens = await generate_tokens(user, db)
    set_token_cookies(response, tokens.access_token, tokens.refresh_token)

    return MessageResponse(message="Password changed successfully")
