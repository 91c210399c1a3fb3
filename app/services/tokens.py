"""
Session token issuing, rotation and cookie handling.

An access token (short-lived) and a refresh token (long-lived) are issued
together.  The refresh token is stored on the user row so that logging out
or rotating invalidates the previous one.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from fastapi import Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.database_models import User
from app.utils.security import duration_to_seconds, sign_token, verify_token

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

# Values of the ``typ`` claim
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclasses.dataclass
class TokenPair:
    access_token: str
    refresh_token: str


async def generate_tokens(user: User, db: AsyncSession) -> TokenPair:
    """Sign a new token pair for *user* and remember the refresh token."""
    claims = {
        "sub": user.id,
        "username": user.username,
        "needChangePassword": bool(user.need_change_password),
        "role": user.role,
    }
    pair = TokenPair(
        access_token=sign_token(
            {**claims, "typ": ACCESS_TOKEN_TYPE}, settings.ACCESS_TOKEN_DURATION
        ),
        refresh_token=sign_token(
            {**claims, "typ": REFRESH_TOKEN_TYPE}, settings.REFRESH_TOKEN_DURATION
        ),
    )
    user.refresh_token = pair.refresh_token
    await db.flush()
    return pair


async def refresh_access_token(refresh_token: str, db: AsyncSession) -> Optional[TokenPair]:
    """
    Exchange a refresh token for a new pair.

    Returns None when the token is invalid, expired, or no longer the one
    stored for its user (already rotated or logged out).
    """
    payload = verify_token(refresh_token)
    if not payload or not payload.get("sub") or payload.get("typ") != REFRESH_TOKEN_TYPE:
        return None

    result = await db.execute(
        select(User).where(
            User.id == payload["sub"],
            User.refresh_token == refresh_token,
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.info("Refresh token for sub=%s is not current", payload["sub"])
        return None

    return await generate_tokens(user, db)


def set_token_cookies(response: Response, access_token: str, refresh_token: str) -> Response:
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        max_age=duration_to_seconds(settings.ACCESS_TOKEN_DURATION),
        path="/",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        max_age=duration_to_seconds(settings.REFRESH_TOKEN_DURATION),
        path="/",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    return response


def clear_token_cookies(response: Response) -> Response:
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.set_cookie(
            key=key,
            value="",
            max_age=0,
            path="/",
            secure=settings.COOKIE_SECURE,
            httponly=True,
            samesite="lax",
        )
    return response
