"""
Authentication dependencies for FastAPI routes.

The session lives in the ``access_token`` cookie (an ``Authorization: Bearer``
header is accepted as well for API clients).  Missing or invalid tokens
yield 401 with code ``TRY_REFRESH_TOKEN`` so the frontend knows to call
``/api/auth/refresh``.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import ApiError, UnauthorizedError
from app.models.database_models import Article, User, UserRole
from app.services.tokens import ACCESS_TOKEN_TYPE
from app.utils.security import verify_token

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_optional_user(
    access_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Resolve the session user, or None when there is no valid session."""
    token = access_token or _bearer_token(authorization)
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        logger.debug("Rejected %s token used as a session", payload.get("typ"))
        return None

    result = await db.execute(select(User).where(User.id == payload["sub"]))
    return result.scalar_one_or_none()


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    """Return the session user. Raises 401 if there is none."""
    if user is None:
        raise UnauthorizedError()
    return user


async def require_admin(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    """Return the session user if they are an admin."""
    if user is None:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "Authentication required",
            code="AUTH_ERROR",
            extra={"success": False},
        )
    if user.role != UserRole.ADMIN.value:
        raise ApiError(
            status.HTTP_403_FORBIDDEN,
            "Admin access required",
            code="AUTH_ERROR",
            extra={"success": False},
        )
    return user


async def _load_article(article_id: str, db: AsyncSession) -> Article:
    result = await db.execute(select(Article).where(Article.id == article_id))
    article = result.scalar_one_or_none()
    if article is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Article not found",
        )
    return article


async def load_owned_article(
    article_id: str, user: User, db: AsyncSession, action: str = "modify"
) -> Article:
    """
    Load the article and verify *user* authored it.  Raises 404 if it does
    not exist and 403 (mentioning *action*) if it belongs to someone else.
    """
    article = await _load_article(article_id, db)
    if article.author_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You do not have permission to {action} this article",
        )
    return article


def owned_article(action: str = "modify"):
    """Dependency form of load_owned_article for routes with an ``article_id`` path."""

    async def _dependency(
        article_id: str,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> Article:
        return await load_owned_article(article_id, user, db, action)

    return _dependency


get_owned_article = owned_article()


async def get_readable_article(
    article_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Article:
    """Load an article for the AI tool routes, which only its author may use."""
    article = await _load_article(article_id, db)
    if article.author_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You don't have access to this article",
        )
    return article


async def get_existing_article(
    article_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Article:
    """Load an article for a plain read: any signed-in user, 404 when missing."""
    return await _load_article(article_id, db)
