"""
Password hashing and JWT helpers.
"""
import logging
import time
import uuid
from typing import Any, Dict, Optional

import bcrypt
import jwt

from app.config import settings

logger = logging.getLogger(__name__)

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def duration_to_seconds(duration: str) -> int:
    """
    Convert a duration string such as ``"30m"`` or ``"7d"`` into seconds.

    Supported units are s, m, h and d.  Anything unparsable yields 0.
    """
    duration = (duration or "").strip()
    if len(duration) < 2:
        return 0
    unit = duration[-1]
    if unit not in _UNIT_SECONDS:
        return 0
    try:
        value = int(duration[:-1])
    except ValueError:
        return 0
    return value * _UNIT_SECONDS[unit]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def sign_token(payload: Dict[str, Any], expires_in: str) -> str:
    """Sign *payload* as an HS256 JWT that expires after *expires_in*."""
    now = int(time.time())
    claims = dict(payload)
    claims["iat"] = now
    claims["exp"] = now + duration_to_seconds(expires_in)
    # Tokens minted in the same second must still differ
    claims["jti"] = uuid.uuid4().hex
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None when it is empty, forged or expired."""
    if not token:
        return None
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.debug("Token rejected: %s", exc)
        return None
