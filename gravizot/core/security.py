"""Security utilities - access token codec and password hashing"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Dict, Any
from jose import JWTError, jwt
import bcrypt
from gravizot.config import settings

ACCESS_TOKEN_TYPE = "access"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash or over-long password
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=settings.PASSWORD_HASH_ROUNDS)
    ).decode('utf-8')


@lru_cache()
def _dummy_password_hash() -> str:
    return get_password_hash("gravizot-dummy-password")


def burn_password_check(password: str) -> None:
    """Spend the same bcrypt work as a real check when the user does not exist."""
    verify_password(password, _dummy_password_hash())


def sign_access_token(user_id: int, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token for a user

    Args:
        user_id: User ID (``uid`` claim)
        email: Normalized email (``email`` claim)
        expires_delta: Override for the configured TTL

    Returns:
        str: Encoded JWT
    """
    now = datetime.now(timezone.utc)
    ttl = expires_delta if expires_delta is not None else timedelta(seconds=settings.ACCESS_TOKEN_TTL_SECONDS)
    claims = {
        "uid": user_id,
        "email": email,
        "typ": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_access_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode and verify an access token

    Malformed, forged, expired and non-access tokens all yield ``None``;
    callers cannot tell the cases apart.

    Args:
        token: JWT string (usually the ``at`` cookie)

    Returns:
        Optional[Dict]: Decoded claims or None if invalid
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != ACCESS_TOKEN_TYPE or payload.get("uid") is None:
        return None
    return payload
