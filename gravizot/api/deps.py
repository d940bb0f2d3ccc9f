"""API dependencies - authentication gate and request metadata"""

from fastapi import Cookie, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from gravizot.core.cookies import ACCESS_COOKIE
from gravizot.core.database import get_db
from gravizot.core.security import verify_access_token
from gravizot.core.exceptions import AuthenticationError
from gravizot.models.user import User
from gravizot.services.user_service import user_service


def get_current_user(
    access_token: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from the access-token cookie

    The user row is always loaded from the database, so profile edits are
    visible before the token is re-issued.

    Args:
        access_token: Value of the ``at`` cookie
        db: Database session

    Returns:
        Current user

    Raises:
        AuthenticationError: If the cookie is missing, the token is invalid
            or the user no longer exists
    """
    if not access_token:
        raise AuthenticationError("Not authenticated")

    payload = verify_access_token(access_token)
    if not payload:
        raise AuthenticationError("Invalid token")

    user = user_service.get_user_by_id(db, int(payload["uid"]))
    if not user:
        raise AuthenticationError("User not found")

    return user


def get_client_ip(request: Request) -> str:
    """Client address as seen by the server"""
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    """User-Agent header, if any"""
    return request.headers.get("user-agent")
