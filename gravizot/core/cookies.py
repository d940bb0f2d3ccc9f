"""Session and CSRF cookie helpers.

Every cookie this service sets shares one attribute policy (path, domain,
SameSite, Secure). Browsers only delete a cookie when the clearing
``Set-Cookie`` carries the same path and domain it was set with, so both
setting and clearing go through :func:`cookie_policy`.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from starlette.responses import Response

from gravizot.config import settings

ACCESS_COOKIE = "at"
REFRESH_COOKIE = "rt"
CSRF_COOKIE = "csrfToken"


def cookie_policy(httponly: bool = True) -> Dict[str, Any]:
    """Shared cookie attributes for the current environment."""
    return {
        "path": settings.COOKIE_PATH,
        "domain": settings.COOKIE_DOMAIN,
        "secure": settings.is_production,
        "httponly": httponly,
        "samesite": settings.COOKIE_SAMESITE,
    }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _seconds_until(expires_at: datetime) -> int:
    return max(0, int((expires_at - datetime.now(timezone.utc)).total_seconds()))


def set_session_cookies(
    response: Response,
    access_token: str,
    refresh_token: str,
    refresh_expires_at: datetime,
) -> None:
    """Write the access/refresh pair as HttpOnly cookies."""
    refresh_expires_at = _as_utc(refresh_expires_at)
    policy = cookie_policy(httponly=True)
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_TTL_SECONDS,
        **policy,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=_seconds_until(refresh_expires_at),
        expires=refresh_expires_at,
        **policy,
    )


def clear_session_cookies(response: Response) -> None:
    """Expire both session cookies using the attributes they were set with."""
    policy = cookie_policy(httponly=True)
    response.delete_cookie(ACCESS_COOKIE, **policy)
    response.delete_cookie(REFRESH_COOKIE, **policy)


def set_csrf_cookie(response: Response, token: str) -> None:
    """The CSRF cookie must stay readable so the client can echo it in a header."""
    response.set_cookie(
        CSRF_COOKIE,
        token,
        max_age=settings.CSRF_TOKEN_TTL_SECONDS,
        **cookie_policy(httponly=False),
    )
