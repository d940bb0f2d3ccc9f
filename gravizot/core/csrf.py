"""Double-submit CSRF protection.

Safe requests plant a readable ``csrfToken`` cookie when the browser has
none. Mutating requests must echo that cookie in the ``X-CSRF-Token``
header; a missing or different value is rejected with 403 before the route
runs. Every accepted mutation rotates the cookie.
"""

from datetime import datetime
import logging
import secrets
from typing import Iterable, Optional

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from gravizot.core.cookies import CSRF_COOKIE, set_csrf_cookie
from gravizot.core.exceptions import CSRFError

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    """
    Generate CSRF token

    Returns:
        str: Random url-safe token
    """
    return secrets.token_urlsafe(24)


def csrf_tokens_match(header_value: Optional[str], cookie_value: Optional[str]) -> bool:
    """Exact, constant-time comparison; empty values never match."""
    if not header_value or not cookie_value:
        return False
    return secrets.compare_digest(header_value.encode("utf-8"), cookie_value.encode("utf-8"))


class CSRFMiddleware(BaseHTTPMiddleware):
    """Plant the CSRF cookie on safe requests and enforce it on mutations."""

    def __init__(self, app: ASGIApp, exempt_paths: Iterable[str] = ()) -> None:
        super().__init__(app)
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        cookie_value = request.cookies.get(CSRF_COOKIE)

        if request.method.upper() in SAFE_METHODS:
            response = await call_next(request)
            if not cookie_value:
                set_csrf_cookie(response, generate_csrf_token())
            return response

        if request.url.path in self.exempt_paths:
            return await call_next(request)

        if not csrf_tokens_match(request.headers.get(CSRF_HEADER), cookie_value):
            logger.warning(
                "CSRF check failed: %s %s",
                request.method,
                request.url.path,
            )
            return self._reject(request, CSRFError())

        response = await call_next(request)
        set_csrf_cookie(response, generate_csrf_token())
        return response

    @staticmethod
    def _reject(request: Request, exc: CSRFError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "ok": False,
                "error": exc.message,
                "path": request.url.path,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )
