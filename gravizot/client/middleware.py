"""Request middleware for the site API client.

A middleware is an async callable ``(request, call_next) -> httpx.Response``.
:func:`compose` chains a list of them around a terminal ``send`` handler; the
first item in the list is the outermost. The client uses::

    [refresh_coordinator.middleware, CsrfCredentialsMiddleware(...)]

so CSRF attachment runs on every attempt, including the replay after a
refresh, and always reads the latest cookie.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Pattern, Sequence

import httpx

from gravizot.client.singleflight import SingleFlight

logger = logging.getLogger(__name__)

CSRF_COOKIE = "csrfToken"
CSRF_HEADER = "X-CSRF-Token"
BOOTSTRAP_HEADER = "X-Auth-Bootstrap"
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Calls that must never trigger a refresh-and-replay cycle
AUTH_ENDPOINT_PATTERN = re.compile(r"/auth/(login|signup|refresh|me)\b")


@dataclass(frozen=True)
class ApiRequest:
    """An outgoing call, described before cookies are attached."""

    method: str
    url: str
    json: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_mutating(self) -> bool:
        return self.method.upper() not in SAFE_METHODS

    @property
    def is_bootstrap_probe(self) -> bool:
        return any(name.lower() == BOOTSTRAP_HEADER.lower() for name in self.headers)

    def with_header(self, name: str, value: str) -> "ApiRequest":
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)


Handler = Callable[[ApiRequest], Awaitable[httpx.Response]]
Middleware = Callable[[ApiRequest, Handler], Awaitable[httpx.Response]]


def compose(middlewares: Sequence[Middleware], send: Handler) -> Handler:
    """Wrap ``send`` so that ``middlewares[0]`` sees the request first."""
    handler = send
    for middleware in reversed(middlewares):
        handler = _bind(middleware, handler)
    return handler


def _bind(middleware: Middleware, call_next: Handler) -> Handler:
    async def handler(request: ApiRequest) -> httpx.Response:
        return await middleware(request, call_next)
    return handler


def read_cookie(cookies: httpx.Cookies, name: str) -> Optional[str]:
    """Cookie value by name; the most recently stored one wins on duplicates."""
    value = None
    for cookie in cookies.jar:
        if cookie.name == name:
            value = cookie.value
    return value


class CsrfCredentialsMiddleware:
    """Echo the ``csrfToken`` cookie in ``X-CSRF-Token`` on mutating calls.

    Session cookies themselves ride along from the client's cookie jar.
    """

    def __init__(self, cookies: Callable[[], httpx.Cookies]) -> None:
        self._cookies = cookies

    async def __call__(self, request: ApiRequest, call_next: Handler) -> httpx.Response:
        if request.is_mutating:
            token = read_cookie(self._cookies(), CSRF_COOKIE)
            if token:
                request = request.with_header(CSRF_HEADER, token)
        return await call_next(request)


class RefreshCoordinator:
    """Silent re-authentication on 401 with a single shared refresh call.

    All requests that fail with 401 while a refresh is pending wait for that
    same refresh. On success each of them is replayed exactly once; a 401 on
    the replay is returned as is. When the server rejects the refresh
    ``on_failure`` runs (the session is over) and the original 401 response
    is returned. When the refresh cannot complete (a transport error or an
    error status other than 401) the original 401 is returned and the
    session is left alone.
    """

    REFRESH_KEY = "refresh"

    def __init__(
        self,
        refresh_call: Callable[[], Awaitable[bool]],
        on_failure: Callable[[], None],
        exempt_pattern: Pattern[str] = AUTH_ENDPOINT_PATTERN,
    ) -> None:
        self._refresh_call = refresh_call
        self._on_failure = on_failure
        self._exempt_pattern = exempt_pattern
        self._flight = SingleFlight()

    @property
    def refreshing(self) -> bool:
        return self._flight.in_flight(self.REFRESH_KEY)

    def should_refresh(self, request: ApiRequest, response: httpx.Response) -> bool:
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return False
        if request.is_bootstrap_probe:
            return False
        return not self._exempt_pattern.search(request.url)

    async def refresh(self) -> Optional[bool]:
        """
        Join the pending refresh or start one.

        Returns:
            True when refreshed, False when the server rejected the session,
            None when the refresh could not complete
        """
        try:
            return await self._flight.do(self.REFRESH_KEY, self._refresh_call)
        except httpx.HTTPError as exc:
            logger.warning("Session refresh unavailable: %s", exc)
            return None

    async def middleware(self, request: ApiRequest, call_next: Handler) -> httpx.Response:
        response = await call_next(request)
        if not self.should_refresh(request, response):
            return response

        refreshed = await self.refresh()
        if refreshed is None:
            return response
        if not refreshed:
            self._on_failure()
            return response

        return await call_next(request)
