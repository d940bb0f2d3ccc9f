"""Async HTTP client for the site API."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from gravizot.client.middleware import (
    ApiRequest,
    CsrfCredentialsMiddleware,
    RefreshCoordinator,
    compose,
)

logger = logging.getLogger(__name__)

AUTH_CSRF = "/api/auth/csrf"
AUTH_SIGNUP = "/api/auth/signup"
AUTH_LOGIN = "/api/auth/login"
AUTH_LOGOUT = "/api/auth/logout"
AUTH_REFRESH = "/api/auth/refresh"
AUTH_ME = "/api/auth/me"
USERS_ME = "/api/users/me"


class ApiClient:
    """Cookie-based API client with CSRF attachment and silent refresh.

    The underlying ``httpx.AsyncClient`` cookie jar plays the role of the
    browser's cookie store. Use as an async context manager, or call
    :meth:`open` / :meth:`aclose` explicitly.
    """

    def __init__(
        self,
        base_url: str,
        *,
        on_session_lost: Callable[[], None] = lambda: None,
        on_session_refreshed: Callable[[], Any] = lambda: None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url
        self._transport = transport
        self._timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None
        # Called once per successful silent refresh
        self.on_session_refreshed = on_session_refreshed

        credentials = CsrfCredentialsMiddleware(lambda: self.http.cookies)
        self.refresh_coordinator = RefreshCoordinator(
            refresh_call=self._refresh_session,
            on_failure=on_session_lost,
        )
        # Refresh calls skip the coordinator so they can never recurse.
        self._inner = compose([credentials], self._send)
        self._pipeline = compose([self.refresh_coordinator.middleware, credentials], self._send)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("ApiClient is not open")
        return self._http

    @property
    def cookies(self) -> httpx.Cookies:
        return self.http.cookies

    async def open(self) -> "ApiClient":
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                transport=self._transport,
                timeout=self._timeout,
            )
        return self

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "ApiClient":
        return await self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _send(self, request: ApiRequest) -> httpx.Response:
        # Cookies are attached here from the jar, so a replay sees refreshed ones.
        return await self.http.request(
            request.method,
            request.url,
            json=request.json,
            headers=request.headers,
        )

    async def _refresh_session(self) -> bool:
        """
        Exchange the refresh cookie for a new session.

        Returns False when the server rejects the session with 401. Any
        other error status, such as a 429 from throttling, is raised as
        ``httpx.HTTPStatusError``: the session may still be valid.
        """
        response = await self._inner(ApiRequest("POST", AUTH_REFRESH))
        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info("Refresh rejected with status %s", response.status_code)
            return False
        response.raise_for_status()
        self.on_session_refreshed()
        return True

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self._pipeline(ApiRequest(method.upper(), url, json=json, headers=dict(headers or {})))

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)
