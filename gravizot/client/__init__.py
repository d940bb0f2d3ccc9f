"""Async client for the site API: cookie session, CSRF and silent refresh."""

from gravizot.client.http import ApiClient
from gravizot.client.middleware import (
    ApiRequest,
    CsrfCredentialsMiddleware,
    RefreshCoordinator,
    compose,
)
from gravizot.client.session import SessionContext, SessionController
from gravizot.client.singleflight import SingleFlight

__all__ = [
    "ApiClient",
    "ApiRequest",
    "CsrfCredentialsMiddleware",
    "RefreshCoordinator",
    "compose",
    "SessionContext",
    "SessionController",
    "SingleFlight",
]
