"""Client-side session state and the operations that change it."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from gravizot.client.http import (
    AUTH_CSRF,
    AUTH_LOGIN,
    AUTH_LOGOUT,
    AUTH_ME,
    AUTH_SIGNUP,
    ApiClient,
)
from gravizot.client.middleware import BOOTSTRAP_HEADER
from gravizot.schemas.user import UserResponse

logger = logging.getLogger(__name__)


class SessionContext:
    """Who the client believes is logged in.

    Only :class:`SessionController` (and the refresh coordinator, through
    :meth:`clear`) should change it.
    """

    def __init__(self) -> None:
        self.current_user: Optional[UserResponse] = None

    @property
    def is_logged_in(self) -> bool:
        return self.current_user is not None

    def set_user(self, user: UserResponse) -> None:
        self.current_user = user

    def clear(self) -> None:
        self.current_user = None


class SessionController:
    """Bootstrap, login, signup and logout against the site API.

    Typical wiring::

        context = SessionContext()
        async with ApiClient(base_url, on_session_lost=context.clear) as api:
            controller = SessionController(api, context)
            controller.start()
    """

    def __init__(self, api: ApiClient, context: SessionContext) -> None:
        self.api = api
        self.context = context
        self._bootstrap_task: Optional[asyncio.Task] = None
        # Resync who-am-I in the background after every silent refresh.
        api.on_session_refreshed = self.start

    def start(self) -> asyncio.Task:
        """Run :meth:`bootstrap` in the background; startup does not wait for it."""
        if self._bootstrap_task is None or self._bootstrap_task.done():
            self._bootstrap_task = asyncio.ensure_future(self.bootstrap())
        return self._bootstrap_task

    async def bootstrap(self) -> None:
        """
        Sync local state with the server. Never raises.

        Plants the CSRF cookie, then probes who-am-I. The probe carries the
        bootstrap header so a 401 here does not start a refresh.
        """
        probe = {BOOTSTRAP_HEADER: "1"}
        try:
            await self.api.get(AUTH_CSRF, headers=probe)
        except httpx.HTTPError as exc:
            logger.debug("CSRF warm-up failed: %s", exc)

        user = None
        try:
            response = await self.api.get(AUTH_ME, headers=probe)
            if response.is_success:
                user = UserResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.debug("Session probe failed: %s", exc)

        if user is not None and user.email:
            self.context.set_user(user)
        else:
            self.context.clear()

    async def login(self, email: str, password: str) -> Optional[UserResponse]:
        """
        Log in and resync state from the server

        Raises:
            httpx.HTTPStatusError: On rejected credentials or input
        """
        response = await self.api.post(AUTH_LOGIN, json={"email": email, "password": password})
        response.raise_for_status()
        await self.bootstrap()
        return self.context.current_user

    async def signup(self, email: str, password: str) -> Optional[UserResponse]:
        """
        Create an account and resync state from the server

        Raises:
            httpx.HTTPStatusError: On invalid input or an existing email
        """
        response = await self.api.post(AUTH_SIGNUP, json={"email": email, "password": password})
        response.raise_for_status()
        await self.bootstrap()
        return self.context.current_user

    async def logout(self) -> None:
        """
        Log out. Local state is cleared once the server answers successfully;
        errors are raised to the caller.
        """
        if self._bootstrap_task is not None and not self._bootstrap_task.done():
            # A late who-am-I check must not restore the user after logout.
            await self._bootstrap_task
        response = await self.api.post(AUTH_LOGOUT)
        response.raise_for_status()
        self.clear()

    def clear(self) -> None:
        self.context.clear()
