import asyncio

import httpx
import pytest

from gravizot.client.http import AUTH_CSRF, AUTH_ME, AUTH_REFRESH, USERS_ME, ApiClient
from gravizot.client.middleware import AUTH_ENDPOINT_PATTERN, ApiRequest
from gravizot.client.session import SessionContext, SessionController
from gravizot.schemas.user import UserResponse


class FakeSite:
    """In-process stand-in for the API, driven through httpx.MockTransport."""

    def __init__(self, *, refresh_status=200, replay_ok=True, hold_refresh_until=0):
        self.refresh_status = refresh_status
        self.replay_ok = replay_ok
        self.hold_refresh_until = hold_refresh_until
        self.unauthorized = 0
        self.enough_unauthorized = asyncio.Event()
        self.requests = []

    def count(self, method, path):
        return sum(1 for m, p, _ in self.requests if (m, p) == (method, path))

    def _authorized(self, request):
        return self.replay_ok and "at=fresh" in request.headers.get("cookie", "")

    def _unauthorized(self):
        self.unauthorized += 1
        if self.unauthorized >= self.hold_refresh_until:
            self.enough_unauthorized.set()
        return httpx.Response(401, json={"ok": False, "error": "Not authenticated"})

    async def handler(self, request):
        path = request.url.path
        self.requests.append((request.method, path, request.headers))

        if path == AUTH_CSRF:
            return httpx.Response(200, json={"ok": True}, headers={"set-cookie": "csrfToken=tok-1; Path=/"})
        if path == AUTH_REFRESH:
            await self.enough_unauthorized.wait()
            await asyncio.sleep(0.01)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"ok": False, "error": "Refresh failed"})
            return httpx.Response(200, json={"ok": True}, headers={"set-cookie": "at=fresh; Path=/"})
        if path in (AUTH_ME, USERS_ME):
            if self._authorized(request):
                user = {"id": 1, "email": "a@example.com"}
                return httpx.Response(200, json=user if path == AUTH_ME else {"ok": True, "user": user})
            return self._unauthorized()
        if path == "/api/things":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404, json={"ok": False, "error": "Not found"})


def _client(site, context, **kwargs):
    return ApiClient(
        "http://testserver",
        on_session_lost=context.clear,
        transport=httpx.MockTransport(site.handler),
        **kwargs,
    )


def _logged_in_context():
    context = SessionContext()
    context.set_user(UserResponse(id=1, email="a@example.com"))
    return context


def test_auth_endpoints_are_exempt():
    for path in ("/api/auth/login", "/api/auth/signup", "/api/auth/refresh", "/api/auth/me"):
        assert AUTH_ENDPOINT_PATTERN.search(path)
    assert not AUTH_ENDPOINT_PATTERN.search("/api/users/me")
    assert not AUTH_ENDPOINT_PATTERN.search("/api/auth/logout")


def test_request_flags():
    assert ApiRequest("POST", "/x").is_mutating
    assert not ApiRequest("GET", "/x").is_mutating
    assert ApiRequest("GET", "/x", headers={"x-auth-bootstrap": "1"}).is_bootstrap_probe


@pytest.mark.asyncio
async def test_mutating_requests_echo_csrf_cookie():
    site = FakeSite()
    async with _client(site, SessionContext()) as api:
        await api.get(AUTH_CSRF)
        await api.get("/api/things")
        await api.post("/api/things", json={})

    headers = {method: h for method, path, h in site.requests if path == "/api/things"}
    assert headers["POST"]["x-csrf-token"] == "tok-1"
    assert "x-csrf-token" not in headers["GET"]


@pytest.mark.asyncio
async def test_ten_concurrent_401s_share_one_refresh():
    site = FakeSite(hold_refresh_until=10)
    context = _logged_in_context()
    async with _client(site, context) as api:
        responses = await asyncio.gather(*(api.get(USERS_ME) for _ in range(10)))
        assert not api.refresh_coordinator.refreshing

    assert [r.status_code for r in responses] == [200] * 10
    assert site.count("POST", AUTH_REFRESH) == 1
    assert site.count("GET", USERS_ME) == 20
    assert context.is_logged_in


@pytest.mark.asyncio
async def test_refresh_failure_clears_session_and_returns_original_401():
    site = FakeSite(refresh_status=401, hold_refresh_until=10)
    context = _logged_in_context()
    async with _client(site, context) as api:
        responses = await asyncio.gather(*(api.get(USERS_ME) for _ in range(10)))

    assert [r.status_code for r in responses] == [401] * 10
    assert all(r.json()["error"] == "Not authenticated" for r in responses)
    assert site.count("POST", AUTH_REFRESH) == 1
    assert site.count("GET", USERS_ME) == 10
    assert not context.is_logged_in


@pytest.mark.asyncio
async def test_replay_401_is_returned_without_second_refresh():
    site = FakeSite(replay_ok=False)
    context = _logged_in_context()
    async with _client(site, context) as api:
        response = await api.get(USERS_ME)

    assert response.status_code == 401
    assert site.count("GET", USERS_ME) == 2
    assert site.count("POST", AUTH_REFRESH) == 1


@pytest.mark.asyncio
async def test_next_401_after_settle_starts_new_refresh():
    site = FakeSite(replay_ok=False)
    async with _client(site, SessionContext()) as api:
        await api.get(USERS_ME)
        await api.get(USERS_ME)

    assert site.count("POST", AUTH_REFRESH) == 2


@pytest.mark.asyncio
async def test_auth_endpoint_401_does_not_refresh():
    site = FakeSite()
    async with _client(site, SessionContext()) as api:
        response = await api.get(AUTH_ME)

    assert response.status_code == 401
    assert site.count("POST", AUTH_REFRESH) == 0


@pytest.mark.asyncio
async def test_bootstrap_without_session_never_refreshes():
    site = FakeSite()
    context = _logged_in_context()
    async with _client(site, context) as api:
        await SessionController(api, context).bootstrap()
        assert api.cookies.get("csrfToken") == "tok-1"

    assert not context.is_logged_in
    assert site.count("POST", AUTH_REFRESH) == 0
    assert all("x-auth-bootstrap" in h for _, _, h in site.requests)


@pytest.mark.asyncio
async def test_bootstrap_header_suppresses_refresh_on_any_path():
    site = FakeSite()
    async with _client(site, SessionContext()) as api:
        response = await api.get(USERS_ME, headers={"X-Auth-Bootstrap": "1"})

    assert response.status_code == 401
    assert site.count("POST", AUTH_REFRESH) == 0


@pytest.mark.asyncio
async def test_transport_error_during_refresh_keeps_session():
    context = _logged_in_context()

    async def handler(request):
        if request.url.path == AUTH_REFRESH:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(401, json={"ok": False, "error": "Not authenticated"})

    api = ApiClient("http://testserver", on_session_lost=context.clear, transport=httpx.MockTransport(handler))
    async with api:
        response = await api.get(USERS_ME)

    assert response.status_code == 401
    assert context.is_logged_in


@pytest.mark.asyncio
async def test_throttled_refresh_keeps_session_without_replay():
    site = FakeSite(refresh_status=429)
    context = _logged_in_context()
    async with _client(site, context) as api:
        response = await api.get(USERS_ME)

    assert response.status_code == 401
    assert site.count("POST", AUTH_REFRESH) == 1
    assert site.count("GET", USERS_ME) == 1
    assert context.is_logged_in


@pytest.mark.asyncio
async def test_server_error_on_refresh_keeps_session():
    site = FakeSite(refresh_status=503)
    context = _logged_in_context()
    async with _client(site, context) as api:
        response = await api.get(USERS_ME)

    assert response.status_code == 401
    assert context.is_logged_in


@pytest.mark.asyncio
async def test_refreshed_hook_runs_once_per_shared_refresh():
    site = FakeSite(hold_refresh_until=10)
    hooks = []
    async with _client(site, SessionContext(), on_session_refreshed=lambda: hooks.append(1)) as api:
        await asyncio.gather(*(api.get(USERS_ME) for _ in range(10)))

    assert hooks == [1]


@pytest.mark.asyncio
async def test_controller_resyncs_after_silent_refresh():
    site = FakeSite()
    context = SessionContext()
    async with _client(site, context) as api:
        controller = SessionController(api, context)
        assert api.on_session_refreshed == controller.start
        response = await api.get(USERS_ME)
        await asyncio.sleep(0.05)

    assert response.status_code == 200
    assert site.count("GET", AUTH_ME) == 1
    assert context.is_logged_in
    assert context.current_user.email == "a@example.com"


@pytest.mark.asyncio
async def test_bootstrap_survives_transport_errors():
    context = _logged_in_context()

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with ApiClient("http://testserver", transport=httpx.MockTransport(handler)) as api:
        await SessionController(api, context).bootstrap()

    assert not context.is_logged_in
