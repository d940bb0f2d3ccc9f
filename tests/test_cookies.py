from datetime import datetime, timedelta, timezone

from starlette.responses import Response

from gravizot.config import settings
from gravizot.core.cookies import (
    clear_session_cookies,
    set_csrf_cookie,
    set_session_cookies,
)


def _parse(header):
    """Split a Set-Cookie header into (name, value, {attribute: value})."""
    first, *rest = [part.strip() for part in header.split(";")]
    name, _, value = first.partition("=")
    attributes = {}
    for part in rest:
        key, _, attr_value = part.partition("=")
        attributes[key.lower()] = attr_value or True
    return name, value, attributes


def _cookies(response):
    return {name: (value, attrs) for name, value, attrs in map(_parse, response.headers.getlist("set-cookie"))}


def _policy(attrs):
    return {key: attrs.get(key) for key in ("path", "domain", "samesite", "secure", "httponly")}


def _set_pair():
    response = Response()
    set_session_cookies(
        response,
        "access-value",
        "refresh-value",
        datetime.now(timezone.utc) + timedelta(days=7),
    )
    return _cookies(response)


def test_session_cookies_are_httponly_and_scoped():
    cookies = _set_pair()

    access_value, access = cookies["at"]
    refresh_value, refresh = cookies["rt"]
    assert access_value == "access-value"
    assert refresh_value == "refresh-value"
    for attrs in (access, refresh):
        assert attrs["httponly"] is True
        assert attrs["path"] == "/"
        assert attrs["samesite"].lower() == "lax"
        assert "secure" not in attrs
    assert access["max-age"] == str(settings.ACCESS_TOKEN_TTL_SECONDS)
    assert 7 * 24 * 3600 - 60 <= int(refresh["max-age"]) <= 7 * 24 * 3600
    assert "expires" in refresh


def test_clear_uses_same_attributes_as_set():
    set_cookies = _set_pair()
    response = Response()
    clear_session_cookies(response)
    cleared = _cookies(response)

    for name in ("at", "rt"):
        _, attrs = cleared[name]
        assert attrs["max-age"] == "0"
        assert _policy(attrs) == _policy(set_cookies[name][1])


def test_csrf_cookie_is_readable():
    response = Response()
    set_csrf_cookie(response, "token-value")
    value, attrs = _cookies(response)["csrfToken"]

    assert value == "token-value"
    assert "httponly" not in attrs
    assert attrs["max-age"] == str(settings.CSRF_TOKEN_TTL_SECONDS)
    assert attrs["path"] == "/"


def test_production_cookies_are_secure(monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    monkeypatch.setattr(settings, "COOKIE_DOMAIN", "example.com")

    cookies = _set_pair()
    response = Response()
    clear_session_cookies(response)
    cleared = _cookies(response)

    for name in ("at", "rt"):
        assert cookies[name][1]["secure"] is True
        assert cookies[name][1]["domain"] == "example.com"
        assert _policy(cleared[name][1]) == _policy(cookies[name][1])
