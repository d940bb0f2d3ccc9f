import pytest

from gravizot.config import Settings


def test_development_defaults_pass_validation():
    Settings(ENVIRONMENT="development").validate_security_settings()


def test_production_rejects_weak_secret():
    with pytest.raises(ValueError):
        Settings(ENVIRONMENT="production", SECRET_KEY="change-me").validate_security_settings()


def test_production_accepts_strong_secret():
    Settings(ENVIRONMENT="production", SECRET_KEY="x" * 64).validate_security_settings()


def test_samesite_none_requires_production():
    with pytest.raises(ValueError):
        Settings(ENVIRONMENT="development", COOKIE_SAMESITE="none").validate_security_settings()


def test_low_hash_rounds_rejected():
    with pytest.raises(ValueError):
        Settings(PASSWORD_HASH_ROUNDS=4).validate_security_settings()


def test_samesite_is_normalized():
    assert Settings(COOKIE_SAMESITE=" Strict ").COOKIE_SAMESITE == "strict"
    with pytest.raises(ValueError):
        Settings(COOKIE_SAMESITE="sometimes")


def test_empty_cookie_domain_means_host_only():
    assert Settings(COOKIE_DOMAIN="").COOKIE_DOMAIN is None


def test_list_settings_accept_comma_separated():
    settings = Settings(CSRF_EXEMPT_PATHS="/api/hooks/a, /api/hooks/b")
    assert settings.CSRF_EXEMPT_PATHS == ["/api/hooks/a", "/api/hooks/b"]
