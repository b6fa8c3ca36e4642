"""
Unit tests for trustgate/crosscutting/config.py (Settings validation).

Tests:
  - Default values
  - Range validation (captcha length, attempts, ttl, ratio)
  - Cross-field validation (redis backend, production requirements)

Note:
  - Uses monkeypatch to set environment variables
"""

import pytest
from pydantic import ValidationError

from trustgate.crosscutting.config import Settings, get_settings

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "APP_ENV",
        "AUTH_API_URL",
        "FAKE_DISPATCH",
        "REDIS_URL",
        "SESSION_STORE_BACKEND",
        "CAPTCHA_LENGTH",
        "CAPTCHA_MAX_ATTEMPTS",
        "OTP_TTL_SECONDS",
        "SESSION_EXPIRING_SOON_RATIO",
        "PENDING_SESSION_TTL_SECONDS",
        "MAX_PENDING_SESSIONS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        """R: Should apply the documented defaults."""
        settings = Settings()

        assert settings.captcha_length == 6
        assert settings.captcha_max_attempts == 5
        assert settings.captcha_case_sensitive is True
        assert settings.otp_ttl_seconds == 60
        assert settings.session_store_backend == "memory"
        assert settings.session_expiring_soon_ratio == 0.25
        assert settings.pending_session_ttl_seconds == 600.0
        assert settings.max_pending_sessions == 10_000
        assert settings.is_production() is False

    def test_env_overrides(self, monkeypatch):
        """R: Should read values from the environment."""
        monkeypatch.setenv("CAPTCHA_LENGTH", "8")
        monkeypatch.setenv("OTP_TTL_SECONDS", "0")
        monkeypatch.setenv("SESSION_STORE_BACKEND", " Redis ")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")

        settings = Settings()

        assert settings.captcha_length == 8
        assert settings.otp_ttl_seconds == 0
        assert settings.session_store_backend == "redis"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("CAPTCHA_LENGTH", "1"),
            ("CAPTCHA_MAX_ATTEMPTS", "0"),
            ("OTP_TTL_SECONDS", "-1"),
            ("SESSION_EXPIRING_SOON_RATIO", "1.5"),
            ("SESSION_STORE_BACKEND", "postgres"),
            ("PENDING_SESSION_TTL_SECONDS", "0"),
            ("MAX_PENDING_SESSIONS", "0"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        """R: Should reject out-of-range values."""
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            Settings()

    def test_redis_backend_requires_url(self, monkeypatch):
        """R: Should require REDIS_URL for the redis backend."""
        monkeypatch.setenv("SESSION_STORE_BACKEND", "redis")
        with pytest.raises(ValidationError, match="REDIS_URL"):
            Settings()

    def test_production_requires_auth_url(self, monkeypatch):
        """R: Should require AUTH_API_URL in production."""
        monkeypatch.setenv("APP_ENV", "production")
        with pytest.raises(ValidationError, match="AUTH_API_URL"):
            Settings()

    def test_production_rejects_fake_dispatch(self, monkeypatch):
        """R: Should refuse the fake outbox in production."""
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("AUTH_API_URL", "https://auth.corp.test")
        monkeypatch.setenv("FAKE_DISPATCH", "true")
        with pytest.raises(ValidationError, match="FAKE_DISPATCH"):
            Settings()

    def test_get_settings_is_cached(self):
        """R: Should return the same instance until cache_clear."""
        assert get_settings() is get_settings()
