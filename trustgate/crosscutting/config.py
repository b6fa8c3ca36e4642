"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match the reference verification flow

Collaborators:
  - container.py: builds engines, stores and adapters from settings
  - crosscutting/logger.py: reads log level / JSON mode
  - infrastructure/services/retry.py: reads retry attempts and delays

Constraints:
  - Lives in the outer layers, NOT in domain/application
  - No business logic, pure configuration
  - The role -> inactivity table is a domain constant and is NOT configurable

Notes:
  - Singleton via lru_cache for performance
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_env: Application environment (development/production/test)
        log_level: Root log level (default: INFO)
        log_json: Emit JSON log lines (default: True)
        captcha_length: Characters per challenge (default: 6)
        captcha_max_attempts: Failed attempts before lockout (default: 5)
        captcha_case_sensitive: Exact-case challenge comparison (default: True)
        otp_ttl_seconds: One-time code validity window, 0 disables (default: 60)
        expiry_tick_seconds: Cadence of the expiry watchdog (default: 1.0)
        session_expiring_soon_ratio: Progress ratio flagged as expiring (default: 0.25)
        pending_session_ttl_seconds: Lifetime of a session that never signed in (default: 600)
        max_pending_sessions: Cap on live sessions that never signed in (default: 10000)
        auth_api_url: Base URL of the credential / code dispatch service
        auth_timeout_seconds: Timeout for POST /auth/signin
        dispatch_timeout_seconds: Timeout for POST /auth/request-otp
        fake_dispatch: Keep codes in an in-memory outbox (dev/CI)
        redis_url: Redis connection string (optional)
        session_store_backend: memory|redis (default: memory)
        session_key_prefix: Key prefix for persisted sessions
    """

    # Environment
    app_env: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # CAPTCHA gate
    captcha_length: int = 6
    captcha_max_attempts: int = 5
    captcha_case_sensitive: bool = True

    # One-time code gate
    otp_ttl_seconds: int = 60

    # Session lifecycle
    expiry_tick_seconds: float = 1.0
    session_expiring_soon_ratio: float = 0.25
    pending_session_ttl_seconds: float = 600.0
    max_pending_sessions: int = 10_000

    # External collaborators
    auth_api_url: str = ""
    auth_timeout_seconds: float = 10.0
    dispatch_timeout_seconds: float = 10.0

    # Testing/CI
    fake_dispatch: bool = False

    # Persistence
    redis_url: str = ""
    session_store_backend: str = "memory"
    session_key_prefix: str = "trustgate:session:"

    # Retry/Resilience (storage only; collaborator timeouts are never retried)
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    @field_validator("captcha_length")
    @classmethod
    def captcha_length_must_fit_letter_and_digit(cls, v: int) -> int:
        if v < 2:
            raise ValueError("captcha_length must be >= 2")
        return v

    @field_validator(
        "captcha_max_attempts", "retry_max_attempts", "max_pending_sessions"
    )
    @classmethod
    def limits_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("limits must be >= 1")
        return v

    @field_validator("otp_ttl_seconds")
    @classmethod
    def otp_ttl_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("otp_ttl_seconds must be >= 0")
        return v

    @field_validator(
        "expiry_tick_seconds",
        "auth_timeout_seconds",
        "dispatch_timeout_seconds",
        "pending_session_ttl_seconds",
    )
    @classmethod
    def durations_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be greater than 0")
        return v

    @field_validator("session_expiring_soon_ratio")
    @classmethod
    def expiring_soon_ratio_valid(cls, v: float) -> float:
        if v <= 0 or v >= 1:
            raise ValueError("session_expiring_soon_ratio must be between 0 and 1")
        return v

    @field_validator("session_store_backend")
    @classmethod
    def session_store_backend_valid(cls, v: str) -> str:
        backend = (v or "memory").strip().lower()
        if backend not in {"memory", "redis"}:
            raise ValueError("session_store_backend must be memory or redis")
        return backend

    @model_validator(mode="after")
    def validate_store_requirements(self):
        if self.session_store_backend == "redis" and not self.redis_url.strip():
            raise ValueError("REDIS_URL is required when SESSION_STORE_BACKEND=redis")
        return self

    @model_validator(mode="after")
    def validate_security_requirements(self):
        if not self.is_production():
            return self

        if not self.auth_api_url.strip():
            raise ValueError("AUTH_API_URL is required in production")
        if self.fake_dispatch:
            raise ValueError("FAKE_DISPATCH must be false in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
