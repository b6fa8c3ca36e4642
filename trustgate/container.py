"""
===============================================================================
TARJETA CRC — trustgate/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer dependencias (stores, adapters, motores) siguiendo DIP.
  - Exponer factories para FastAPI (Depends).
  - Mantener singletons con caching (lru_cache) para recursos compartidos
    (clientes HTTP, stores, reloj) y para el gate de código, que guarda a lo
    sumo UN código vigente por principal entre todas sus sesiones.
  - Construir una máquina de verificación por sesión, con su propio motor de
    CAPTCHA (el contador de intentos es de la sesión).

Colaboradores:
  - trustgate.crosscutting.config.get_settings
  - trustgate.application.* (motores y máquina de estados)
  - trustgate.infrastructure.* (implementaciones)

Notas:
  - Este archivo NO contiene lógica de negocio.
  - Este archivo NO depende de FastAPI.
===============================================================================
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from .application.captcha import CaptchaEngine
from .application.one_time_code import OneTimeCodeGate
from .application.session_lifecycle import SessionLifecycleManager
from .application.session_registry import SessionRegistry
from .application.verification import VerificationStateMachine
from .crosscutting.config import get_settings
from .crosscutting.logger import logger
from .domain.repositories import SecurityEventRepository, VerificationStateRepository
from .domain.services import Authenticator, Clock, CodeDispatcher
from .infrastructure.clock import SystemClock
from .infrastructure.repositories.in_memory import (
    InMemorySecurityEventRepository,
    InMemoryVerificationStateRepository,
)
from .infrastructure.repositories.redis_state import RedisVerificationStateRepository
from .infrastructure.services.fake_code_dispatcher import FakeCodeDispatcher
from .infrastructure.services.http_authenticator import HttpAuthenticator
from .infrastructure.services.http_code_dispatcher import HttpCodeDispatcher


# =============================================================================
# Recursos compartidos (sin estado de sesión)
# =============================================================================
@lru_cache(maxsize=1)
def get_clock() -> Clock:
    return SystemClock()


@lru_cache(maxsize=1)
def get_state_repository() -> VerificationStateRepository:
    settings = get_settings()
    if settings.session_store_backend == "redis":
        logger.info("Using Redis session store")
        return RedisVerificationStateRepository.from_url(
            settings.redis_url,
            clock=get_clock(),
            key_prefix=settings.session_key_prefix,
        )
    return InMemoryVerificationStateRepository()


@lru_cache(maxsize=1)
def get_security_event_repository() -> SecurityEventRepository:
    return InMemorySecurityEventRepository()


@lru_cache(maxsize=1)
def get_authenticator() -> Authenticator:
    settings = get_settings()
    return HttpAuthenticator(
        settings.auth_api_url, timeout=settings.auth_timeout_seconds
    )


@lru_cache(maxsize=1)
def get_code_dispatcher() -> CodeDispatcher:
    settings = get_settings()
    if settings.fake_dispatch:
        logger.warning("FAKE_DISPATCH enabled: codes go to the in-memory outbox")
        return FakeCodeDispatcher()
    return HttpCodeDispatcher(
        settings.auth_api_url, timeout=settings.dispatch_timeout_seconds
    )


@lru_cache(maxsize=1)
def get_code_gate() -> OneTimeCodeGate:
    settings = get_settings()
    ttl = timedelta(seconds=settings.otp_ttl_seconds) if settings.otp_ttl_seconds else None
    return OneTimeCodeGate(get_clock(), get_code_dispatcher(), ttl=ttl)


# =============================================================================
# Por sesión
# =============================================================================
def build_verification_machine(session_id: str) -> VerificationStateMachine:
    settings = get_settings()

    return VerificationStateMachine(
        session_id,
        authenticator=get_authenticator(),
        code_gate=get_code_gate(),
        captcha=CaptchaEngine(
            length=settings.captcha_length,
            max_attempts=settings.captcha_max_attempts,
            case_sensitive=settings.captcha_case_sensitive,
        ),
        lifecycle=SessionLifecycleManager(
            get_clock(), expiring_soon_ratio=settings.session_expiring_soon_ratio
        ),
        repository=get_state_repository(),
        events=get_security_event_repository(),
    )


@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(
        build_verification_machine,
        tick_seconds=settings.expiry_tick_seconds,
        pending_ttl_seconds=settings.pending_session_ttl_seconds,
        max_pending=settings.max_pending_sessions,
    )
