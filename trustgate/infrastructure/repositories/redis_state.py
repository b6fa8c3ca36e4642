"""
============================================================
TARJETA CRC — infrastructure/repositories/redis_state.py
============================================================
Class: RedisVerificationStateRepository

Responsibilities:
  - Persistir el VerificationState autoritativo (un key por sesión) para que
    sobreviva reinicios del proceso dentro de la ventana de expiración.
  - TTL nativo (SETEX) = tiempo restante de la sesión: Redis descarta solo lo
    que ya no puede restaurarse como válido.
  - Serializar a JSON (flags, fase, principal, timestamps ISO-8601, contador
    de intentos del CAPTCHA).

Collaborators:
  - redis-py (cliente con decode_responses=True)
  - domain.services.Clock (cálculo del TTL)
  - infrastructure.services.retry (tenacity, sólo errores transitorios)

Constraints / Notes:
  - Nunca se persisten códigos ni secretos de CAPTCHA.
  - Payload corrupto -> se descarta y se trata como sesión inexistente.
  - Fallas de Redis -> PersistenceError (el caller decide).
============================================================
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Callable

import redis

from ...crosscutting.exceptions import PersistenceError
from ...crosscutting.logger import logger
from ...domain.entities import Principal, VerificationPhase, VerificationState
from ...domain.roles import Role, parse_role
from ...domain.services import Clock
from ..services.retry import create_retry_decorator

SCHEMA_VERSION = 1


def state_to_payload(state: VerificationState) -> dict[str, Any]:
    principal = state.principal
    return {
        "v": SCHEMA_VERSION,
        "phase": state.phase.value,
        "credential_verified": state.credential_verified,
        "second_factor_verified": state.second_factor_verified,
        "challenge_verified": state.challenge_verified,
        "challenge_attempts": state.challenge_attempts,
        "session_expires_at": _iso(state.session_expires_at),
        "last_activity_at": _iso(state.last_activity_at),
        "principal": None
        if principal is None
        else {
            "principal_id": principal.principal_id,
            "display_name": principal.display_name,
            "address": principal.address,
            "role": principal.role.value,
            "requires_second_factor": principal.requires_second_factor,
            "unit_ref": principal.unit_ref,
        },
    }


def state_from_payload(payload: dict[str, Any]) -> VerificationState:
    raw_principal = payload.get("principal")
    principal = None
    if raw_principal is not None:
        principal = Principal(
            principal_id=str(raw_principal["principal_id"]),
            display_name=str(raw_principal.get("display_name") or ""),
            address=str(raw_principal.get("address") or ""),
            role=parse_role(raw_principal.get("role")) or Role.GUEST,
            requires_second_factor=bool(raw_principal.get("requires_second_factor", True)),
            unit_ref=raw_principal.get("unit_ref"),
        )

    return VerificationState(
        phase=VerificationPhase(payload["phase"]),
        credential_verified=bool(payload.get("credential_verified")),
        second_factor_verified=bool(payload.get("second_factor_verified")),
        challenge_verified=bool(payload.get("challenge_verified")),
        principal=principal,
        session_expires_at=_parse_dt(payload.get("session_expires_at")),
        last_activity_at=_parse_dt(payload.get("last_activity_at")),
        challenge_attempts=int(payload.get("challenge_attempts") or 0),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class RedisVerificationStateRepository:
    def __init__(
        self,
        client: "redis.Redis",
        *,
        clock: Clock,
        key_prefix: str = "trustgate:session:",
        retry_decorator: Callable[[Callable[..., Any]], Callable[..., Any]] | None = None,
    ) -> None:
        self._client = client
        self._clock = clock
        self._prefix = key_prefix
        retrying = retry_decorator or create_retry_decorator()
        self._get = retrying(client.get)
        self._setex = retrying(client.setex)
        self._delete = retrying(client.delete)

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisVerificationStateRepository":
        if not redis_url:
            raise ValueError("redis_url is required")
        return cls(redis.from_url(redis_url, decode_responses=True), **kwargs)

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    def load(self, session_id: str) -> VerificationState | None:
        try:
            raw = self._get(self._key(session_id))
        except redis.RedisError as exc:
            raise PersistenceError("Session store unavailable", original_error=exc) from exc

        if raw is None:
            return None

        try:
            return state_from_payload(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Discarding unreadable session payload",
                extra={"session": session_id, "error": str(exc)},
            )
            self.delete(session_id)
            return None

    def save(self, session_id: str, state: VerificationState) -> None:
        if state.session_expires_at is None:
            raise PersistenceError("Only states with an open session window are stored")

        ttl = math.ceil((state.session_expires_at - self._clock.now()).total_seconds())
        if ttl <= 0:
            self.delete(session_id)
            return

        try:
            self._setex(
                self._key(session_id),
                ttl,
                json.dumps(state_to_payload(state), separators=(",", ":")),
            )
        except redis.RedisError as exc:
            raise PersistenceError("Session store unavailable", original_error=exc) from exc

    def delete(self, session_id: str) -> None:
        try:
            self._delete(self._key(session_id))
        except redis.RedisError as exc:
            raise PersistenceError("Session store unavailable", original_error=exc) from exc
