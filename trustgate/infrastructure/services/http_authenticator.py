"""
============================================================
TARJETA CRC — infrastructure/services/http_authenticator.py
============================================================
Class: HttpAuthenticator

Responsibilities:
  - Implementar domain.services.Authenticator contra POST {base}/auth/signin.
  - Mapear el payload `user` ({_id, email, username, role, mfaEnabled,
    departmentId}) a Principal.
  - Distinguir "credenciales malas" de "servicio caído" y de "timeout".

Collaborators:
  - httpx (HTTP client con timeout)
  - domain.entities.Principal, domain.roles.parse_role
  - crosscutting.exceptions

Notes:
  - Sin retry: un timeout se reporta (CollaboratorTimeoutError) y decide el caller.
  - Rol desconocido -> guest (el más débil).
  - mfaEnabled ausente -> se exige segundo factor.
============================================================
"""

from __future__ import annotations

from typing import Any

import httpx

from ...crosscutting.exceptions import (
    CollaboratorTimeoutError,
    InvalidCredentialsError,
    ServiceUnavailableError,
)
from ...crosscutting.logger import logger
from ...domain.entities import Principal
from ...domain.roles import Role, parse_role

_SIGNIN_PATH = "/auth/signin"
_REJECTED_STATUSES = frozenset({400, 401, 403, 404})


class HttpAuthenticator:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        if not base_url and client is None:
            raise ValueError("AUTH_API_URL is required")
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def authenticate(self, identifier: str, secret: str) -> Principal:
        try:
            response = self._client.post(
                _SIGNIN_PATH, json={"email": identifier, "password": secret}
            )
        except httpx.TimeoutException as exc:
            logger.error("auth service timed out", extra={"error": str(exc)})
            raise CollaboratorTimeoutError(
                "Authentication service timed out", original_error=exc
            ) from exc
        except httpx.TransportError as exc:
            logger.error("auth service unreachable", extra={"error": str(exc)})
            raise ServiceUnavailableError(
                "Authentication service unreachable", original_error=exc
            ) from exc

        if response.status_code in _REJECTED_STATUSES:
            raise InvalidCredentialsError("Invalid credentials")

        try:
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            logger.error(
                "auth service failed",
                extra={"status": response.status_code, "error": str(exc)},
            )
            raise ServiceUnavailableError(
                "Authentication service failed", original_error=exc
            ) from exc

        return _principal_from(data)


def _principal_from(data: Any) -> Principal:
    user = data.get("user") if isinstance(data, dict) else None
    if not isinstance(user, dict) or not user.get("_id"):
        raise ServiceUnavailableError(
            "Authentication succeeded but user data was incomplete"
        )

    raw_role = user.get("role")
    role = parse_role(raw_role)
    if role is None:
        logger.warning("unknown role from auth service", extra={"role": raw_role})
        role = Role.GUEST

    email = str(user.get("email") or "")
    display_name = user.get("username") or email.split("@")[0]
    mfa_enabled = user.get("mfaEnabled")

    return Principal(
        principal_id=str(user["_id"]),
        display_name=str(display_name),
        address=email,
        role=role,
        requires_second_factor=True if mfa_enabled is None else bool(mfa_enabled),
        unit_ref=user.get("departmentId") or None,
    )
