"""
============================================================
TARJETA CRC — infrastructure/services/http_code_dispatcher.py
============================================================
Class: HttpCodeDispatcher

Responsibilities:
  - Implementar domain.services.CodeDispatcher contra
    POST {base}/auth/request-otp  {toEmail, otp}.
  - Reportar timeout (CollaboratorTimeoutError) distinto de fallo (DispatchError).

Collaborators:
  - httpx (HTTP client con timeout)
  - crosscutting.exceptions

Notes:
  - El código nunca se loguea.
  - Sin retry: reenviar es una acción explícita del principal (resend).
============================================================
"""

from __future__ import annotations

import httpx

from ...crosscutting.exceptions import CollaboratorTimeoutError, DispatchError
from ...crosscutting.logger import logger

_REQUEST_OTP_PATH = "/auth/request-otp"


class HttpCodeDispatcher:
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

    def dispatch_code(self, address: str, code: str) -> None:
        try:
            response = self._client.post(
                _REQUEST_OTP_PATH, json={"toEmail": address, "otp": code}
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("code dispatch timed out", extra={"error": str(exc)})
            raise CollaboratorTimeoutError(
                "Code dispatch timed out", original_error=exc
            ) from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "code dispatch rejected",
                extra={"status": exc.response.status_code},
            )
            raise DispatchError("Code dispatch failed", original_error=exc) from exc
        except httpx.TransportError as exc:
            logger.error("code dispatch unreachable", extra={"error": str(exc)})
            raise DispatchError("Code dispatch failed", original_error=exc) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            raise DispatchError(str(body.get("message") or "Code dispatch failed"))
