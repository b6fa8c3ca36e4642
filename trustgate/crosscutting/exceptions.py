"""
===============================================================================
MÓDULO: Excepciones tipadas del motor de verificación
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable
- error_id para correlación con logs
- message "humana" (sin filtrar secretos: nunca incluye códigos ni challenges)

Dos familias:
- Errores de colaboradores (autenticador, despacho de códigos, persistencia):
  los lanzan los adapters y la máquina de estados los traduce a resultados.
- IllegalTransitionError: bug del caller (transición fuera de orden). Se lanza
  y se propaga; nunca se convierte en un resultado "recuperable".

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  TrustGateError + subclases

Responsabilidades:
  - Estandarizar errores internos que luego se mapean a resultados o HTTP
  - Generar error_id para rastreo

Colaboradores:
  - application/verification.py (traduce a VerificationErrorCode)
  - api/exception_handlers.py (mapea a AppHTTPException)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores de forma consistente."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class TrustGateError(Exception):
    """
    Base para errores internos del motor: error_code + error_id + message.
    """

    error_code: str = "TRUSTGATE_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class IllegalTransitionError(TrustGateError):
    """Transición pedida desde una fase que no la admite (error de programación)."""

    error_code: str = "ILLEGAL_TRANSITION"

    def __init__(self, transition: str, phase: str, reason: str | None = None):
        detail = f"Transition '{transition}' is not allowed from phase '{phase}'"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)
        self.transition = transition
        self.phase = phase


class InvalidCredentialsError(TrustGateError):
    """El autenticador rechazó identificador/secreto."""

    error_code: str = "INVALID_CREDENTIALS"


class ServiceUnavailableError(TrustGateError):
    """Colaborador inalcanzable o respondiendo 5xx."""

    error_code: str = "SERVICE_UNAVAILABLE"


class CollaboratorTimeoutError(ServiceUnavailableError):
    """El colaborador no respondió dentro del timeout (no se reintenta)."""

    error_code: str = "COLLABORATOR_TIMEOUT"


class DispatchError(TrustGateError):
    """El envío del código de un solo uso falló (el código sigue emitido)."""

    error_code: str = "DISPATCH_FAILED"


class InvalidCodeFormatError(TrustGateError, ValueError):
    """El código enviado no tiene exactamente 6 dígitos."""

    error_code: str = "INVALID_CODE_FORMAT"


class CodeExpiredError(TrustGateError):
    """El código vigente superó su ventana de validez."""

    error_code: str = "CODE_EXPIRED"


class PersistenceError(TrustGateError):
    """Errores del store de VerificationState (conexión, serialización)."""

    error_code: str = "PERSISTENCE_ERROR"
