"""
===============================================================================
VERIFICATION RESULTS (Shared Result / Error Models)
===============================================================================

Business Goal:
    Contrato estable para el resultado de cada transición de la máquina de
    verificación: el estado resultante + (opcional) un error tipado.

Why (Context / Intención):
    - Las fallas "de usuario" (credenciales, código, CAPTCHA, expiración,
      colaborador caído) son resultados, no excepciones: el caller decide qué
      mostrar y si reintentar sin perder el input ya cargado.
    - IllegalTransitionError NO pasa por acá: es un bug del caller y se lanza.

-------------------------------------------------------------------------------
CRC CARD (Class-Responsibility-Collaborator)
-------------------------------------------------------------------------------
Responsibilities:
    - VerificationErrorCode: catálogo acotado y estable.
    - VerificationError: code + message (+ fatal si fuerza logout).
    - TransitionResult: state + error + challenge vigente + estado de envío.

Collaborators:
    - domain.entities.VerificationState / Challenge
    - api.routes (mapea códigos a status HTTP)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..domain.entities import Challenge, VerificationPhase, VerificationState


class VerificationErrorCode(str, Enum):
    """
    Códigos:
      - INVALID_CREDENTIALS: el autenticador rechazó las credenciales.
      - SERVICE_UNAVAILABLE: colaborador inalcanzable (reintentable).
      - COLLABORATOR_TIMEOUT: colaborador sin respuesta en el timeout.
      - INVALID_CODE_FORMAT: el código no tiene 6 dígitos.
      - INVALID_CODE: código incorrecto o reemplazado.
      - CODE_EXPIRED: el código vigente venció (pedir reenvío).
      - DISPATCH_FAILED: el código se emitió pero no se pudo enviar.
      - INVALID_CHALLENGE: respuesta de CAPTCHA incorrecta (hay challenge nuevo).
      - CHALLENGE_LOCKED_OUT: se agotaron los intentos (fatal).
      - SESSION_EXPIRED: venció la ventana de inactividad (fatal).
    """

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    COLLABORATOR_TIMEOUT = "COLLABORATOR_TIMEOUT"
    INVALID_CODE_FORMAT = "INVALID_CODE_FORMAT"
    INVALID_CODE = "INVALID_CODE"
    CODE_EXPIRED = "CODE_EXPIRED"
    DISPATCH_FAILED = "DISPATCH_FAILED"
    INVALID_CHALLENGE = "INVALID_CHALLENGE"
    CHALLENGE_LOCKED_OUT = "CHALLENGE_LOCKED_OUT"
    SESSION_EXPIRED = "SESSION_EXPIRED"


FATAL_ERROR_CODES = frozenset(
    {VerificationErrorCode.CHALLENGE_LOCKED_OUT, VerificationErrorCode.SESSION_EXPIRED}
)


@dataclass(frozen=True)
class VerificationError:
    code: VerificationErrorCode
    message: str

    @property
    def is_fatal(self) -> bool:
        """True si la sesión terminó y hay que volver a Unauthenticated."""
        return self.code in FATAL_ERROR_CODES


@dataclass(frozen=True)
class TransitionResult:
    """
    state: estado autoritativo después de la transición.
    challenge: challenge vigente (para que la vista lo renderice) o None.
    code_delivered: sólo en emisión/reenvío de código; False si el envío falló.
    """

    state: VerificationState
    error: VerificationError | None = None
    challenge: Challenge | None = None
    code_delivered: bool | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def phase(self) -> VerificationPhase:
        return self.state.phase
