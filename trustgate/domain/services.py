"""
===============================================================================
TARJETA CRC — domain/services.py
===============================================================================

Módulo:
    Puertos de Colaboradores Externos (Protocols)

Responsabilidades:
    - Definir contratos para los colaboradores que consume el motor:
      reloj, autenticador de credenciales y despacho de códigos.
    - Mantener el dominio independiente de httpx / servicios concretos.

Colaboradores:
    - infrastructure/clock.py, infrastructure/services/*: implementaciones.
    - application/*: consumen estos puertos.

Reglas:
    - SOLO interfaces: nada de implementación.
    - Los errores se comunican con excepciones de crosscutting.exceptions:
      InvalidCredentialsError / ServiceUnavailableError /
      CollaboratorTimeoutError / DispatchError.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .entities import Principal


class Clock(Protocol):
    """Fuente de tiempo (UTC, timezone-aware)."""

    def now(self) -> datetime:
        ...


class Authenticator(Protocol):
    """Verificación de credenciales (servicio externo)."""

    def authenticate(self, identifier: str, secret: str) -> Principal:
        """
        Devuelve el Principal o lanza:
          - InvalidCredentialsError: credenciales malas
          - ServiceUnavailableError: servicio inalcanzable
          - CollaboratorTimeoutError: sin respuesta dentro del timeout
        """
        ...


class CodeDispatcher(Protocol):
    """Envío del código de un solo uso a la dirección del principal."""

    def dispatch_code(self, address: str, code: str) -> None:
        """Lanza DispatchError o CollaboratorTimeoutError si falla."""
        ...
