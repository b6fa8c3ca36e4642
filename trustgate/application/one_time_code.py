"""
===============================================================================
TARJETA CRC — application/one_time_code.py
===============================================================================

Módulo:
    Gate de código de un solo uso (segundo factor)

Responsabilidades:
    - Emitir códigos numéricos de 6 dígitos en [100000, 999999] (CSPRNG).
    - Mantener como máximo UN código vigente por principal: emitir/reenviar
      reemplaza al anterior.
    - Verificar: formato inválido es un error distinto de "código incorrecto".
    - Delegar el envío al CodeDispatcher (el fallo de envío NO revierte la emisión).

Colaboradores:
    - domain.services.Clock / CodeDispatcher
    - domain.entities.OneTimeCode / Principal
    - crosscutting.exceptions (InvalidCodeFormatError, CodeExpiredError)

Reglas:
    - Comparación exacta, sin normalización (espacios incluidos -> formato inválido).
    - Un código verificado se consume.
    - ttl=None desactiva la expiración por tiempo (sólo supersesión).
===============================================================================
"""

from __future__ import annotations

import hmac
import re
import secrets
from datetime import timedelta
from threading import Lock

from ..crosscutting.exceptions import CodeExpiredError, InvalidCodeFormatError
from ..domain.entities import OneTimeCode, Principal
from ..domain.services import Clock, CodeDispatcher

CODE_PATTERN = re.compile(r"[0-9]{6}")
CODE_MIN = 100_000
CODE_SPAN = 900_000

DEFAULT_TTL = timedelta(seconds=60)


class OneTimeCodeGate:
    def __init__(
        self,
        clock: Clock,
        dispatcher: CodeDispatcher,
        *,
        ttl: timedelta | None = DEFAULT_TTL,
    ) -> None:
        self._clock = clock
        self._dispatcher = dispatcher
        self._ttl = ttl if ttl and ttl > timedelta(0) else None
        self._lock = Lock()
        self._codes: dict[str, OneTimeCode] = {}

    def issue(self, principal: Principal) -> OneTimeCode:
        """Genera y registra un código nuevo; invalida el anterior."""
        now = self._clock.now()
        code = OneTimeCode(
            principal_id=principal.principal_id,
            address=principal.address,
            value=str(CODE_MIN + secrets.randbelow(CODE_SPAN)),
            issued_at=now,
            expires_at=now + self._ttl if self._ttl else None,
        )
        with self._lock:
            self._codes[principal.principal_id] = code
        return code

    def resend(self, principal: Principal) -> OneTimeCode:
        return self.issue(principal)

    def dispatch(self, code: OneTimeCode) -> None:
        """Envía el código; propaga DispatchError / CollaboratorTimeoutError."""
        self._dispatcher.dispatch_code(code.address, code.value)

    def verify(self, principal: Principal, submitted: str) -> bool:
        """
        True si coincide con el código vigente (y lo consume).

        Raises:
            InvalidCodeFormatError: submitted no tiene exactamente 6 dígitos
            CodeExpiredError: el código vigente superó su ventana de validez
        """
        if not isinstance(submitted, str) or not CODE_PATTERN.fullmatch(submitted):
            raise InvalidCodeFormatError("Code must be exactly 6 digits")

        with self._lock:
            current = self._codes.get(principal.principal_id)
            if current is None:
                return False
            if current.is_expired(self._clock.now()):
                raise CodeExpiredError("Code expired, request a new one")
            if not hmac.compare_digest(current.value, submitted):
                return False
            del self._codes[principal.principal_id]
            return True

    def current(self, principal_id: str) -> OneTimeCode | None:
        with self._lock:
            return self._codes.get(principal_id)

    def invalidate(self, principal_id: str) -> None:
        with self._lock:
            self._codes.pop(principal_id, None)
