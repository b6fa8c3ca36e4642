"""
===============================================================================
TARJETA CRC — application/captcha.py
===============================================================================

Módulo:
    Motor de CAPTCHA (generación / validación / lockout)

Responsabilidades:
    - Generar secretos de longitud fija sobre un alfabeto sin glifos ambiguos,
      con al menos una letra y un dígito, mezclados con Fisher-Yates.
    - Validar la respuesta (case-sensitive por defecto).
    - Registrar fallos: cada fallo invalida el secreto y emite uno nuevo
      distinto; al llegar al umbral devuelve LockedOut.

Colaboradores:
    - domain.entities.Challenge
    - application.verification: dueño de la instancia (inyectada, sin singleton).

Reglas:
    - Unsolved(attempts=0) -> Unsolved(attempts=n) -> {Solved | Locked}.
    - El contador sobrevive a regeneraciones y refresh dentro de un mismo login.
    - El render visual NO vive acá (es una preocupación de la vista).
===============================================================================
"""

from __future__ import annotations

import hmac
import random
import secrets
from dataclasses import dataclass
from typing import Union

from ..domain.entities import Challenge

# Sin 0/O ni 1/I: 24 letras + dígitos 2..9.
LETTERS = "ABCDEFGHJKLMNPQRSTUVWXYZ"
DIGITS = "23456789"
ALPHABET = LETTERS + DIGITS

DEFAULT_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class Continue:
    """Fallo recuperable: el caller debe mostrar el nuevo challenge."""

    challenge: Challenge


@dataclass(frozen=True, slots=True)
class LockedOut:
    """Fallo terminal: el caller debe forzar logout."""

    attempts: int


FailureOutcome = Union[Continue, LockedOut]


class CaptchaEngine:
    """
    Motor de challenges. Una instancia por composición (no global).

    rng: fuente de aleatoriedad; por defecto secrets.SystemRandom (CSPRNG).
    Los tests pueden inyectar random.Random(seed) para reproducibilidad.
    """

    def __init__(
        self,
        *,
        length: int = DEFAULT_LENGTH,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        case_sensitive: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        if length < 2:
            raise ValueError("challenge length must be >= 2")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.length = length
        self.max_attempts = max_attempts
        self.case_sensitive = case_sensitive
        self._rng = rng or secrets.SystemRandom()

    # =========================================================
    # API pública
    # =========================================================
    def generate(self, length: int | None = None, *, attempts: int = 0) -> Challenge:
        """Nuevo challenge; attempts>0 sólo al reanudar un gate ya iniciado."""
        return Challenge(
            secret=self._secret(length or self.length),
            attempts=attempts,
            max_attempts=self.max_attempts,
        )

    def validate(
        self,
        challenge: Challenge,
        user_input: str,
        case_sensitive: bool | None = None,
    ) -> bool:
        exact = self.case_sensitive if case_sensitive is None else case_sensitive
        expected = challenge.secret
        submitted = user_input or ""
        if not exact:
            expected = expected.upper()
            submitted = submitted.upper()
        return hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8"))

    def record_failure(self, challenge: Challenge) -> FailureOutcome:
        attempts = challenge.attempts + 1
        if attempts >= challenge.max_attempts:
            return LockedOut(attempts=attempts)
        return Continue(
            challenge=Challenge(
                secret=self._secret_unlike(challenge.secret),
                attempts=attempts,
                max_attempts=challenge.max_attempts,
            )
        )

    def refresh(self, challenge: Challenge) -> Challenge:
        """Secreto nuevo sin consumir intento (botón "otro challenge")."""
        return Challenge(
            secret=self._secret_unlike(challenge.secret),
            attempts=challenge.attempts,
            max_attempts=challenge.max_attempts,
        )

    # =========================================================
    # Helpers internos
    # =========================================================
    def _secret(self, length: int) -> str:
        if length < 2:
            raise ValueError("challenge length must be >= 2")

        chars = [self._rng.choice(LETTERS), self._rng.choice(DIGITS)]
        chars.extend(self._rng.choice(ALPHABET) for _ in range(length - 2))

        # Fisher-Yates sobre toda la secuencia.
        for i in range(len(chars) - 1, 0, -1):
            j = self._rng.randrange(i + 1)
            chars[i], chars[j] = chars[j], chars[i]

        return "".join(chars)

    def _secret_unlike(self, previous: str) -> str:
        length = len(previous) if len(previous) >= 2 else self.length
        while True:
            candidate = self._secret(length)
            if candidate != previous:
                return candidate
