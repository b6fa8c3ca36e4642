"""
===============================================================================
TARJETA CRC — domain/session_policy.py
===============================================================================

Módulo:
    Política de expiración de sesión (cálculo puro de tiempos)

Responsabilidades:
    - Tabla rol -> duración máxima de inactividad.
    - remaining / is_expired / progress_ratio / countdown como funciones puras
      (reciben `now` explícito, no leen relojes).
    - Construir el SessionStatus que consume la UI (countdown + badge).

Colaboradores:
    - application.session_lifecycle: aplica esta política con un Clock.
    - application.expiry_watchdog: decide la acción (forzar Expired) a partir
      de is_expired; el cálculo vive acá, la acción vive allá.

Reglas:
    - admin 60m, department_head 45m, employee 30m, guest 15m.
    - Rol desconocido -> 15m (mismo valor que guest).
    - remaining = max(0, expires_at - now); expirado <=> remaining <= 0.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping

from .roles import Role, parse_role

MAX_INACTIVE_DURATIONS: Mapping[Role, timedelta] = {
    Role.ADMIN: timedelta(minutes=60),
    Role.DEPARTMENT_HEAD: timedelta(minutes=45),
    Role.EMPLOYEE: timedelta(minutes=30),
    Role.GUEST: timedelta(minutes=15),
}

DEFAULT_MAX_INACTIVE = MAX_INACTIVE_DURATIONS[Role.GUEST]

DEFAULT_EXPIRING_SOON_RATIO = 0.25

_ZERO = timedelta(0)


def max_inactive_duration(role: Role | str | None) -> timedelta:
    parsed = parse_role(role)
    if parsed is None:
        return DEFAULT_MAX_INACTIVE
    return MAX_INACTIVE_DURATIONS[parsed]


def expiry_from(now: datetime, role: Role | str | None) -> datetime:
    """R: Renovación desde la cuota completa (no extiende por delta)."""
    return now + max_inactive_duration(role)


def remaining(expires_at: datetime | None, now: datetime) -> timedelta:
    if expires_at is None:
        return _ZERO
    return max(_ZERO, expires_at - now)


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    return remaining(expires_at, now) <= _ZERO


def progress_ratio(
    expires_at: datetime | None, now: datetime, role: Role | str | None
) -> float:
    """Fracción de la cuota que queda, en [0, 1]."""
    quota = max_inactive_duration(role)
    return min(1.0, remaining(expires_at, now) / quota)


def countdown(left: timedelta) -> str:
    """Formato MM:SS (minutos pueden superar 59 si la cuota lo permite)."""
    total = int(left.total_seconds())
    minutes, seconds = divmod(max(0, total), 60)
    return f"{minutes}:{seconds:02d}"


@dataclass(frozen=True, slots=True)
class SessionStatus:
    """Snapshot de tiempos para la cabecera de la UI."""

    expires_at: datetime
    remaining: timedelta
    progress: float
    expiring_soon: bool

    @property
    def countdown(self) -> str:
        return countdown(self.remaining)

    @property
    def label(self) -> str:
        if self.remaining <= _ZERO:
            return "expired"
        return "expiring soon" if self.expiring_soon else "active"


def session_status(
    expires_at: datetime,
    now: datetime,
    role: Role | str | None,
    *,
    expiring_soon_ratio: float = DEFAULT_EXPIRING_SOON_RATIO,
) -> SessionStatus:
    left = remaining(expires_at, now)
    progress = progress_ratio(expires_at, now, role)
    return SessionStatus(
        expires_at=expires_at,
        remaining=left,
        progress=progress,
        expiring_soon=progress <= expiring_soon_ratio,
    )
