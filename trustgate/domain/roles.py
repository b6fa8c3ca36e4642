"""
===============================================================================
TARJETA CRC — domain/roles.py
===============================================================================

Módulo:
    Jerarquía de Roles

Responsabilidades:
    - Definir el conjunto cerrado y ordenado de roles (guest < employee <
      department_head < admin).
    - Proveer rank() / at_least() como funciones puras y totales.

Colaboradores:
    - domain.session_policy: duración máxima de inactividad por rol.
    - application.verification: check_access(required_role).
    - infrastructure.services.http_authenticator: parse_role() sobre el payload.

Notas:
    - Un rol desconocido (string que no está en el enum) rankea por debajo de
      guest: nunca habilita acceso.
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping


class Role(str, Enum):
    """Roles soportados, del más débil al más fuerte."""

    GUEST = "guest"
    EMPLOYEE = "employee"
    DEPARTMENT_HEAD = "department_head"
    ADMIN = "admin"


_RANKS: Mapping[Role, int] = {
    Role.GUEST: 1,
    Role.EMPLOYEE: 2,
    Role.DEPARTMENT_HEAD: 3,
    Role.ADMIN: 4,
}

UNKNOWN_RANK = 0


def parse_role(value: str | Role | None) -> Role | None:
    """Normaliza un string al enum; None si no es un rol conocido."""
    if isinstance(value, Role):
        return value
    if not value:
        return None
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


def rank(role: Role | str | None) -> int:
    """R: Posición del rol en el orden total (0 para desconocidos)."""
    parsed = parse_role(role)
    if parsed is None:
        return UNKNOWN_RANK
    return _RANKS[parsed]


def at_least(current: Role | str | None, required: Role | str | None) -> bool:
    """R: True si current tiene igual o mayor rango que required."""
    return rank(current) >= rank(required)
