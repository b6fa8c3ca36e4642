"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Módulo:
    Eventos de seguridad (Dominio)

Responsabilidades:
    - Definir SecurityEvent y su nivel de riesgo.
    - Mantener el contrato de auditoría independiente de infraestructura.

Colaboradores:
    - domain.repositories.SecurityEventRepository: persiste y lista eventos.
    - trustgate/audit.py: emite eventos (orquestación, best-effort).

Notas:
    - Append-only.
    - metadata es flexible (dict) pero nunca contiene códigos ni secretos.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SecurityAction(str, Enum):
    """Catálogo de acciones auditadas."""

    CREDENTIALS_VERIFIED = "credentials_verified"
    CREDENTIALS_REJECTED = "credentials_rejected"
    SECOND_FACTOR_ISSUED = "second_factor_issued"
    SECOND_FACTOR_DISPATCH_FAILED = "second_factor_dispatch_failed"
    SECOND_FACTOR_VERIFIED = "second_factor_verified"
    SECOND_FACTOR_REJECTED = "second_factor_rejected"
    CAPTCHA_VERIFIED = "captcha_verified"
    CAPTCHA_FAILED = "captcha_failed"
    CAPTCHA_BLOCKED = "captcha_blocked"
    DEPARTMENT_SELECTED = "department_selected"
    SESSION_ACTIVATED = "session_activated"
    SESSION_EXPIRED = "session_expired"
    LOGGED_OUT = "logged_out"


DEFAULT_RISK: dict[SecurityAction, RiskLevel] = {
    SecurityAction.CREDENTIALS_REJECTED: RiskLevel.MEDIUM,
    SecurityAction.SECOND_FACTOR_DISPATCH_FAILED: RiskLevel.MEDIUM,
    SecurityAction.SECOND_FACTOR_REJECTED: RiskLevel.MEDIUM,
    SecurityAction.CAPTCHA_FAILED: RiskLevel.MEDIUM,
    SecurityAction.CAPTCHA_BLOCKED: RiskLevel.HIGH,
}


@dataclass(slots=True)
class SecurityEvent:
    """Evento de seguridad de una sesión de verificación."""

    id: UUID
    action: SecurityAction
    risk_level: RiskLevel
    principal_id: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
