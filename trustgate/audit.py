"""
===============================================================================
TARJETA CRC — trustgate/audit.py (Emisión de eventos de seguridad)
===============================================================================

Responsabilidades:
  - Construir SecurityEvent con formato consistente (action/risk/principal/metadata).
  - Derivar el nivel de riesgo por defecto de la acción.
  - Persistir vía SecurityEventRepository (puerto del dominio).
  - Contar cada evento en métricas (action/risk), haya repositorio o no.
  - "Best-effort": si falla la persistencia, NO rompe la transición.

Colaboradores:
  - trustgate.domain.audit.SecurityEvent / SecurityAction / RiskLevel
  - trustgate.domain.repositories.SecurityEventRepository
  - trustgate.crosscutting.logger.logger
  - trustgate.crosscutting.metrics.record_security_event

Decisiones de seguridad:
  - Nunca guardamos códigos, secretos de CAPTCHA ni credenciales.
  - Guardamos rol y unidad, no la dirección del principal.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from .crosscutting.logger import logger
from .crosscutting.metrics import record_security_event
from .domain.audit import DEFAULT_RISK, RiskLevel, SecurityAction, SecurityEvent
from .domain.entities import Principal
from .domain.repositories import SecurityEventRepository


def _metadata_from_principal(principal: Principal | None) -> dict[str, Any]:
    if principal is None:
        return {}
    metadata: dict[str, Any] = {"role": principal.role.value}
    if principal.unit_ref:
        metadata["unit_ref"] = principal.unit_ref
    return metadata


def _sanitize(value: Any) -> Any:
    """
    Convierte valores a tipos serializables para JSON.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, dict):
        return {str(k): _sanitize(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]

    return str(value)


def emit_security_event(
    repository: SecurityEventRepository | None,
    *,
    action: SecurityAction,
    principal: Principal | None = None,
    session_id: str | None = None,
    risk_level: RiskLevel | None = None,
    metadata: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> None:
    """
    Emite un evento de seguridad.

    Regla clave:
      - Si repository es None o falla al escribir, NO se lanza excepción.
    """
    risk = risk_level or DEFAULT_RISK.get(action, RiskLevel.LOW)
    record_security_event(action.value, risk.value)

    if repository is None:
        return

    payload = _sanitize({**_metadata_from_principal(principal), **(metadata or {})})

    event = SecurityEvent(
        id=uuid4(),
        action=action,
        risk_level=risk,
        principal_id=principal.principal_id if principal else None,
        session_id=session_id,
        metadata=payload,
        created_at=occurred_at,
    )

    try:
        repository.record_event(event)
    except Exception as exc:
        # Best-effort: logueamos y seguimos.
        logger.warning(
            "Security event write failed",
            extra={"action": action.value, "error": str(exc)},
        )
