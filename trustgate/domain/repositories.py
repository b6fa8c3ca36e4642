"""
===============================================================================
TARJETA CRC — domain/repositories.py
===============================================================================

Módulo:
    Puertos de Persistencia (Protocols)

Responsabilidades:
    - Contrato del store de VerificationState (única vía de escritura).
    - Contrato del log de eventos de seguridad.

Colaboradores:
    - infrastructure/repositories/in_memory/*: tests / dev.
    - infrastructure/repositories/redis_state.py: sobrevive reinicios.
    - application.verification: guarda después de cada transición.

Reglas:
    - El registro es uno por sesión; no hay otra fuente de verdad.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .audit import SecurityAction, SecurityEvent
from .entities import VerificationState


class VerificationStateRepository(Protocol):
    """R: Interface for VerificationState persistence."""

    def load(self, session_id: str) -> VerificationState | None:
        """R: Fetch the persisted state, or None if absent."""
        ...

    def save(self, session_id: str, state: VerificationState) -> None:
        """R: Replace the persisted state."""
        ...

    def delete(self, session_id: str) -> None:
        """R: Remove the persisted state (idempotent)."""
        ...


class SecurityEventRepository(Protocol):
    """R: Interface for security event persistence."""

    def record_event(self, event: SecurityEvent) -> None:
        """R: Persist a security event."""
        ...

    def list_events(
        self,
        *,
        principal_id: str | None = None,
        session_id: str | None = None,
        action: SecurityAction | None = None,
        start_at: datetime | None = None,
        limit: int = 50,
    ) -> list[SecurityEvent]:
        """R: Fetch events (newest first) with optional filters."""
        ...
