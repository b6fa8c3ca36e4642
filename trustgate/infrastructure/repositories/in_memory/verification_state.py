"""
============================================================
TARJETA CRC — infrastructure/repositories/in_memory/verification_state.py
============================================================
Class: InMemoryVerificationStateRepository

Responsibilities:
  - Guardar VerificationState por session id en memoria (tests / local dev).
  - Implementar el contrato load/save/delete de VerificationStateRepository.

Collaborators:
  - domain.entities.VerificationState
  - domain.repositories.VerificationStateRepository

Constraints / Notes:
  - Thread-safe: acceso protegido por Lock.
  - VerificationState es inmutable: no hacen falta copias defensivas.
  - NO sobrevive reinicios del proceso (para eso: RedisVerificationStateRepository).
============================================================
"""

from __future__ import annotations

from threading import Lock
from typing import Dict

from ....domain.entities import VerificationState


class InMemoryVerificationStateRepository:
    def __init__(self) -> None:
        self._lock = Lock()
        self._states: Dict[str, VerificationState] = {}

    def load(self, session_id: str) -> VerificationState | None:
        with self._lock:
            return self._states.get(session_id)

    def save(self, session_id: str, state: VerificationState) -> None:
        with self._lock:
            self._states[session_id] = state

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
