"""
Name: Session Lifecycle Manager

Responsibilities:
  - Start a session window for a principal (expiry computed from the role)
  - Renew the window from the full quota on every observed activity (touch)
  - Answer remaining / is_expired / status for a state at a given instant

Collaborators:
  - domain.session_policy: pure timing math (role table, remaining, ratio)
  - domain.services.Clock: the only source of "now"
  - application.verification: applies start/touch inside transitions

Notes:
  - This class never triggers the expiry transition itself; it only answers
    questions. The watchdog and the state machine decide what to do with them.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..domain import session_policy
from ..domain.entities import VerificationState
from ..domain.roles import Role
from ..domain.services import Clock


class SessionLifecycleManager:
    def __init__(
        self,
        clock: Clock,
        *,
        expiring_soon_ratio: float = session_policy.DEFAULT_EXPIRING_SOON_RATIO,
    ) -> None:
        self._clock = clock
        self._expiring_soon_ratio = expiring_soon_ratio

    def now(self) -> datetime:
        return self._clock.now()

    @staticmethod
    def max_inactive_duration(role: Role | str | None) -> timedelta:
        return session_policy.max_inactive_duration(role)

    def start(
        self, state: VerificationState, role: Role | str | None = None
    ) -> VerificationState:
        """Abre la ventana: last_activity=now, expires=now+cuota(rol)."""
        if role is None:
            role = state.principal.role if state.principal else None
        now = self._clock.now()
        return state.evolve(
            last_activity_at=now,
            session_expires_at=session_policy.expiry_from(now, role),
        )

    def touch(self, state: VerificationState) -> VerificationState:
        """Renueva desde la cuota completa; sin sesión abierta no hace nada."""
        if state.principal is None or state.session_expires_at is None:
            return state
        return self.start(state, state.principal.role)

    def remaining(
        self, state: VerificationState, now: datetime | None = None
    ) -> timedelta:
        return session_policy.remaining(
            state.session_expires_at, now or self._clock.now()
        )

    def is_expired(self, state: VerificationState, now: datetime | None = None) -> bool:
        return session_policy.is_expired(
            state.session_expires_at, now or self._clock.now()
        )

    def progress(self, state: VerificationState, now: datetime | None = None) -> float:
        role = state.principal.role if state.principal else None
        return session_policy.progress_ratio(
            state.session_expires_at, now or self._clock.now(), role
        )

    def status(
        self, state: VerificationState, now: datetime | None = None
    ) -> session_policy.SessionStatus | None:
        if state.session_expires_at is None or state.principal is None:
            return None
        return session_policy.session_status(
            state.session_expires_at,
            now or self._clock.now(),
            state.principal.role,
            expiring_soon_ratio=self._expiring_soon_ratio,
        )
