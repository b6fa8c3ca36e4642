"""
===============================================================================
TARJETA CRC — application/session_registry.py
===============================================================================

Módulo:
    Registro de sesiones de verificación

Responsabilidades:
    - Crear una máquina de estados (con su lock) por session id.
    - Restaurar sesiones persistidas bajo demanda (ej: después de un reinicio).
    - Arrancar el watchdog de expiración y el monitor de actividad cuando la
      sesión abre su ventana, y soltarlos cuando la sesión termina.
    - Olvidar sesiones terminales (su registro persistido ya fue borrado) y
      volver a registrarlas si el mismo handle inicia un login nuevo.
    - Un único VerificationState vivo por principal: un login nuevo cierra la
      sesión anterior del mismo principal.
    - Acotar las sesiones sin login: vencen a los `pending_ttl_seconds` y
      nunca hay más de `max_pending` vivas.

Colaboradores:
    - application.verification.VerificationStateMachine
    - application.expiry_watchdog.ExpiryWatchdog / ActivityMonitor
    - container.build_verification_machine (factory inyectada)

Notas:
    - Nunca se llama a la máquina con el lock del registry tomado: los
      listeners de la máquina vuelven a entrar al registry.
===============================================================================
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from ..crosscutting.logger import logger
from ..domain.entities import VerificationPhase, VerificationState
from .expiry_watchdog import ActivityMonitor, ExpiryWatchdog
from .verification import VerificationStateMachine

MachineFactory = Callable[[str], VerificationStateMachine]

DEFAULT_PENDING_TTL_SECONDS = 600.0
DEFAULT_MAX_PENDING = 10_000


@dataclass
class SessionHandle:
    session_id: str
    machine: VerificationStateMachine
    watchdog: ExpiryWatchdog
    activity: ActivityMonitor
    created_at: float = 0.0
    principal_id: str | None = None

    @property
    def pending(self) -> bool:
        """True mientras la sesión nunca completó un login."""
        return self.machine.snapshot.phase is VerificationPhase.UNAUTHENTICATED

    def release(self) -> None:
        self.watchdog.stop()
        self.activity.detach()


class SessionRegistry:
    def __init__(
        self,
        factory: MachineFactory,
        *,
        tick_seconds: float = 1.0,
        watch_expiry: bool = True,
        pending_ttl_seconds: float = DEFAULT_PENDING_TTL_SECONDS,
        max_pending: int = DEFAULT_MAX_PENDING,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if pending_ttl_seconds <= 0:
            raise ValueError("pending_ttl_seconds must be > 0")
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self._factory = factory
        self._tick_seconds = tick_seconds
        self._watch_expiry = watch_expiry
        self._pending_ttl = pending_ttl_seconds
        self._max_pending = max_pending
        self._monotonic = monotonic
        self._lock = Lock()
        self._handles: dict[str, SessionHandle] = {}
        self._owners: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def create(self) -> SessionHandle:
        session_id = secrets.token_urlsafe(32)
        handle = self._wire(session_id, self._factory(session_id))
        with self._lock:
            evicted = self._evict_pending_locked()
            self._handles[session_id] = handle
        self._release_evicted(evicted)
        logger.info("Verification session created", extra={"session": session_id})
        return handle

    def get(self, session_id: str) -> SessionHandle | None:
        """
        Handle vivo o restaurado desde persistencia.

        Una sesión restaurada ya vencida se devuelve (fase EXPIRED) para que el
        caller informe SESSION_EXPIRED, pero no queda registrada. Una sesión
        sin login que superó su TTL se olvida y se trata como desconocida.
        """
        stale = None
        with self._lock:
            handle = self._handles.get(session_id)
            if handle is not None and self._is_stale_locked(handle, self._monotonic()):
                stale = self._handles.pop(session_id)
        if stale is not None:
            self._release_evicted([stale])
            return None
        if handle is not None:
            return handle

        machine = self._factory(session_id)
        restored = machine.restore()
        if restored.phase is VerificationPhase.UNAUTHENTICATED:
            return None

        handle = self._wire(session_id, machine)
        if restored.is_terminal:
            handle.release()
            return handle

        with self._lock:
            existing = self._handles.setdefault(session_id, handle)
        if existing is not handle:
            handle.release()
            return existing

        if not self._track(handle, restored, supersede=False):
            # El principal ya tiene otra sesión viva más reciente.
            handle.machine.logout()
            return None
        self._open_window(handle, restored)
        return handle

    def discard(self, session_id: str) -> None:
        with self._lock:
            handle = self._handles.pop(session_id, None)
            if handle is not None and handle.principal_id is not None:
                if self._owners.get(handle.principal_id) == session_id:
                    del self._owners[handle.principal_id]
                handle.principal_id = None
        if handle is not None:
            handle.release()

    def close(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            self._owners.clear()
        for handle in handles:
            handle.release()

    # =========================================================
    # Helpers internos
    # =========================================================
    def _wire(self, session_id: str, machine: VerificationStateMachine) -> SessionHandle:
        handle = SessionHandle(
            session_id=session_id,
            machine=machine,
            watchdog=ExpiryWatchdog(machine, interval=self._tick_seconds),
            activity=ActivityMonitor(machine),
            created_at=self._monotonic(),
        )
        machine.add_listener(
            lambda previous, current: self._on_transition(handle, previous, current)
        )
        return handle

    def _on_transition(
        self,
        handle: SessionHandle,
        previous: VerificationState,
        current: VerificationState,
    ) -> None:
        if current.is_terminal:
            self.discard(handle.session_id)
            return
        if current.principal is not None:
            self._track(handle, current, supersede=previous.principal is None)
        self._open_window(handle, current)

    def _open_window(self, handle: SessionHandle, current: VerificationState) -> None:
        if current.session_expires_at is not None:
            handle.activity.attach()
            if self._watch_expiry:
                handle.watchdog.start()

    def _track(
        self, handle: SessionHandle, current: VerificationState, *, supersede: bool
    ) -> bool:
        """
        Registra el handle (de nuevo, si había terminado) como dueño del
        principal. Con supersede=True (login nuevo) cierra la sesión anterior
        del mismo principal; sin él, cede si ya hay otra dueña.
        """
        principal_id = current.principal.principal_id
        with self._lock:
            self._handles.setdefault(handle.session_id, handle)
            owner_id = self._owners.get(principal_id)
            if owner_id is not None and owner_id != handle.session_id and not supersede:
                return False
            self._owners[principal_id] = handle.session_id
            handle.principal_id = principal_id
            previous_owner = (
                self._handles.get(owner_id)
                if owner_id is not None and owner_id != handle.session_id
                else None
            )

        if previous_owner is not None:
            logger.warning(
                "Session superseded by a new sign-in",
                extra={
                    "session": previous_owner.session_id,
                    "superseded_by": handle.session_id,
                },
            )
            previous_owner.machine.logout()
        return True

    def _is_stale_locked(self, handle: SessionHandle, now: float) -> bool:
        return handle.pending and now - handle.created_at >= self._pending_ttl

    def _evict_pending_locked(self) -> list[SessionHandle]:
        """Saca sesiones sin login vencidas y, si hace falta, las más viejas."""
        now = self._monotonic()
        pending = [h for h in self._handles.values() if h.pending]
        evicted = [h for h in pending if now - h.created_at >= self._pending_ttl]
        live = [h for h in pending if now - h.created_at < self._pending_ttl]
        # Lugar para la sesión que se está creando.
        overflow = len(live) + 1 - self._max_pending
        if overflow > 0:
            evicted.extend(sorted(live, key=lambda h: h.created_at)[:overflow])
        for handle in evicted:
            del self._handles[handle.session_id]
        return evicted

    @staticmethod
    def _release_evicted(evicted: list[SessionHandle]) -> None:
        for handle in evicted:
            handle.release()
        if evicted:
            logger.info(
                "Pending verification sessions evicted",
                extra={"count": len(evicted)},
            )
