"""
Name: Expiry Watchdog and Activity Monitor

Responsibilities:
  - ExpiryWatchdog: tick every `interval` seconds and ask the state machine to
    enforce expiry (the state machine decides, the watchdog only schedules)
  - ActivityMonitor: forward pointer/key/scroll/touch signals as touches
  - Both detach themselves deterministically once the session turns terminal

Collaborators:
  - application.verification.VerificationStateMachine (enforce_expiry,
    record_activity, add_listener)
  - crosscutting.logger

Constraints:
  - One daemon thread per watched session, stopped with an Event and joined
  - A stop requested from the tick thread itself never joins (no self-join)
  - A stopped watchdog can be started again (new login on the same session);
    every run gets its own stop Event
"""

from __future__ import annotations

import threading
from typing import Callable

from ..crosscutting.exceptions import IllegalTransitionError, PersistenceError
from ..crosscutting.logger import logger
from ..domain.entities import VerificationState
from .verification import SESSION_PHASES, VerificationStateMachine

ACTIVITY_KINDS = frozenset({"pointer", "key", "scroll", "touch"})


class ExpiryWatchdog:
    def __init__(self, machine: VerificationStateMachine, *, interval: float = 1.0):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._machine = machine
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and not self._stop_event.is_set():
                return
            self._stop_event = threading.Event()
            if self._unsubscribe is None:
                self._unsubscribe = self._machine.add_listener(self._on_transition)
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=f"expiry-watchdog-{self._machine.session_id[:8]}",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            self._stop_event.set()
            thread, self._thread = self._thread, None
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            try:
                if self._machine.enforce_expiry():
                    break
            except PersistenceError:
                # El próximo tick reintenta; la expiración perezosa sigue vigente.
                logger.exception(
                    "Expiry tick failed", extra={"session": self._machine.session_id}
                )
        stop_event.set()

    def _on_transition(
        self, previous: VerificationState, current: VerificationState
    ) -> None:
        if current.is_terminal:
            self.stop()


class ActivityMonitor:
    """
    Puente entre señales de actividad (pointer/key/scroll/touch) y touch().

    Una vez que la sesión es terminal, las señales se ignoran.
    """

    def __init__(self, machine: VerificationStateMachine):
        self._machine = machine
        self._attached = False
        self._unsubscribe: Callable[[], None] | None = None
        self._lock = threading.Lock()

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        with self._lock:
            if self._attached:
                return
            self._unsubscribe = self._machine.add_listener(self._on_transition)
            self._attached = True

    def detach(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            self._attached = False
        if unsubscribe is not None:
            unsubscribe()

    def signal(self, kind: str) -> bool:
        """True si la señal renovó la sesión."""
        if kind not in ACTIVITY_KINDS:
            raise ValueError(f"Unknown activity kind: {kind}")
        if not self._attached:
            return False
        if self._machine.state.phase not in SESSION_PHASES:
            return False
        try:
            result = self._machine.record_activity(kind)
        except IllegalTransitionError:
            # La sesión terminó entre el chequeo y la señal.
            self.detach()
            return False
        return result.ok

    def _on_transition(
        self, previous: VerificationState, current: VerificationState
    ) -> None:
        if current.is_terminal:
            self.detach()
