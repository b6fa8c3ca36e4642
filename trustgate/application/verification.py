"""
===============================================================================
TARJETA CRC — application/verification.py
===============================================================================

Módulo:
    Máquina de estados de verificación continua

Responsabilidades:
    - Secuenciar los gates: credenciales -> código -> CAPTCHA -> activación.
    - Ser el ÚNICO camino de escritura del VerificationState (un dispatcher,
      un lock por sesión, un repositorio).
    - Aplicar expiración perezosa: toda transición revisa primero la ventana.
    - Responder check_access(role) como lectura pura, sin lock.
    - Notificar a listeners (watchdog, monitor de actividad, registry) después
      de cada cambio, fuera del lock.

Colaboradores:
    - domain.services.Authenticator (credenciales)
    - application.one_time_code.OneTimeCodeGate (segundo factor)
    - application.captcha.CaptchaEngine (challenge)
    - application.session_lifecycle.SessionLifecycleManager (ventana)
    - domain.repositories.VerificationStateRepository (persistencia)
    - trustgate.audit.emit_security_event (best-effort)

Reglas:
    - Fallas de usuario -> TransitionResult con error tipado.
    - Transición fuera de orden -> IllegalTransitionError (bug del caller).
    - Lockout y expiración son fatales: el estado queda vacío en LOCKED/EXPIRED.
    - Los timeouts de colaboradores se reportan, nunca se reintentan acá.
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from threading import RLock
from typing import Callable

from ..audit import emit_security_event
from ..context import set_session_context
from ..crosscutting.exceptions import (
    CodeExpiredError,
    CollaboratorTimeoutError,
    DispatchError,
    IllegalTransitionError,
    InvalidCodeFormatError,
    InvalidCredentialsError,
    ServiceUnavailableError,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_transition_error
from ..domain.audit import SecurityAction
from ..domain.entities import (
    TERMINAL_PHASES,
    Challenge,
    OneTimeCode,
    Principal,
    VerificationPhase,
    VerificationState,
)
from ..domain.repositories import SecurityEventRepository, VerificationStateRepository
from ..domain.roles import Role, at_least, parse_role
from ..domain.services import Authenticator
from ..domain.session_policy import SessionStatus
from .captcha import CaptchaEngine, LockedOut
from .one_time_code import OneTimeCodeGate
from .session_lifecycle import SessionLifecycleManager
from .verification_results import (
    TransitionResult,
    VerificationError,
    VerificationErrorCode,
)

P = VerificationPhase

StateListener = Callable[[VerificationState, VerificationState], None]


class Transition(str, Enum):
    SUBMIT_CREDENTIALS = "submit_credentials"
    REQUEST_SECOND_FACTOR = "request_second_factor"
    RESEND_SECOND_FACTOR = "resend_second_factor"
    SUBMIT_SECOND_FACTOR = "submit_second_factor"
    ENTER_CHALLENGE = "enter_challenge"
    REFRESH_CHALLENGE = "refresh_challenge"
    SUBMIT_CHALLENGE = "submit_challenge"
    SELECT_UNIT = "select_unit"
    ACTIVATE = "activate"
    RECORD_ACTIVITY = "record_activity"
    LOGOUT = "logout"
    EXPIRE = "expire"


# Fases con ventana de sesión abierta.
SESSION_PHASES = frozenset(
    {
        P.CREDENTIALS_OK,
        P.SECOND_FACTOR_PENDING,
        P.SECOND_FACTOR_OK,
        P.CHALLENGE_PENDING,
        P.CHALLENGE_OK,
        P.UNIT_SELECTED,
        P.ACTIVE,
    }
)

_ALL_PHASES = frozenset(P)

_ALLOWED_FROM: dict[Transition, frozenset[VerificationPhase]] = {
    Transition.SUBMIT_CREDENTIALS: frozenset({P.UNAUTHENTICATED}) | TERMINAL_PHASES,
    Transition.REQUEST_SECOND_FACTOR: frozenset(
        {P.CREDENTIALS_OK, P.SECOND_FACTOR_PENDING}
    ),
    Transition.RESEND_SECOND_FACTOR: frozenset({P.SECOND_FACTOR_PENDING}),
    Transition.SUBMIT_SECOND_FACTOR: frozenset({P.SECOND_FACTOR_PENDING}),
    Transition.ENTER_CHALLENGE: frozenset({P.SECOND_FACTOR_OK, P.CHALLENGE_PENDING}),
    Transition.REFRESH_CHALLENGE: frozenset({P.CHALLENGE_PENDING}),
    Transition.SUBMIT_CHALLENGE: frozenset({P.CHALLENGE_PENDING}),
    Transition.SELECT_UNIT: frozenset({P.CHALLENGE_OK, P.ACTIVE}),
    Transition.ACTIVATE: frozenset({P.CHALLENGE_OK, P.UNIT_SELECTED, P.ACTIVE}),
    Transition.RECORD_ACTIVITY: SESSION_PHASES,
    Transition.LOGOUT: _ALL_PHASES,
    Transition.EXPIRE: _ALL_PHASES,
}

# Después de expirar perezosamente, estas transiciones siguen su curso.
_CONTINUE_AFTER_EXPIRY = frozenset({Transition.SUBMIT_CREDENTIALS, Transition.LOGOUT})


def _error(code: VerificationErrorCode, message: str) -> VerificationError:
    return VerificationError(code=code, message=message)


class VerificationStateMachine:
    """
    Orquestador de una sesión de verificación (un principal por instancia).

    Todas las transiciones pasan por `_dispatch`, que:
      1) toma el lock de la sesión
      2) aplica expiración perezosa
      3) valida la fase de origen (o lanza IllegalTransitionError)
      4) ejecuta el handler y persiste el nuevo estado
    y, ya fuera del lock, notifica a los listeners.
    """

    def __init__(
        self,
        session_id: str,
        *,
        authenticator: Authenticator,
        code_gate: OneTimeCodeGate,
        captcha: CaptchaEngine,
        lifecycle: SessionLifecycleManager,
        repository: VerificationStateRepository,
        events: SecurityEventRepository | None = None,
    ) -> None:
        self.session_id = session_id
        self._authenticator = authenticator
        self._code_gate = code_gate
        self._captcha = captcha
        self._lifecycle = lifecycle
        self._repository = repository
        self._events = events

        self._lock = RLock()
        self._state = VerificationState.empty()
        self._challenge: Challenge | None = None
        self._listeners: list[StateListener] = []

    # =========================================================
    # Lecturas
    # =========================================================
    @property
    def state(self) -> VerificationState:
        """Estado autoritativo; si la ventana venció, primero expira."""
        self.enforce_expiry()
        return self._state

    @property
    def snapshot(self) -> VerificationState:
        """Último estado confirmado, sin aplicar expiración (lectura sin lock)."""
        return self._state

    @property
    def phase(self) -> VerificationPhase:
        return self.state.phase

    @property
    def challenge(self) -> Challenge | None:
        """Challenge vigente (la vista lo renderiza)."""
        return self._challenge

    def check_access(self, required_role: Role | str) -> bool:
        """
        Lectura pura, sin lock: el estado es inmutable y se reemplaza atómicamente.

        True sii los tres flags están en true, la ventana no venció y el rol
        del principal alcanza al requerido.
        """
        state = self._state
        required = parse_role(required_role)
        if required is None or state.principal is None:
            return False
        if not state.fully_verified:
            return False
        if self._lifecycle.is_expired(state):
            return False
        return at_least(state.principal.role, required)

    def session_status(self) -> SessionStatus | None:
        return self._lifecycle.status(self._state)

    # =========================================================
    # Suscripciones
    # =========================================================
    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Registra listener(previous, current); devuelve la función de baja."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # =========================================================
    # Transiciones públicas
    # =========================================================
    def submit_credentials(self, identifier: str, secret: str) -> TransitionResult:
        return self._dispatch(
            Transition.SUBMIT_CREDENTIALS,
            lambda state: self._on_submit_credentials(state, identifier, secret),
        )

    def request_second_factor(self) -> TransitionResult:
        return self._dispatch(
            Transition.REQUEST_SECOND_FACTOR, self._on_request_second_factor
        )

    def resend_second_factor(self) -> TransitionResult:
        return self._dispatch(
            Transition.RESEND_SECOND_FACTOR, self._on_resend_second_factor
        )

    def submit_second_factor(self, code: str) -> TransitionResult:
        return self._dispatch(
            Transition.SUBMIT_SECOND_FACTOR,
            lambda state: self._on_submit_second_factor(state, code),
        )

    def enter_challenge(self) -> TransitionResult:
        return self._dispatch(Transition.ENTER_CHALLENGE, self._on_enter_challenge)

    def refresh_challenge(self) -> TransitionResult:
        return self._dispatch(Transition.REFRESH_CHALLENGE, self._on_refresh_challenge)

    def submit_challenge(self, user_input: str) -> TransitionResult:
        return self._dispatch(
            Transition.SUBMIT_CHALLENGE,
            lambda state: self._on_submit_challenge(state, user_input),
        )

    def select_unit(self, unit_ref: str) -> TransitionResult:
        return self._dispatch(
            Transition.SELECT_UNIT, lambda state: self._on_select_unit(state, unit_ref)
        )

    def activate(self) -> TransitionResult:
        return self._dispatch(Transition.ACTIVATE, self._on_activate)

    def record_activity(self, kind: str = "pointer") -> TransitionResult:
        return self._dispatch(
            Transition.RECORD_ACTIVITY,
            lambda state: self._on_record_activity(state, kind),
        )

    def logout(self) -> TransitionResult:
        return self._dispatch(Transition.LOGOUT, self._on_logout)

    def enforce_expiry(self) -> bool:
        """
        Chequeo del tick: True sólo en la llamada que efectivamente expiró la
        sesión (exactamente una vez).
        """
        if not self._lapsed(self._state):
            return False
        result = self._dispatch(Transition.EXPIRE, TransitionResult)
        return (
            result.error is not None
            and result.error.code is VerificationErrorCode.SESSION_EXPIRED
        )

    def restore(self) -> VerificationState:
        """
        Carga el estado persistido. Si la ventana ya venció, queda EXPIRED de
        inmediato (nunca se considera válido).
        """
        with self._lock:
            previous = self._state
            loaded = self._repository.load(self.session_id)
            if loaded is None:
                return self._state
            self._state = loaded
            self._challenge = None
            self._bind_context(loaded)
            if self._lapsed(loaded):
                logger.info(
                    "Restored session already expired",
                    extra={"session": self.session_id},
                )
                self._expire(loaded)
            else:
                logger.info(
                    "Session restored",
                    extra={"session": self.session_id, "to_phase": loaded.phase.value},
                )
            current = self._state
        self._notify(previous, current)
        return current

    # =========================================================
    # Dispatcher (único camino de escritura)
    # =========================================================
    def _dispatch(
        self,
        transition: Transition,
        handler: Callable[[VerificationState], TransitionResult],
    ) -> TransitionResult:
        with self._lock:
            previous = self._state
            result = self._run(transition, handler)
            current = self._state
        self._notify(previous, current)
        return result

    def _run(
        self,
        transition: Transition,
        handler: Callable[[VerificationState], TransitionResult],
    ) -> TransitionResult:
        state = self._state
        self._bind_context(state)

        if self._lapsed(state):
            state = self._expire(state)
            if transition not in _CONTINUE_AFTER_EXPIRY:
                return self._expired_result(state)

        if state.phase not in _ALLOWED_FROM[transition]:
            logger.warning(
                "Illegal verification transition",
                extra={"transition": transition.value, "from_phase": state.phase.value},
            )
            raise IllegalTransitionError(transition.value, state.phase.value)

        result = handler(state)
        self._commit(state, result.state, transition, result.error)
        return result

    def _commit(
        self,
        previous: VerificationState,
        new: VerificationState,
        transition: Transition,
        error: VerificationError | None,
    ) -> None:
        if new != previous:
            self._persist(new)
            self._state = new
            self._bind_context(new)

        extra = {
            "transition": transition.value,
            "from_phase": previous.phase.value,
            "to_phase": new.phase.value,
        }
        if error is None:
            if transition is not Transition.EXPIRE:
                logger.info("Verification transition", extra=extra)
            return

        record_transition_error(transition.value, error.code.value)
        if error.code in {
            VerificationErrorCode.SERVICE_UNAVAILABLE,
            VerificationErrorCode.COLLABORATOR_TIMEOUT,
            VerificationErrorCode.DISPATCH_FAILED,
        }:
            logger.error(
                "Verification collaborator failed",
                extra={**extra, "error_code": error.code.value},
            )
        else:
            logger.warning(
                "Verification transition rejected",
                extra={**extra, "error_code": error.code.value},
            )

    def _persist(self, state: VerificationState) -> None:
        if state.principal is None:
            self._repository.delete(self.session_id)
        else:
            self._repository.save(self.session_id, state)

    def _notify(self, previous: VerificationState, current: VerificationState) -> None:
        if previous is current:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(previous, current)
            except Exception:
                logger.exception(
                    "Verification listener failed", extra={"session": self.session_id}
                )

    def _bind_context(self, state: VerificationState) -> None:
        set_session_context(
            session_id=self.session_id,
            principal_id=state.principal.principal_id if state.principal else "",
            phase=state.phase.value,
        )

    # =========================================================
    # Expiración
    # =========================================================
    def _lapsed(self, state: VerificationState) -> bool:
        return (
            state.session_expires_at is not None
            and not state.is_terminal
            and self._lifecycle.is_expired(state)
        )

    def _expire(self, state: VerificationState) -> VerificationState:
        expired = VerificationState.empty(P.EXPIRED)
        self._discard_secrets(state.principal)
        self._persist(expired)
        self._state = expired
        self._bind_context(expired)
        logger.warning(
            "Session expired",
            extra={"session": self.session_id, "from_phase": state.phase.value},
        )
        self._audit(SecurityAction.SESSION_EXPIRED, state.principal)
        return expired

    @staticmethod
    def _expired_result(state: VerificationState) -> TransitionResult:
        return TransitionResult(
            state=state,
            error=_error(
                VerificationErrorCode.SESSION_EXPIRED,
                "Session expired due to inactivity, sign in again",
            ),
        )

    def _discard_secrets(self, principal: Principal | None) -> None:
        self._challenge = None
        if principal is not None:
            self._code_gate.invalidate(principal.principal_id)

    def _audit(self, action: SecurityAction, principal: Principal | None, **metadata) -> None:
        emit_security_event(
            self._events,
            action=action,
            principal=principal,
            session_id=self.session_id,
            metadata=metadata or None,
            occurred_at=self._lifecycle.now(),
        )

    # =========================================================
    # Handlers
    # =========================================================
    def _on_submit_credentials(
        self, state: VerificationState, identifier: str, secret: str
    ) -> TransitionResult:
        try:
            principal = self._authenticator.authenticate(identifier, secret)
        except InvalidCredentialsError:
            self._audit(SecurityAction.CREDENTIALS_REJECTED, None)
            return TransitionResult(
                state=VerificationState.empty(),
                error=_error(
                    VerificationErrorCode.INVALID_CREDENTIALS, "Invalid credentials"
                ),
            )
        except CollaboratorTimeoutError:
            return TransitionResult(
                state=state,
                error=_error(
                    VerificationErrorCode.COLLABORATOR_TIMEOUT,
                    "Authentication service timed out, try again",
                ),
            )
        except ServiceUnavailableError:
            return TransitionResult(
                state=state,
                error=_error(
                    VerificationErrorCode.SERVICE_UNAVAILABLE,
                    "Authentication service unavailable, try again",
                ),
            )

        # Nuevo login: gate de código y CAPTCHA arrancan de cero.
        self._discard_secrets(principal)

        if principal.requires_second_factor:
            fresh = VerificationState(
                phase=P.CREDENTIALS_OK, credential_verified=True, principal=principal
            )
        else:
            fresh = VerificationState(
                phase=P.CHALLENGE_OK,
                credential_verified=True,
                second_factor_verified=True,
                challenge_verified=True,
                principal=principal,
            )

        self._audit(SecurityAction.CREDENTIALS_VERIFIED, principal)
        return TransitionResult(state=self._lifecycle.start(fresh, principal.role))

    def _on_request_second_factor(self, state: VerificationState) -> TransitionResult:
        if state.phase is P.SECOND_FACTOR_PENDING:
            if self._code_gate.current(state.principal.principal_id) is not None:
                # Idempotente dentro de la misma ventana pendiente: no re-emite.
                return TransitionResult(state=state)
            # Sesión restaurada o código invalidado: no hay nada que verificar.
            return self._deliver(state, self._code_gate.issue(state.principal))

        code = self._code_gate.issue(state.principal)
        return self._deliver(state.evolve(phase=P.SECOND_FACTOR_PENDING), code)

    def _on_resend_second_factor(self, state: VerificationState) -> TransitionResult:
        code = self._code_gate.resend(state.principal)
        return self._deliver(state, code)

    def _deliver(self, state: VerificationState, code: OneTimeCode) -> TransitionResult:
        try:
            self._code_gate.dispatch(code)
        except CollaboratorTimeoutError:
            self._audit(
                SecurityAction.SECOND_FACTOR_DISPATCH_FAILED,
                state.principal,
                reason="timeout",
            )
            return TransitionResult(
                state=state,
                code_delivered=False,
                error=_error(
                    VerificationErrorCode.COLLABORATOR_TIMEOUT,
                    "Code delivery timed out, request a resend",
                ),
            )
        except DispatchError:
            self._audit(
                SecurityAction.SECOND_FACTOR_DISPATCH_FAILED,
                state.principal,
                reason="dispatch_failed",
            )
            return TransitionResult(
                state=state,
                code_delivered=False,
                error=_error(
                    VerificationErrorCode.DISPATCH_FAILED,
                    "Code could not be delivered, request a resend",
                ),
            )

        self._audit(SecurityAction.SECOND_FACTOR_ISSUED, state.principal)
        return TransitionResult(state=state, code_delivered=True)

    def _on_submit_second_factor(
        self, state: VerificationState, code: str
    ) -> TransitionResult:
        try:
            accepted = self._code_gate.verify(state.principal, code)
        except InvalidCodeFormatError:
            return TransitionResult(
                state=state,
                error=_error(
                    VerificationErrorCode.INVALID_CODE_FORMAT,
                    "Code must be exactly 6 digits",
                ),
            )
        except CodeExpiredError:
            return TransitionResult(
                state=state,
                error=_error(
                    VerificationErrorCode.CODE_EXPIRED,
                    "Code expired, request a new one",
                ),
            )

        if not accepted and self._code_gate.current(state.principal.principal_id) is None:
            return TransitionResult(
                state=state,
                code_delivered=False,
                error=_error(
                    VerificationErrorCode.INVALID_CODE,
                    "No active code for this session, request a resend",
                ),
            )

        if not accepted:
            self._audit(SecurityAction.SECOND_FACTOR_REJECTED, state.principal)
            return TransitionResult(
                state=state,
                error=_error(VerificationErrorCode.INVALID_CODE, "Invalid code"),
            )

        self._audit(SecurityAction.SECOND_FACTOR_VERIFIED, state.principal)
        verified = state.evolve(phase=P.SECOND_FACTOR_OK, second_factor_verified=True)
        return TransitionResult(state=self._lifecycle.touch(verified))

    def _on_enter_challenge(self, state: VerificationState) -> TransitionResult:
        if state.phase is P.CHALLENGE_PENDING and self._challenge is not None:
            return TransitionResult(state=state, challenge=self._challenge)

        # El contador de intentos es del login, no del challenge.
        self._challenge = self._captcha.generate(attempts=state.challenge_attempts)
        return TransitionResult(
            state=state.evolve(phase=P.CHALLENGE_PENDING), challenge=self._challenge
        )

    def _on_refresh_challenge(self, state: VerificationState) -> TransitionResult:
        if self._challenge is None:
            self._challenge = self._captcha.generate(attempts=state.challenge_attempts)
        else:
            self._challenge = self._captcha.refresh(self._challenge)
        return TransitionResult(state=state, challenge=self._challenge)

    def _on_submit_challenge(
        self, state: VerificationState, user_input: str
    ) -> TransitionResult:
        challenge = self._challenge
        if challenge is None:
            # Sesión restaurada: el secreto no se persiste, se emite uno nuevo.
            self._challenge = self._captcha.generate(attempts=state.challenge_attempts)
            return TransitionResult(
                state=state,
                challenge=self._challenge,
                error=_error(
                    VerificationErrorCode.INVALID_CHALLENGE,
                    "Challenge was renewed, solve the new one",
                ),
            )

        if self._captcha.validate(challenge, user_input):
            self._challenge = None
            self._audit(SecurityAction.CAPTCHA_VERIFIED, state.principal)
            solved = state.evolve(
                phase=P.CHALLENGE_OK, challenge_verified=True, challenge_attempts=0
            )
            return TransitionResult(state=self._lifecycle.touch(solved))

        outcome = self._captcha.record_failure(challenge)
        if isinstance(outcome, LockedOut):
            self._audit(
                SecurityAction.CAPTCHA_BLOCKED,
                state.principal,
                attempts=outcome.attempts,
            )
            self._discard_secrets(state.principal)
            return TransitionResult(
                state=VerificationState.empty(P.LOCKED),
                error=_error(
                    VerificationErrorCode.CHALLENGE_LOCKED_OUT,
                    "Too many failed attempts, account blocked for this session",
                ),
            )

        self._challenge = outcome.challenge
        self._audit(
            SecurityAction.CAPTCHA_FAILED,
            state.principal,
            attempts=outcome.challenge.attempts,
        )
        return TransitionResult(
            state=state.evolve(challenge_attempts=outcome.challenge.attempts),
            challenge=outcome.challenge,
            error=_error(
                VerificationErrorCode.INVALID_CHALLENGE,
                f"Incorrect answer, {outcome.challenge.remaining_attempts} attempts left",
            ),
        )

    def _on_select_unit(self, state: VerificationState, unit_ref: str) -> TransitionResult:
        if not state.fully_verified:
            raise IllegalTransitionError(
                Transition.SELECT_UNIT.value, state.phase.value, "gates not passed"
            )
        if state.principal.unit_ref:
            raise IllegalTransitionError(
                Transition.SELECT_UNIT.value, state.phase.value, "unit already set"
            )
        if not unit_ref or not unit_ref.strip():
            raise ValueError("unit_ref must be a non-empty string")

        principal = state.principal.with_unit(unit_ref.strip())
        phase = P.ACTIVE if state.phase is P.ACTIVE else P.UNIT_SELECTED
        self._audit(SecurityAction.DEPARTMENT_SELECTED, principal)
        return TransitionResult(
            state=self._lifecycle.touch(state.evolve(phase=phase, principal=principal))
        )

    def _on_activate(self, state: VerificationState) -> TransitionResult:
        if not state.fully_verified:
            raise IllegalTransitionError(
                Transition.ACTIVATE.value, state.phase.value, "gates not passed"
            )
        if state.phase is P.ACTIVE:
            return TransitionResult(state=state)

        self._audit(SecurityAction.SESSION_ACTIVATED, state.principal)
        return TransitionResult(
            state=self._lifecycle.touch(state.evolve(phase=P.ACTIVE))
        )

    def _on_record_activity(self, state: VerificationState, kind: str) -> TransitionResult:
        logger.debug("Activity observed", extra={"activity": kind})
        return TransitionResult(state=self._lifecycle.touch(state))

    def _on_logout(self, state: VerificationState) -> TransitionResult:
        self._discard_secrets(state.principal)
        if state.principal is not None:
            self._audit(SecurityAction.LOGGED_OUT, state.principal)
        return TransitionResult(state=VerificationState.empty(P.LOGGED_OUT))
