"""
===============================================================================
TARJETA CRC — trustgate/api/routes.py (Sesiones de verificación)
===============================================================================

Responsabilidades:
  - Exponer cada transición de la máquina de verificación como endpoint.
  - Traducir TransitionResult a 200 (SessionOut) o a problem+json con el
    código estable (INVALID_CODE, CHALLENGE_LOCKED_OUT, SESSION_EXPIRED, ...).
  - Ejemplo de endpoint protegido con require_access.

Colaboradores:
  - api.dependencies (registry, sesión, require_access)
  - application.verification_results (códigos)
  - crosscutting.error_responses (AppHTTPException)

Reglas:
  - Endpoints sync: las llamadas a colaboradores son bloqueantes y corren en
    el threadpool de FastAPI.
  - El challenge se devuelve en texto para que la vista lo renderice.
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..application.session_registry import SessionHandle, SessionRegistry
from ..application.verification_results import TransitionResult, VerificationErrorCode
from ..crosscutting.error_responses import AppHTTPException, ErrorCode, session_expired
from ..domain.entities import Challenge, VerificationPhase
from ..domain.roles import Role
from .dependencies import get_registry, get_session_handle, require_access
from .schemas import (
    AccessOut,
    ActivityIn,
    ChallengeAnswerIn,
    ChallengeOut,
    CodeIn,
    CredentialsIn,
    SessionCreatedOut,
    SessionOut,
    UnitIn,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])

_STATUS_BY_CODE: dict[VerificationErrorCode, int] = {
    VerificationErrorCode.INVALID_CREDENTIALS: 401,
    VerificationErrorCode.SERVICE_UNAVAILABLE: 503,
    VerificationErrorCode.COLLABORATOR_TIMEOUT: 504,
    VerificationErrorCode.INVALID_CODE_FORMAT: 422,
    VerificationErrorCode.INVALID_CODE: 422,
    VerificationErrorCode.CODE_EXPIRED: 422,
    VerificationErrorCode.DISPATCH_FAILED: 502,
    VerificationErrorCode.INVALID_CHALLENGE: 422,
    VerificationErrorCode.CHALLENGE_LOCKED_OUT: 423,
    VerificationErrorCode.SESSION_EXPIRED: 401,
}


def _challenge_out(challenge: Challenge | None) -> ChallengeOut | None:
    if challenge is None:
        return None
    return ChallengeOut(
        text=challenge.secret,
        attempts=challenge.attempts,
        remaining_attempts=challenge.remaining_attempts,
    )


def _session_out(
    handle: SessionHandle, *, code_delivered: bool | None = None
) -> SessionOut:
    machine = handle.machine
    state = machine.state
    principal = state.principal
    session_status = machine.session_status()

    out = SessionOut(
        phase=state.phase,
        credential_verified=state.credential_verified,
        second_factor_verified=state.second_factor_verified,
        challenge_verified=state.challenge_verified,
        code_delivered=code_delivered,
    )
    if principal is not None:
        out.principal_id = principal.principal_id
        out.display_name = principal.display_name
        out.role = principal.role
        out.unit_ref = principal.unit_ref
        out.requires_second_factor = principal.requires_second_factor
    if session_status is not None:
        out.session_expires_at = session_status.expires_at
        out.remaining_seconds = int(session_status.remaining.total_seconds())
        out.progress = round(session_status.progress, 4)
        out.countdown = session_status.countdown
        out.status = session_status.label
    if state.phase is VerificationPhase.CHALLENGE_PENDING:
        out.challenge = _challenge_out(machine.challenge)
    return out


def _respond(handle: SessionHandle, result: TransitionResult) -> SessionOut:
    if result.ok:
        return _session_out(handle, code_delivered=result.code_delivered)

    error = result.error
    detail: dict = {"phase": result.state.phase.value, "fatal": error.is_fatal}
    if result.challenge is not None:
        detail["challenge"] = _challenge_out(result.challenge).model_dump()
    if result.code_delivered is not None:
        detail["code_delivered"] = result.code_delivered

    raise AppHTTPException(
        status_code=_STATUS_BY_CODE[error.code],
        code=ErrorCode(error.code.value),
        detail=error.message,
        errors=[detail],
    )


@router.post("", response_model=SessionCreatedOut, status_code=status.HTTP_201_CREATED)
def create_session(registry: SessionRegistry = Depends(get_registry)):
    handle = registry.create()
    return SessionCreatedOut(session_id=handle.session_id, phase=handle.machine.phase)


@router.get("/current", response_model=SessionOut)
def get_current_session(handle: SessionHandle = Depends(get_session_handle)):
    return _session_out(handle)


@router.post("/current/credentials", response_model=SessionOut)
def submit_credentials(
    body: CredentialsIn, handle: SessionHandle = Depends(get_session_handle)
):
    result = handle.machine.submit_credentials(
        body.identifier, body.secret.get_secret_value()
    )
    return _respond(handle, result)


@router.post("/current/second-factor", response_model=SessionOut)
def request_second_factor(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.request_second_factor())


@router.post("/current/second-factor/resend", response_model=SessionOut)
def resend_second_factor(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.resend_second_factor())


@router.post("/current/second-factor/verify", response_model=SessionOut)
def submit_second_factor(
    body: CodeIn, handle: SessionHandle = Depends(get_session_handle)
):
    return _respond(handle, handle.machine.submit_second_factor(body.code))


@router.post("/current/challenge", response_model=SessionOut)
def enter_challenge(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.enter_challenge())


@router.post("/current/challenge/refresh", response_model=SessionOut)
def refresh_challenge(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.refresh_challenge())


@router.post("/current/challenge/verify", response_model=SessionOut)
def submit_challenge(
    body: ChallengeAnswerIn, handle: SessionHandle = Depends(get_session_handle)
):
    return _respond(handle, handle.machine.submit_challenge(body.answer))


@router.post("/current/unit", response_model=SessionOut)
def select_unit(body: UnitIn, handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.select_unit(body.unit_ref))


@router.post("/current/activate", response_model=SessionOut)
def activate(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.activate())


@router.post("/current/activity", response_model=SessionOut)
def record_activity(
    body: ActivityIn, handle: SessionHandle = Depends(get_session_handle)
):
    handle.activity.signal(body.kind)
    if handle.machine.state.phase is VerificationPhase.EXPIRED:
        raise session_expired()
    return _session_out(handle)


@router.post("/current/logout", response_model=SessionOut)
def logout(handle: SessionHandle = Depends(get_session_handle)):
    return _respond(handle, handle.machine.logout())


@router.get("/current/access/{role}", response_model=AccessOut)
def check_access(role: Role, handle: SessionHandle = Depends(get_session_handle)):
    return AccessOut(role=role, allowed=handle.machine.check_access(role))


@router.get("/current/principal", response_model=SessionOut)
def get_verified_principal(
    handle: SessionHandle = Depends(require_access(Role.GUEST)),
):
    return _session_out(handle)
