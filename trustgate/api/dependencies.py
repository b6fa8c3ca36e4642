"""
===============================================================================
TARJETA CRC — trustgate/api/dependencies.py
===============================================================================

Responsabilidades:
  - Resolver el SessionRegistry (composition root) para FastAPI.
  - Resolver la sesión del request desde el header X-Session-Id.
  - require_access(role): dependency factory que gatea endpoints con
    check_access (lectura pura, sin lock).

Colaboradores:
  - trustgate.container.get_session_registry
  - trustgate.application.session_registry.SessionHandle
  - crosscutting.error_responses (401 / 403 RFC7807)
===============================================================================
"""

from __future__ import annotations

from fastapi import Depends, Header

from ..application.session_registry import SessionHandle, SessionRegistry
from ..container import get_session_registry
from ..crosscutting.error_responses import forbidden, session_expired, unauthorized
from ..domain.entities import VerificationPhase
from ..domain.roles import Role


def get_registry() -> SessionRegistry:
    return get_session_registry()


def get_session_handle(
    x_session_id: str | None = Header(default=None, alias="X-Session-Id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionHandle:
    session_id = (x_session_id or "").strip()
    if not session_id:
        raise unauthorized("X-Session-Id header required")

    handle = registry.get(session_id)
    if handle is None:
        raise unauthorized("Unknown session")

    if handle.machine.state.phase is VerificationPhase.EXPIRED:
        raise session_expired()

    return handle


def require_access(required: Role):
    """
    Dependency factory: 403 salvo que la sesión esté completamente verificada,
    vigente y con rol >= required.
    """

    def dependency(handle: SessionHandle = Depends(get_session_handle)) -> SessionHandle:
        if not handle.machine.check_access(required):
            raise forbidden(f"Requires a fully verified {required.value} session")
        return handle

    return dependency
