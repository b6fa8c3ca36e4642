"""
===============================================================================
TARJETA CRC — trustgate/context.py (Contexto por request / sesión)
===============================================================================

Responsabilidades:
  - Mantener contexto "request-scoped" usando ContextVars (async-safe).
  - Correlacionar logs de una misma sesión de verificación sin pasar ids por todo el stack.
  - Proveer helpers mínimos: set_*(), get_context_dict(), clear_context().

Colaboradores:
  - trustgate.api.middleware: setea request_id/method/path al inicio del request.
  - trustgate.application.verification: setea session_id/principal_id/phase por transición.
  - trustgate.crosscutting.logger: enriquece logs leyendo get_context_dict().

Restricciones:
  - Solo tipos primitivos (str) para serialización segura.
  - Defaults vacíos ("") para evitar None y simplificar JSON.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

# Sesión de verificación en curso (no es un secreto: es un id opaco).
session_id_var: ContextVar[str] = ContextVar("session_id", default="")
principal_id_var: ContextVar[str] = ContextVar("principal_id", default="")
phase_var: ContextVar[str] = ContextVar("phase", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_METHOD: Final[str] = "method"
_CTX_PATH: Final[str] = "path"
_CTX_SESSION_ID: Final[str] = "session_id"
_CTX_PRINCIPAL_ID: Final[str] = "principal_id"
_CTX_PHASE: Final[str] = "phase"


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """
    Setea el contexto mínimo del request.

    Regla:
      - Strings vacíos significan "no disponible".
    """
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def set_session_context(
    *, session_id: str = "", principal_id: str = "", phase: str = ""
) -> None:
    """Setea el contexto de la sesión de verificación."""
    session_id_var.set(session_id or "")
    principal_id_var.set(principal_id or "")
    phase_var.set(phase or "")


def get_context_dict() -> dict[str, str]:
    """
    Devuelve el contexto actual como dict, omitiendo claves vacías.
    """
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := http_method_var.get():
        ctx[_CTX_METHOD] = val
    if val := http_path_var.get():
        ctx[_CTX_PATH] = val
    if val := session_id_var.get():
        ctx[_CTX_SESSION_ID] = val
    if val := principal_id_var.get():
        ctx[_CTX_PRINCIPAL_ID] = val
    if val := phase_var.get():
        ctx[_CTX_PHASE] = val

    return ctx


def clear_context() -> None:
    """
    Limpia el contexto al final del request.

    Importante:
      - Evita "filtración de contexto" entre requests cuando hay workers async.
    """
    request_id_var.set("")
    http_method_var.set("")
    http_path_var.set("")
    session_id_var.set("")
    principal_id_var.set("")
    phase_var.set("")
