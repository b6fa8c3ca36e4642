"""
===============================================================================
TARJETA CRC — trustgate/api/exception_handlers.py (Manejo Centralizado)
===============================================================================

Responsabilidades:
  - Traducir excepciones del motor a respuestas HTTP RFC7807.
  - IllegalTransitionError -> 409 (bug del caller, pero no un 500 opaco).
  - PersistenceError -> 503 (store de sesiones caído).
  - Evitar filtrar detalles internos en errores no controlados.

Colaboradores:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: TrustGateError y derivadas
  - crosscutting.config.get_settings (nivel de detalle)
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
)
from ..crosscutting.exceptions import (
    IllegalTransitionError,
    PersistenceError,
    TrustGateError,
)
from ..crosscutting.logger import logger


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


async def illegal_transition_handler(
    request: Request, exc: IllegalTransitionError
) -> JSONResponse:
    app_exc = AppHTTPException(
        status_code=409,
        code=ErrorCode.CONFLICT,
        detail=exc.message,
        errors=[{"error_id": exc.error_id, "phase": exc.phase}],
    )
    return await app_exception_handler(request, app_exc)


async def _handle_service_error(
    request: Request,
    *,
    exc: TrustGateError,
    code: ErrorCode,
    status_code: int,
) -> JSONResponse:
    """Helper común para errores tipados de servicios."""
    request_id = _request_id_from(request)

    logger.error(
        "Service error",
        extra={
            "error_code": code.value,
            "error_id": exc.error_id,
            "error": exc.message,
            "request_id": request_id,
        },
    )

    app_exc = AppHTTPException(
        status_code=status_code,
        code=code,
        detail=exc.message,
        errors=[{"error_id": exc.error_id}],
    )
    return await app_exception_handler(request, app_exc)


async def persistence_error_handler(
    request: Request, exc: PersistenceError
) -> JSONResponse:
    return await _handle_service_error(
        request, exc=exc, code=ErrorCode.PERSISTENCE_ERROR, status_code=503
    )


async def trustgate_error_handler(
    request: Request, exc: TrustGateError
) -> JSONResponse:
    return await _handle_service_error(
        request, exc=exc, code=ErrorCode.INTERNAL_ERROR, status_code=500
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas: log completo, respuesta genérica.
    """
    request_id = _request_id_from(request)

    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={"request_id": request_id, "error": str(exc)},
    )

    detail = str(exc) if not get_settings().is_production() else "Internal error."

    app_exc = AppHTTPException(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        detail=detail,
        errors=[{"request_id": request_id}],
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Registra handlers en la app FastAPI.

    Importante:
      - Las subclases se registran antes que TrustGateError.
      - Exception genérica se registra al final como fallback.
    """
    app.add_exception_handler(IllegalTransitionError, illegal_transition_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)
    app.add_exception_handler(TrustGateError, trustgate_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
