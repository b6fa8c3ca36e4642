"""
===============================================================================
MÓDULO: Middleware HTTP de contexto
===============================================================================

RequestContextMiddleware:
  - Generar/propagar X-Request-Id
  - Setear contextvars (method/path) para los logs JSON
  - Log de finalización por request
  - Métricas HTTP (conteo y latencia por template de ruta)
  - Garantizar clear_context() para evitar leaks entre requests
===============================================================================
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..context import clear_context, set_request_context
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_request_metrics


class RequestContextMiddleware(BaseHTTPMiddleware):
    _QUIET_PATHS = {"/healthz", "/metrics"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = (request.headers.get("x-request-id") or "").strip()
        request_id = (
            incoming if self._is_valid_request_id(incoming) else str(uuid.uuid4())
        )

        set_request_context(
            request_id=request_id, method=request.method, path=request.url.path
        )
        request.state.request_id = request_id

        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-Id"] = request_id
            return response
        except Exception:
            latency = time.perf_counter() - start
            logger.exception(
                "request failed",
                extra={"status_code": 500, "latency_ms": round(latency * 1000, 2)},
            )
            raise
        finally:
            latency = time.perf_counter() - start
            if request.url.path not in self._QUIET_PATHS:
                logger.info(
                    "request completed",
                    extra={
                        "status_code": status_code,
                        "latency_ms": round(latency * 1000, 2),
                    },
                )
                record_request_metrics(
                    endpoint=self._endpoint(request),
                    method=request.method,
                    status_code=status_code,
                    latency_seconds=latency,
                )
            clear_context()

    @staticmethod
    def _endpoint(request: Request) -> str:
        # Template de la ruta (/sessions/current/access/{role}) si matcheó.
        route = request.scope.get("route")
        return getattr(route, "path", None) or request.url.path

    @staticmethod
    def _is_valid_request_id(value: str) -> bool:
        return bool(value) and len(value) <= 128
