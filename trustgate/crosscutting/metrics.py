"""
===============================================================================
ARCHIVO: crosscutting/metrics.py
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Métricas (Prometheus): observabilidad de bajo acoplamiento

Responsabilidades:
    - Definir métricas Prometheus en un registry propio.
    - Proveer funciones pequeñas y estables para registrar eventos/duraciones.
    - Cuidar cardinalidad (NO principal_id, NO session_id, NO paths crudos).
    - Exponer helpers para generar la respuesta /metrics.

Colaboradores:
    - api.middleware: registra latencia y conteo HTTP.
    - audit.emit_security_event: cuenta resultados de cada gate.
    - application.verification: cuenta transiciones rechazadas por código.
===============================================================================
"""

from __future__ import annotations

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "trustgate_requests_total",
    "Total de requests HTTP",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "trustgate_request_latency_seconds",
    "Latencia de requests HTTP (segundos)",
    ["endpoint", "method"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# ------------------------
# Gates / sesiones
# ------------------------
_security_events_total = Counter(
    "trustgate_security_events_total",
    "Resultados de gates y eventos de sesión (captcha_failed, session_expired, ...)",
    ["action", "risk"],
    registry=_registry,
)

_transition_errors_total = Counter(
    "trustgate_transition_errors_total",
    "Transiciones rechazadas por código de error",
    ["transition", "code"],
    registry=_registry,
)


# -----------------------------------------------------------------------------
# API pública (helpers de registro)
# -----------------------------------------------------------------------------


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    """Registra métricas HTTP.

    - endpoint se normaliza para no explotar cardinalidad.
    - status se agrupa por 2xx/4xx/5xx.
    """
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized,
        method=method,
        status=_status_bucket(status_code),
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def record_security_event(action: str, risk: str) -> None:
    """Cuenta un evento de seguridad (acción del catálogo, baja cardinalidad)."""
    _security_events_total.labels(action=action, risk=risk).inc()


def record_transition_error(transition: str, code: str) -> None:
    _transition_errors_total.labels(transition=transition, code=code).inc()


# -----------------------------------------------------------------------------
# Helpers internos
# -----------------------------------------------------------------------------


def _normalize_endpoint(path: str) -> str:
    """Normaliza paths para evitar cardinalidad alta.

    Colapsa el rol de /access/{role} y cualquier segmento opaco largo
    (ids de sesión, tokens) a un placeholder.
    """
    path = re.sub(r"/access/[^/]+", "/access/{role}", path)
    path = re.sub(r"/[A-Za-z0-9_-]{32,}", "/{id}", path)
    path = re.sub(r"/\d+", "/{id}", path)
    return path


def _status_bucket(code: int) -> str:
    """Agrupa status code para baja cardinalidad."""
    if 200 <= code < 300:
        return "2xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


# -----------------------------------------------------------------------------
# Exposición del endpoint /metrics
# -----------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Genera el body y content-type para /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Valor actual de una muestra (0.0 si todavía no se registró)."""
    return _registry.get_sample_value(name, labels or {}) or 0.0
