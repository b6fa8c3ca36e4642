"""
Name: FastAPI Application Factory

Responsibilities:
  - Build the FastAPI app: routes, RFC7807 handlers, request-context middleware
  - Allow tests to inject a SessionRegistry (dependency override)
  - Stop session watchdogs on shutdown
  - Expose Prometheus metrics on /metrics

Collaborators:
  - api.routes.router
  - api.exception_handlers.register_exception_handlers
  - api.middleware.RequestContextMiddleware
  - container.get_session_registry
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response

from ..application.session_registry import SessionRegistry
from ..container import get_session_registry
from ..crosscutting.metrics import get_metrics_response
from .dependencies import get_registry
from .exception_handlers import register_exception_handlers
from .middleware import RequestContextMiddleware
from .routes import router


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        (registry or get_session_registry()).close()

    app = FastAPI(
        title="TrustGate",
        description="Continuous-verification session engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    if registry is not None:
        app.dependency_overrides[get_registry] = lambda: registry

    register_exception_handlers(app)
    app.add_middleware(RequestContextMiddleware)
    app.include_router(router)

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/metrics", tags=["health"], include_in_schema=False)
    def metrics() -> Response:
        body, content_type = get_metrics_response()
        return Response(content=body, media_type=content_type)

    return app


# ASGI entrypoint: uvicorn trustgate.api.main:app
app = create_app()
