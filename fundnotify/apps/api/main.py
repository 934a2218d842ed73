from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fundnotify.apps.api.errors import (
    http_exception_handler,
    invalid_transition_exception_handler,
    notification_not_found_exception_handler,
    notification_validation_exception_handler,
    starlette_http_exception_handler,
    store_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fundnotify.apps.api.response import API_VERSION
from fundnotify.apps.api.routes.health import router as health_router
from fundnotify.apps.api.routes.notification_settings import router as notification_settings_router
from fundnotify.apps.api.routes.notifications import router as notifications_router
from fundnotify.core.config import get_settings
from fundnotify.core.errors import (
    InvalidTransitionError,
    NotificationNotFoundError,
    NotificationValidationError,
    StoreError,
)
from fundnotify.core.logging import configure_logging
from fundnotify.persistence.db import SessionLocal
from fundnotify.services.notifications.scheduler import BackgroundSweeps
from fundnotify.services.telemetry import record_request


logger = logging.getLogger(__name__)

_LEGACY_SUNSET_DAYS = 90
_LEGACY_EXEMPT_PREFIXES = (
    "/v1",
    "/docs",
    "/openapi.json",
    "/redoc",
)
# Exception type to error-envelope handler.
_EXCEPTION_HANDLERS = (
    (StarletteHTTPException, starlette_http_exception_handler),
    (HTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (NotificationValidationError, notification_validation_exception_handler),
    (NotificationNotFoundError, notification_not_found_exception_handler),
    (InvalidTransitionError, invalid_transition_exception_handler),
    (StoreError, store_exception_handler),
)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    # Single-node deployments may run the sweeps inside the API process instead of the worker.
    sweeps: BackgroundSweeps | None = None
    if get_settings().notify_inline_background_enabled:
        sweeps = BackgroundSweeps(session_factory=SessionLocal)
        sweeps.start()
    app.state.sweeps = sweeps
    try:
        yield
    finally:
        if sweeps is not None:
            await sweeps.stop()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="fundnotify API", lifespan=_lifespan)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        record_request(path=request.url.path, status_code=response.status_code, latency_ms=latency_ms)
        logger.info(
            "request completed",
            extra={
                "request_id": request_id,
                "tenant_id": getattr(request.state, "tenant_id", None),
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2),
            },
        )
        response.headers.setdefault("X-Request-Id", request_id)
        # Mark legacy routes with deprecation headers to guide clients to /v1.
        if not request.url.path.startswith(_LEGACY_EXEMPT_PREFIXES):
            sunset_at = datetime.now(timezone.utc) + timedelta(days=_LEGACY_SUNSET_DAYS)
            response.headers["Deprecation"] = "true"
            response.headers["Sunset"] = format_datetime(sunset_at)
            response.headers["Link"] = '</v1/docs>; rel="successor-version"'
        return response

    for exc_class, handler in _EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_class, handler)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled API error", extra={"path": request.url.path, "method": request.method})
        return await unhandled_exception_handler(request, exc)

    # Mount versioned v1 API routes; settings routes precede /notifications/{id}.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(notification_settings_router, prefix=f"/{API_VERSION}")
    app.include_router(notifications_router, prefix=f"/{API_VERSION}")

    # Retain unversioned legacy routes as deprecated compatibility aliases.
    app.include_router(health_router, include_in_schema=False)
    app.include_router(notification_settings_router, include_in_schema=False)
    app.include_router(notifications_router, include_in_schema=False)

    # Serve versioned OpenAPI JSON and docs endpoints for v1 consumers.
    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="fundnotify API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        # Document the gateway identity headers every non-health route requires.
        if app.openapi_schema:
            return app.openapi_schema
        settings = get_settings()
        schema = get_openapi(
            title="fundnotify API",
            version=API_VERSION,
            routes=app.routes,
        )
        schema["servers"] = [{"url": "http://localhost:8000"}]
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["TenantHeader"] = {"type": "apiKey", "in": "header", "name": settings.auth_tenant_header}
        security_schemes["UserHeader"] = {"type": "apiKey", "in": "header", "name": settings.auth_user_header}
        public_paths = {"/v1/health"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"TenantHeader": [], "UserHeader": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
