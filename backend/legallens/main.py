"""
FastAPI Application — Entry Point

LegalLens API: legal-document upload, OCR and AI analysis

Architecture:
  - All routes live under /api/ (plus /health, /ready)
  - Authentication is Firebase ID-token based, enforced per-route
  - One database transaction per request via the get_db dependency
  - Storage, OCR, Gemini and token verification are process-wide handles
    owned by a ServiceContainer on app.state.services
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. Request ID injection — X-Request-ID header on every response
  2. CORS — restrict to the configured frontend origin
  3. Gzip — compress responses > 1 KB
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from legallens.api.analyze import router as analyze_router
from legallens.api.auth import router as auth_router
from legallens.api.documents import router as documents_router
from legallens.api.history import router as history_router
from legallens.api.upload import router as upload_router
from legallens.core.config import Settings, settings
from legallens.core.errors import AppError, ErrorCode
from legallens.core.services import ServiceContainer
from legallens.db.session import check_db_health
from legallens.schemas.documents import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


# ---------------------------------------------------------------------------
# Application lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Run on startup: build the service handles, check DB connectivity.
    Run on shutdown: clean up connection pools.

    An unreachable database is logged, not fatal: /ready reports it and
    the process keeps serving /health.
    """
    services: ServiceContainer = app.state.services
    logger.info("Starting LegalLens API | env=%s version=%s", services.settings.app_env, services.settings.app_version)

    await services.startup()

    db_health = await check_db_health(services.engine)
    if db_health["status"] != "ok":
        logger.critical("Database health check failed at startup: %s", db_health)
    else:
        logger.info("Database: connected")

    yield

    logger.info("Shutting down LegalLens API")
    await services.shutdown()


# ---------------------------------------------------------------------------
# Error envelope helpers
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: list[ErrorDetail] | None = None,
    stack: str | None = None,
) -> JSONResponse:
    request_id = _request_id(request)
    body = ErrorResponse(
        error=message,
        code=code,
        details=details or [],
        request_id=request_id,
        stack=stack,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
        headers={"X-Request-ID": request_id},
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings
    started_at = time.monotonic()

    app = FastAPI(
        title="LegalLens API",
        description=(
            "Legal document analysis: upload contracts and filings, extract their "
            "text with Document AI and get summaries and answers from Gemini."
        ),
        version=app_settings.app_version,
        docs_url="/api/docs" if not app_settings.is_production else None,
        redoc_url="/api/redoc" if not app_settings.is_production else None,
        openapi_url="/api/openapi.json" if not app_settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.services = ServiceContainer(app_settings)

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order, last added is outermost)
    # ----------------------------------------------------------------

    # GZip compression for responses > 1 KB
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    allowed_origins = (
        ["*"] if app_settings.is_development
        else [app_settings.frontend_url]
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=not app_settings.is_development,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # ----------------------------------------------------------------
    # Request ID + structured logging middleware
    # ----------------------------------------------------------------

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("Request failed | path=%s code=%s error=%s", request.url.path, exc.code.value, exc.message)
        details = [ErrorDetail(**d) for d in exc.details]
        return _error_response(request, exc.status_code, exc.message, exc.code.value, details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return _error_response(request, 404, "Route not found", ErrorCode.ROUTE_NOT_FOUND.value)
        return _error_response(request, exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in err["loc"] if loc != "body"),
                message=err["msg"],
                code=ErrorCode.VALIDATION_ERROR.value,
            )
            for err in exc.errors()
        ]
        return _error_response(
            request, status.HTTP_400_BAD_REQUEST, "Validation failed",
            ErrorCode.VALIDATION_ERROR.value, details,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception | path=%s request_id=%s", request.url.path, _request_id(request))
        message = str(exc) if app_settings.is_development else "Something went wrong"
        stack = None if app_settings.is_production else traceback.format_exc()
        return _error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, message,
            ErrorCode.INTERNAL_SERVER_ERROR.value, stack=stack,
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(upload_router,    prefix="/api")
    app.include_router(analyze_router,   prefix="/api")
    app.include_router(documents_router, prefix="/api")
    app.include_router(history_router,   prefix="/api")
    app.include_router(auth_router,      prefix="/api")

    # ----------------------------------------------------------------
    # Health & readiness endpoints (no auth, used by the load balancer)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {
            "status":      "healthy",
            "timestamp":   datetime.now(timezone.utc).isoformat(),
            "uptime":      round(time.monotonic() - started_at, 3),
            "environment": app_settings.app_env,
            "version":     app_settings.app_version,
        }

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="Returns 200 only if the database is reachable.",
    )
    async def readiness(request: Request) -> JSONResponse:
        db_status = await check_db_health(request.app.state.services.engine)
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status},
        )

    @app.get("/api", tags=["Operations"], summary="Endpoint index")
    async def api_index() -> dict:
        return {
            "success": True,
            "name":    "LegalLens API",
            "version": app_settings.app_version,
            "endpoints": {
                "upload":    "/api/upload",
                "analyze":   "/api/analyze",
                "chat":      "/api/analyze/chat",
                "documents": "/api/documents",
                "history":   "/api/history",
                "auth":      "/api/auth",
                "health":    "/health",
            },
        }

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "legallens.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
