"""
FastAPI Application — Entry Point

Compliance Document Ingestion Worker

Architecture:
  - Trigger routes (/process-document, /poll-pending) sit at the root and
    require the worker bearer secret; they only enqueue Celery tasks
  - Document status/delete and similarity search are versioned under /api/v1/
  - The Database (engine + sessions) is created once in the lifespan hook
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — open in development, closed otherwise (server-to-server API)
  2. Request ID injection + request logging with latency
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from compliance_ingest.api.v1.documents import router as documents_router
from compliance_ingest.api.v1.search import router as search_router
from compliance_ingest.api.v1.worker import router as worker_router
from compliance_ingest.core.config import Settings, get_settings
from compliance_ingest.db.session import Database
from compliance_ingest.schemas.documents import HealthResponse, WorkerErrors

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


# ---------------------------------------------------------------------------
# Application lifespan — startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Run on startup: open the database pool and verify connectivity.
    Run on shutdown: dispose the pool.
    """
    settings: Settings = app.state.settings
    logger.info("Starting ingestion worker | env=%s port=%d", settings.app_env, settings.port)

    db = Database.from_settings(settings)
    db_health = await db.check_health()
    if db_health["status"] != "ok":
        logger.critical("Database health check failed at startup: %s", db_health)
        await db.dispose()
        raise RuntimeError(f"DB unavailable: {db_health}")

    app.state.database = db
    logger.info("Database: connected")
    logger.info("S3 bucket: %s", settings.s3_bucket)

    yield

    logger.info("Shutting down ingestion worker")
    await db.dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Compliance Document Ingestion Worker",
        description=(
            "Extracts, chunks and embeds uploaded manufacturing-compliance documents "
            "for retrieval-augmented generation."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.started_at = time.monotonic()

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order — last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
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
    # Exception handlers — uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        body = WorkerErrors.validation_error(exc.errors())
        body.request_id = request.headers.get("X-Request-ID")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions — never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=WorkerErrors.internal_error(request_id).model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(worker_router)
    app.include_router(documents_router, prefix="/api/v1")
    app.include_router(search_router,    prefix="/api/v1")

    # ----------------------------------------------------------------
    # Service descriptor, health & readiness (no auth)
    # ----------------------------------------------------------------

    @app.get("/", tags=["Operations"], summary="Service descriptor")
    async def root() -> dict:
        return {
            "service": "Compliance Document Ingestion Worker",
            "status":  "running",
            "endpoints": {
                "health":          "GET /health",
                "ready":           "GET /ready",
                "processDocument": "POST /process-document",
                "pollPending":     "POST /poll-pending",
                "documentStatus":  "GET /api/v1/documents/{id}/status?user_id=",
                "deleteDocument":  "DELETE /api/v1/documents/{id}?user_id=",
                "search":          "POST /api/v1/search",
            },
        }

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Operations"],
        summary="Liveness check",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health(request: Request) -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc),
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
        )

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness check",
        description="Returns 200 only if the database is reachable.",
    )
    async def readiness(request: Request) -> JSONResponse:
        db_status = await request.app.state.database.check_health()
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status},
        )

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

    _settings = get_settings()
    uvicorn.run(
        "compliance_ingest.main:app",
        host="0.0.0.0",
        port=_settings.port,
        reload=_settings.app_env == "development",
        log_level="debug" if _settings.debug else "info",
        access_log=True,
    )
