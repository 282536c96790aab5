"""
API Sync Backend - FastAPI Application Factory
===============================================

What:  Builds the FastAPI application: middleware, exception handlers, routes
       and lifecycle.
Who:   uvicorn (`uvicorn apisync.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  RateLimit → RequestID → Logging → GZip     │
    │               → CORS                                     │
    │                                                          │
    │  Routes:      /api/init   /api/projects/...              │
    │               /api/endpoints/...   /health               │
    │                                                          │
    │  Errors:      ApiSyncError.error_code → HTTP status      │
    │               validation_error 400   not_found 404       │
    │               duplicate_spec_side / stale_write 409      │
    │               detector_failure 422   server_error 500    │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, optional create_all
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from apisync import __version__
from apisync.config import settings
from apisync.database import create_schema, dispose_engine
from apisync.exceptions import (
    ApiSyncError,
    DatabaseError,
    DetectorFailureError,
    DuplicateSpecSideError,
    NotFoundError,
    RateLimitExceededError,
    StaleWriteError,
    ValidationError,
)
from apisync.middleware.logging import RequestLoggingMiddleware
from apisync.middleware.rate_limit import RateLimitMiddleware
from apisync.middleware.request_id import RequestIDMiddleware, request_id_var
from apisync.routes import endpoints, health, projects

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Configure the root logger once; third-party chatter is capped at WARNING."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("API Sync backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving so /health can report the problem.
        logger.error("Configuration error: %s", str(e))

    if settings.auto_create_schema:
        logger.info("AUTO_CREATE_SCHEMA is set; creating missing tables")
        await create_schema()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("API Sync backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_payload(error: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Body shared by every error response."""
    return {
        "error": error,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get("") or None,
    }


def _validation_details(errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Pydantic's `ctx` may hold exception objects; keep only JSON-safe keys.
    return {
        "errors": [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": str(err.get("msg", "")),
                "type": str(err.get("type", "")),
            }
            for err in errors
        ]
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to HTTP responses.

        ValidationError, RequestValidationError → 400
        NotFoundError                           → 404
        DuplicateSpecSideError, StaleWriteError → 409
        DetectorFailureError                    → 422
        RateLimitExceededError                  → 429
        DatabaseError, other ApiSyncError       → 500 (generic message)
        Exception                               → 500 (generic message)

    Internal details (SQL, stack traces) are logged, never returned.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning("[%s] Request validation failed: %d error(s)", request_id_var.get(""), len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content=error_payload(
                "validation_error",
                "The request is invalid.",
                _validation_details(exc.errors()),
            ),
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(status_code=400, content=error_payload(exc.error_code, exc.message, exc.context))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=error_payload(exc.error_code, exc.message, exc.context))

    @app.exception_handler(DuplicateSpecSideError)
    async def handle_duplicate_side(request: Request, exc: DuplicateSpecSideError):
        return JSONResponse(status_code=409, content=error_payload(exc.error_code, exc.message, exc.context))

    @app.exception_handler(StaleWriteError)
    async def handle_stale_write(request: Request, exc: StaleWriteError):
        logger.info("[%s] Stale write rejected: %s", request_id_var.get(""), exc.context)
        return JSONResponse(status_code=409, content=error_payload(exc.error_code, exc.message, exc.context))

    @app.exception_handler(DetectorFailureError)
    async def handle_detector_failure(request: Request, exc: DetectorFailureError):
        logger.warning("[%s] Conflict detection failed: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=422, content=error_payload(exc.error_code, exc.message, exc.context))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=error_payload(exc.error_code, exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_payload("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(ApiSyncError)
    async def handle_app_error(request: Request, exc: ApiSyncError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=500,
            content=error_payload("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_payload(
                "server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="API Sync API",
        description=(
            "Tracks the frontend and backend contracts of each API endpoint, "
            "detects where they disagree, and records how the disagreements were resolved."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(projects.router)
    app.include_router(endpoints.router)
    app.include_router(health.router)

    return app


app = create_app()
