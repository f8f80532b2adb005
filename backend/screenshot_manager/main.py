"""
Screenshot Manager API - FastAPI Application Factory
====================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app(settings) builds the object store and services onto
       app.state, registers middleware, exception handlers and routes.
Who:   uvicorn (`uvicorn screenshot_manager.main:app`) and the test suite,
       which calls create_app() with its own Settings.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware: CORS → RequestID → Logging → GZip → RateLimit   │
    │                                                              │
    │  Routes:                                                     │
    │  ┌────────────────┐ ┌──────────────────────┐ ┌────────────┐  │
    │  │ /api/auth/*    │ │ /api/screenshots/*   │ │ /health    │  │
    │  └────────────────┘ └──────────────────────┘ └────────────┘  │
    │                                                              │
    │  Services (app.state):                                       │
    │  AuthService ── TokenService     ScreenshotService ── Store  │
    │                                                              │
    │  Exception Handlers: typed errors → ErrorResponse envelope   │
    └──────────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from screenshot_manager import __version__
from screenshot_manager.config import Settings, get_settings
from screenshot_manager.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitExceededError,
    ScreenshotManagerError,
    StorageError,
    ValidationError,
)
from screenshot_manager.middleware.logging import RequestLoggingMiddleware
from screenshot_manager.middleware.rate_limit import RateLimitMiddleware
from screenshot_manager.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware, request_id_var
from screenshot_manager.routes import auth, health, screenshots
from screenshot_manager.schemas.screenshot import ErrorResponse
from screenshot_manager.services.auth_service import AuthService
from screenshot_manager.services.screenshot_service import ScreenshotService
from screenshot_manager.services.token_service import TokenService
from screenshot_manager.storage import build_object_store

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s, to stdout.
    The request ID appears in access lines and error handler messages.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # boto3 logs every request and credential lookup at INFO/DEBUG
    for noisy in ("uvicorn.access", "botocore", "boto3", "urllib3", "s3transfer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: logging and configuration report. Shutdown: log only."""
    settings: Settings = app.state.settings

    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("Screenshot Manager API %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health stays reachable and the affected
        # operations answer with a 500 envelope
        logger.error("Configuration error: %s", str(e))

    logger.info("Storage backend: %s", app.state.object_store.backend_name)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Screenshot Manager API shut down.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(
    status_code: int,
    error: str,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the `success: false` envelope for the current request."""
    body = ErrorResponse(
        error=error,
        details=details,
        request_id=request_id_var.get("") or None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and error envelopes.

    Handler hierarchy:
        ValidationError             → 400 (details returned)
        RequestValidationError      → 400 "Invalid request"
        AuthenticationError         → 401
        NotFoundError               → 404
        RateLimitExceededError      → 429 + Retry-After
        StorageError                → 500 (context logged only)
        ConfigurationError          → 500 (context logged only)
        ScreenshotManagerError      → its status_code
        StarletteHTTPException      → its status (unknown route, 405)
        Exception                   → 500 (stack trace logged)
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return error_response(exc.status_code, exc.message, details=exc.details)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), details)
        return error_response(400, "Invalid request", details=details)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            exc.status_code,
            exc.message,
            details={"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error("[%s] Storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return error_response(500, INTERNAL_ERROR)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error(
            "[%s] Configuration error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context
        )
        return error_response(500, INTERNAL_ERROR)

    @app.exception_handler(ScreenshotManagerError)
    async def handle_app_error(request: Request, exc: ScreenshotManagerError):
        logger.error("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)
        if exc.status_code >= 500:
            return error_response(exc.status_code, INTERNAL_ERROR)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return error_response(500, INTERNAL_ERROR)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration to build from. Defaults to the process-wide
                  settings read from the environment.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Screenshot Manager API",
        description=(
            "Browse, annotate and delete screenshots kept in an S3 compatible "
            "object store. Metadata (title, description, tags) is stored on "
            "the objects themselves."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Services ──────────────────────────────────────────────────────────
    store = build_object_store(settings)
    token_service = TokenService(settings.jwt_secret, ttl_seconds=settings.token_ttl_seconds)

    app.state.settings = settings
    app.state.object_store = store
    app.state.auth_service = AuthService(settings.auth_username, settings.auth_password, token_service)
    app.state.screenshot_service = ScreenshotService(store, settings.public_base_url)

    # ── Middleware ────────────────────────────────────────────────────────
    # Last added runs first: CORS → RequestID → Logging → GZip → RateLimit
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After"],
        max_age=settings.cors_max_age,
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(screenshots.router)
    app.include_router(health.router)

    return app


# uvicorn imports `screenshot_manager.main:app`
app = create_app()
