"""
WhisperLog Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
Why:   One place for logging setup, middleware, exception mapping, service
       wiring and route mounting.
How:   create_app() builds the service container (or accepts one, for tests)
       and stores it on app.state; routes read it through dependencies.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware:  RateLimit → RequestID → AccessLog → GZip → CORS│
    │                                                              │
    │  Routes:  /auth  /user-formats  /content-processing          │
    │           /email  /health                                    │
    │                                                              │
    │  app.state.services:                                         │
    │    ProviderRegistry ─┐                                       │
    │    FormatService ────┼─▶ ContentProcessingService            │
    │    ContentService ───┤                                       │
    │    AudioStorage ─────┘   AuthService ─▶ EmailService         │
    │                                                              │
    │  Exception handlers: WhisperLogError → status_code + JSON    │
    └──────────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from whisperlog import __version__
from whisperlog.config import settings
from whisperlog.database import dispose_engine
from whisperlog.dependencies import Services, build_services
from whisperlog.exceptions import (
    ConfigurationError,
    DatabaseError,
    FileStorageError,
    RateLimitExceededError,
    ServiceUnavailableError,
    UnauthorizedError,
    WhisperLogError,
)
from whisperlog.middleware.logging import RequestLoggingMiddleware
from whisperlog.middleware.rate_limit import RateLimitMiddleware
from whisperlog.middleware.request_id import RequestIDMiddleware, RequestIdLogFilter, request_id_var
from whisperlog.routes import auth, content_processing, email, health, user_formats

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once, at startup.

    Format: 2026-10-17T09:30:00 [INFO] whisperlog.services.x [a1b2c3d4e5f6]: message
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdLogFilter())
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Third-party clients log every HTTP exchange at INFO
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("WhisperLog Backend %s starting up", __version__)

    # Misconfiguration is reported but not fatal: /health must stay reachable
    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    services: Services = app.state.services
    for adapter in services.providers.all():
        logger.info(
            "Provider %s: model=%s configured=%s",
            adapter.name,
            adapter.model_name,
            adapter.is_configured,
        )

    if services.audio.mode == "file":
        storage = Path(services.audio.storage_root)
        storage.mkdir(parents=True, exist_ok=True)
        logger.info("Audio storage directory: %s", storage)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("WhisperLog Backend shutting down")
    await dispose_engine()


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    body = {"error": code, "message": message, "request_id": request_id_var.get("") or None}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions onto JSON error responses.

    Handler resolution follows the exception's class hierarchy, so the more
    specific handlers below take precedence over the WhisperLogError one.
    Internal details (SQL errors, vendor messages, file paths) are logged,
    never returned.
    """

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, {"retry_after": exc.retry_after}),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error("Provider configuration error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, ServiceUnavailableError().message),
        )

    @app.exception_handler(ServiceUnavailableError)
    async def handle_service_unavailable(request: Request, exc: ServiceUnavailableError):
        logger.warning("Service unavailable: %s | Context: %s", exc.message, exc.context)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        details = {"retry_after": exc.retry_after} if exc.retry_after else None
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, details),
            headers=headers,
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, GENERIC_SERVER_ERROR),
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("File storage error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, GENERIC_SERVER_ERROR),
        )

    @app.exception_handler(WhisperLogError)
    async def handle_application_error(request: Request, exc: WhisperLogError):
        if exc.status_code >= 500:
            logger.error("%s: %s | Context: %s", type(exc).__name__, exc.message, exc.context)
        else:
            logger.info("%s: %s", type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, exc.context if exc.status_code < 500 else None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Assemble the application.

    Args:
        services: Pre-built service container. Tests pass one with fake
                  provider adapters; production builds it from settings.
    """
    app = FastAPI(
        title="WhisperLog API",
        description=(
            "Formats free text and voice notes into user-defined markdown templates "
            "with Claude, GPT or Gemini, and keeps a searchable history of the results."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    # Last added runs first: RateLimit → RequestID → AccessLog → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(user_formats.router)
    app.include_router(content_processing.router)
    app.include_router(email.router)
    app.include_router(health.router)

    return app


app = create_app()
