"""
ServiceMatch Backend - FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan builds the ServiceContainer on startup and closes it on
       shutdown.
Who:   uvicorn servicematch.main:app

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (logged, not fatal)
    3. Build the container (engine, provider, publisher, services)

    Shutdown:
    1. Drain in-flight notification fan-outs
    2. Close the Redis client and dispose the database engine

Exception → HTTP mapping:
    ValidationError / MalformedVectorError   → 400
    ForbiddenError                           → 403
    NotFoundError                            → 404
    VectorMissingError                       → 409
    RateLimitExceededError                   → 429 + Retry-After
    CircuitBreakerOpenError                  → 503 + Retry-After
    DailyQuotaExceededError                  → 503
    EmbeddingGenerationError                 → 503
    DatabaseError / anything unexpected      → 500, generic message
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from servicematch import __version__
from servicematch.config import Settings, settings as default_settings
from servicematch.container import ServiceContainer
from servicematch.exceptions import (
    CircuitBreakerOpenError,
    DailyQuotaExceededError,
    DatabaseError,
    EmbeddingGenerationError,
    ForbiddenError,
    NotFoundError,
    RateLimitExceededError,
    ServiceMatchError,
    ValidationError,
    VectorMissingError,
)
from servicematch.logging_setup import setup_logging
from servicematch.middleware.logging import RequestLoggingMiddleware
from servicematch.middleware.request_id import RequestIDMiddleware, request_id_var
from servicematch.routes import health, service_requests, services

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings

    setup_logging(settings.log_level)
    logger.info("=" * 60)
    logger.info("ServiceMatch Backend %s starting up...", __version__)

    # The server still starts so /health can report what is missing
    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", e)

    container = ServiceContainer.build(settings)
    app.state.container = container

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("ServiceMatch Backend shutting down...")
    await container.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error(
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict] = None,
    retry_after: Optional[int] = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handlers are looked up by the exception's MRO, so subclasses registered
    here (MalformedVectorError via ValidationError, the embedding errors)
    resolve to the most specific handler.

    Exception handlers never expose stack traces, SQL or provider payloads.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        return _error(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc.message)

    @app.exception_handler(VectorMissingError)
    async def handle_vector_missing(request: Request, exc: VectorMissingError):
        return _error(409, "vector_missing", exc.message, exc.context)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(
            429,
            "rate_limit_exceeded",
            exc.message,
            {"retry_after": exc.retry_after},
            retry_after=exc.retry_after,
        )

    @app.exception_handler(DailyQuotaExceededError)
    async def handle_daily_quota(request: Request, exc: DailyQuotaExceededError):
        logger.warning("[%s] Daily embedding quota exhausted", request_id_var.get(""))
        return _error(503, "embedding_quota_exhausted", exc.message)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error(
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            retry_after=exc.recovery_time,
        )

    @app.exception_handler(EmbeddingGenerationError)
    async def handle_embedding_error(request: Request, exc: EmbeddingGenerationError):
        logger.error("[%s] Embedding error: %s", request_id_var.get(""), exc.message)
        return _error(503, "embedding_unavailable", exc.message, retry_after=exc.retry_after)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(ServiceMatchError)
    async def handle_app_error(request: Request, exc: ServiceMatchError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            exc,
            exc_info=True,
        )
        return _error(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Args:
        settings: Overrides the environment-loaded settings (tests).
    """
    settings = settings or default_settings
    app = FastAPI(
        title="ServiceMatch API",
        description=(
            "Semantic matching between customer service requests and provider "
            "services, using text embeddings and pgvector similarity search."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware executes in REVERSE order of addition:
    # RequestID → Logging → GZip → CORS
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

    register_exception_handlers(app)

    app.include_router(services.router)
    app.include_router(service_requests.router)
    app.include_router(health.router)

    return app


app = create_app()
