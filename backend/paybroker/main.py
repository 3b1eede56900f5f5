"""Universal Checkout backend: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other app imports
# to avoid the structlog cache pitfall (structlog caches the processor chain on first use).
from paybroker.core.logging import configure_structlog
from paybroker.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paybroker.api.routes import api_router
from paybroker.core.config import get_settings
from paybroker.core.crypto import candidate_keys
from paybroker.core.exceptions import PaymentError
from paybroker.db import init_db, close_db, init_redis, close_redis
from paybroker.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)

logger = structlog.get_logger(__name__)


def validate_encryption_keys() -> None:
    """Fail fast in production when credentials cannot be encrypted."""
    settings = get_settings()
    if settings.test_mode:
        return
    if not candidate_keys(settings):
        raise RuntimeError("CREDENTIALS_ENCRYPTION_KEYS is not configured")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the health check returns 503 while draining
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, environment=settings.environment)

    validate_encryption_keys()

    await init_db()
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _request_context(request: Request) -> dict:
    return {
        "correlation_id": get_correlation_id(),
        "path": request.url.path,
        "method": request.method,
        "user_id": getattr(request.state, "user_id", None),
    }


async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    """Map the PaymentError taxonomy onto HTTP responses."""
    debug_id = str(uuid.uuid4())
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "payment_error",
        status_code=exc.status_code,
        code=exc.code,
        error_type=type(exc).__name__,
        detail=exc.message,
        debug_id=debug_id,
        **_request_context(request),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "debug_id": debug_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        detail=exc.detail,
        **_request_context(request),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
        **_request_context(request),
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Universal checkout: pricing, provider eligibility, hosted sessions and reconciliation",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted({settings.frontend_url, *settings.allowed_origins}),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    app.exception_handler(PaymentError)(payment_error_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "paybroker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
