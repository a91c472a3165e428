"""Billing Sync: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before other package imports: structlog caches
# the processor chain on first use.
from billing_sync.core.logging import configure_structlog
from billing_sync.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import stripe
import structlog

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from billing_sync.api.routes import api_router
from billing_sync.core.config import get_settings
from billing_sync.core.exceptions import BillingSyncError
from billing_sync.db import close_db, get_session_factory, init_db
from billing_sync.db.seed import seed_pipelines
from billing_sync.middleware.correlation import get_correlation_id, setup_correlation_middleware
from billing_sync.services.vault import SecretStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, environment=settings.app_env)

    await init_db()
    logger.info("db_initialized")

    await seed_pipelines()
    logger.info("pipelines_seeded")

    app.state.vault = SecretStore(
        get_session_factory(),
        environment=settings.app_env,
        ttl_seconds=settings.vault_cache_ttl_seconds,
    )
    await app.state.vault.refresh(force=True)
    logger.info("vault_initialized", environment=settings.app_env)

    app.state.stripe_http_client = stripe.HTTPXClient(timeout=settings.stripe_timeout_seconds)

    yield

    logger.info("shutdown_begin")
    await app.state.stripe_http_client.close_async()
    await close_db()
    logger.info("shutdown_complete")


async def billing_sync_exception_handler(request: Request, exc: BillingSyncError) -> JSONResponse:
    """Render domain errors as ``{success: false, error, code, debug_id}``."""
    debug_id = str(uuid.uuid4())

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "billing_sync_error",
        code=exc.code,
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=exc.message,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code, "debug_id": debug_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled errors with traceback; the client only sees a debug_id."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
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
        description="Stripe billing event synchronization for the LegalFlow CRM",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_correlation_middleware(app)

    app.exception_handler(BillingSyncError)(billing_sync_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "billing_sync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
