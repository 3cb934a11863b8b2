"""OpsDesk timeline backend: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before the other opsdesk imports: structlog
# caches the processor chain the first time a module-level logger is used.
from opsdesk.core.logging import configure_structlog
from opsdesk.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from opsdesk.api.routes import api_router
from opsdesk.core.config import get_settings
from opsdesk.core.exceptions import (
    InvalidDateError,
    ItemNotFoundError,
    OpsDeskError,
    ResourceLookupError,
)
from opsdesk.db import close_db, close_redis, init_db, init_redis
from opsdesk.middleware.correlation import (
    get_correlation_id,
    setup_correlation_middleware,
)
from opsdesk.queue.worker import drain_events
from opsdesk.services.timeline_store import get_timeline_store

logger = structlog.get_logger(__name__)

# Domain errors that escape a route
_DOMAIN_ERROR_STATUS = {
    InvalidDateError: 422,
    ItemNotFoundError: 404,
    ResourceLookupError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and the validation queue; flag shutdown on SIGTERM."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    # Events queued by a previous process whose background task never ran
    backlog = await drain_events(get_timeline_store())
    if backlog:
        logger.info("timeline_backlog_drained", events=backlog)

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Log HTTPExceptions with a debug_id and return a sanitized body."""
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


async def opsdesk_exception_handler(request: Request, exc: OpsDeskError) -> JSONResponse:
    """Translate an uncaught OpsDeskError into its HTTP status with a debug_id."""
    debug_id = str(uuid.uuid4())
    status_code = next(
        (code for error_type, code in _DOMAIN_ERROR_STATUS.items() if isinstance(exc, error_type)),
        500,
    )

    logger.warning(
        "domain_exception",
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled errors with traceback; the client only gets a debug_id."""
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
        description="Project timeline storage with dependency and resource-conflict validation",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, *settings.allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(OpsDeskError)(opsdesk_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "opsdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
