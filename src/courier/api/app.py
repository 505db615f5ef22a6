"""FastAPI application for Courier."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier import __version__
from courier.config import Settings
from courier.exceptions import CourierError, NotFoundError, SignatureError, ValidationError
from courier.logging import bind_context, clear_context, configure_logging, get_logger
from courier.service import CourierService

from .router import router, set_service

logger = get_logger(__name__)

# Anything not listed (configuration, storage) is a server-side 500
ERROR_STATUS: dict[type[CourierError], int] = {
    ValidationError: 400,
    SignatureError: 400,
    NotFoundError: 404,
}


def error_status(exc: CourierError) -> int:
    """HTTP status for a Courier error, matching the closest listed base class."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Initializes the CourierService and starts the retry worker on startup,
    and stops both on shutdown.
    """
    settings: Settings = app.state.settings

    # Configure structured logging
    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting Courier API", log_level=settings.log_level, log_format=settings.log_format
    )

    service = CourierService.create(settings)
    await service.initialize()
    set_service(service)

    if settings.webhook_worker_enabled:
        service.start_worker()
        logger.info("Retry worker started", worker_id=service.worker.worker_id)
    else:
        logger.info("Retry worker disabled; run courier-worker separately")

    yield

    # Cleanup
    await service.close()
    set_service(None)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from courier.api import create_app

        app = create_app()
        # Run with: uvicorn courier.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Courier",
        description="Durable, signed, at-least-once outgoing webhooks.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    # Add CORS middleware if enabled
    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            max_age=settings.cors_max_age,
        )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        """Tag every log line of a request with its method and path."""
        bind_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.exception_handler(CourierError)
    async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
        """Map Courier errors to HTTP responses with their ``to_dict()`` body."""
        status_code = error_status(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Request failed",
            code=exc.code,
            error=exc.message,
            status_code=status_code,
        )
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
