"""
FastAPI application for the image generation service.

This module sets up the app with routes, middleware, error handlers and the
lifecycle that owns the job queue and the background worker.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from imagegen import __version__
from imagegen.config import AppConfig, config
from imagegen.database import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from imagegen.jobs.executor import GenerationExecutor
from imagegen.jobs.queue import close_queue, get_queue
from imagegen.jobs.worker import start_image_worker, stop_image_worker
from imagegen.routes import admin_router, catalog_router, jobs_router
from imagegen.utils.logging import api_logger as logger, configure_logging

# Checked in order, so subclasses come before their base.
STORE_ERROR_STATUS = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (PersistenceError, 503),
)


def create_app(
    settings: Optional[AppConfig] = None,
    executor: Optional[GenerationExecutor] = None
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Configuration to use instead of the global ``config``
        executor: Generator to hand to the in-process worker (defaults to the
            configured subprocess command)
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -----------------------------------------------------------
        configure_logging(settings.LOG_LEVEL, settings.LOG_BUFFER_SIZE)
        app.state.settings = settings
        app.state.queue = await get_queue(
            settings.data_root,
            db_filename=settings.DB_FILENAME,
            busy_timeout=settings.DB_BUSY_TIMEOUT_SECONDS
        )
        logger.info("Image API starting", data_root=str(app.state.queue.data_root))

        if settings.ENABLE_IMAGE_WORKER:
            await start_image_worker(
                app.state.queue,
                executor=executor,
                poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS,
                fail_orphaned=settings.FAIL_ORPHANED_JOBS_ON_START
            )
        else:
            logger.info("Image worker disabled in this process")

        yield

        # --- Shutdown ----------------------------------------------------------
        await stop_image_worker()
        await close_queue()
        logger.info("Image API stopped")

    app = FastAPI(
        title="Image Generation API",
        description="Queue image generations for project work items and poll their results",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(catalog_router)
    app.include_router(jobs_router)
    app.include_router(admin_router)

    # ===== Health Check =====

    @app.get("/health")
    async def health_check():
        """Health check endpoint - must be fast and reliable."""
        queue = getattr(app.state, "queue", None)
        return {
            "status": "healthy",
            "store_connected": bool(queue and queue.store.is_connected),
            "worker_enabled": settings.ENABLE_IMAGE_WORKER
        }

    # ===== Error Handlers =====

    @app.exception_handler(StoreError)
    async def store_exception_handler(request: Request, exc: StoreError):
        status_code = 500
        for error_type, code in STORE_ERROR_STATUS:
            if isinstance(exc, error_type):
                status_code = code
                break

        if status_code >= 500:
            logger.error("Store failure", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status_code,
            content={"error": str(exc), "type": type(exc).__name__}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request",
                "detail": jsonable_errors(exc),
                "type": "ValidationError"
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error("Unhandled error", path=request.url.path, error=f"{type(exc).__name__}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.DEBUG else "An error occurred",
                "type": type(exc).__name__
            }
        )

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
        for error in exc.errors()
    ]


app = create_app()
