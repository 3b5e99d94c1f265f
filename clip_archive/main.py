"""
FastAPI application entry point.

This module creates and configures the FastAPI application through an
application factory (create_app), so tests can build fresh instances.

For local development:
    uvicorn clip_archive.main:app --reload

For production:
    gunicorn clip_archive.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .api.routes import clips, health
from .config.settings import get_settings
from .core.archive.errors import ArchiveError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs the effective backend on startup and reports missing
    credentials. Missing credentials are logged, not fatal, so the
    liveness endpoint still answers.
    """
    # Startup
    settings = get_settings()

    logger.info(
        "Clip Archive API starting",
        extra={
            "version": __version__,
            "storage_backend": settings.storage_backend,
            "transcoder_mock_mode": settings.transcoder_mock_mode,
            "archive_folder": settings.archive_folder,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    # Shutdown
    logger.info("Clip Archive API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Audio clip archive.

        1. **Submit a clip**: `POST /upload` with the file in the `audio` form field.
           Non-archival encodings are converted, and the clip is stored as
           the next "Clip #NNNN".
        2. **Browse the archive**: `GET /archive` returns every clip with a
           playback link, ordered by clip number.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        clips.router,
        tags=["Clips"],
    )

    @app.exception_handler(ArchiveError)
    async def archive_error_handler(request: Request, exc: ArchiveError):
        """Render pipeline and archive failures as {message, error}."""
        logger.warning(
            "Request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "kind": exc.kind,
                "error": exc.detail,
            }
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message, "error": exc.to_dict()},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Logs the full error server-side and returns the generic
        {message, error} body.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"message": "Server error", "error": str(exc)},
        )

    # Static frontend, mounted last so API routes win
    if settings.static_dir is not None and settings.static_dir.is_dir():
        app.mount(
            "/",
            StaticFiles(directory=str(settings.static_dir), html=True),
            name="static",
        )
    else:
        @app.get("/", include_in_schema=False)
        async def root():
            """Root endpoint - service info."""
            return {
                "message": "Clip Archive API",
                "version": __version__,
                "docs": "/docs",
                "health": "/health",
            }

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "clip_archive.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
