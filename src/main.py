"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn src.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import build_storage_service
from .api.routes import files, health, images
from .config.settings import get_settings
from .core.events import EventBus
from .core.storage.sync import register_remove_listener

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup creates the host-owned event bus and subscribes the removal
    listener to it. Both live on app.state, never in module globals.
    """
    settings = get_settings()

    logger.info(
        "Image host starting",
        extra={
            "version": __version__,
            "mock_mode": {"b2": settings.b2_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # uploads fail with ConfigError until these are set
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    bus = EventBus()
    app.state.event_bus = bus
    app.state.remove_listener = register_remove_listener(bus, build_storage_service(settings))

    yield

    logger.info("Image host shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Image hosting on Backblaze B2.

        ## Authentication

        All /api/v1 endpoints require an API key provided in the `X-API-Key` header.

        ## Workflow

        1. **Upload**: `POST /api/v1/images` with one or more files
           - Each file gets a unique storage key and a public URL
        2. **Gallery removal**: `POST /api/v1/images/remove`
           - Deletes the remote objects behind removed gallery items
        3. **Manage**: `GET /api/v1/files`, `DELETE /api/v1/files/{storage_key}`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        images.router,
        prefix="/api/v1/images",
        tags=["Images"],
    )

    app.include_router(
        files.router,
        prefix="/api/v1/files",
        tags=["Files"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at docs."""
        return {
            "message": settings.api_title,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. The full error is
        logged server-side.
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
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={"title": settings.api_title, "version": __version__}
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
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
