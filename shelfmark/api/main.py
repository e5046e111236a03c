"""
Shelfmark API

FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from fastapi import FastAPI, Request

from .schemas import HealthResponse
from .routes import books, classification, marc, perpusnas
from .middleware import (
    setup_cors,
    setup_logging,
    setup_exception_handlers,
    LoggingConfig,
    get_cors_config,
)
from .dependencies import (
    get_service_container,
    get_settings,
    init_services,
    Settings,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

__version__ = "1.0.0"


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Services are built lazily on first use; shutdown closes the HTTP
    clients of whichever were built.
    """
    settings = app.state.settings
    logger.info(f"Starting Shelfmark in {settings.environment} mode")

    services = getattr(app.state, "services", None) or init_services(settings)
    app.state.services = services
    app.state.started_at = time.time()

    try:
        # Pre-warm the classification cache so the schema exists before the first request
        if settings.environment == "production":
            _ = services.classification_cache
        logger.info("Shelfmark started successfully")

        yield

    finally:
        logger.info("Shutting down Shelfmark...")
        await services.close()
        logger.info("Shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Settings = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Shelfmark",
        description="ISBN metadata resolution, classification and MARC21 export.",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.started_at = time.time()

    # ==========================================================================
    # Middleware (order matters - first added = outermost)
    # ==========================================================================

    setup_logging(
        app,
        config=LoggingConfig(
            enabled=True,
            log_request_body=settings.debug,
        ),
        structured=settings.environment != "development",
    )

    setup_exception_handlers(app)

    setup_cors(app, config=get_cors_config(settings.environment))

    # ==========================================================================
    # Routers
    # ==========================================================================

    api_prefix = "/api/v1"

    app.include_router(books.router, prefix=api_prefix)
    app.include_router(classification.router, prefix=api_prefix)
    app.include_router(marc.router, prefix=api_prefix)
    app.include_router(perpusnas.router, prefix=api_prefix)

    # ==========================================================================
    # Root Routes
    # ==========================================================================

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Shelfmark",
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.debug else None,
        }

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request) -> HealthResponse:
        """Liveness plus which optional backends are configured."""
        current = request.app.state.settings
        services = get_service_container(request)
        return HealthResponse(
            status="healthy",
            version=__version__,
            uptime_seconds=round(time.time() - request.app.state.started_at, 1),
            llm_configured=services.llm_client is not None,
            perpusnas_enabled=current.perpusnas_enabled,
        )

    return app


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def main():
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "shelfmark.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        workers=1 if settings.debug else 4,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
