"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from switchboard.api.routes import api_router
from switchboard.bootstrap import Services, build_services
from switchboard.logging_config import setup_logging
from switchboard.settings import Settings, settings
from switchboard.workers import retry_worker


def create_app(app_settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create the application.

    Args:
        app_settings: Settings to use (defaults to the environment)
        services: Pre-built services, e.g. with test doubles injected
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        app.state.services = services or build_services(app_settings)
        await app.state.services.start()
        yield
        # Shutdown
        await app.state.services.stop()

    app = FastAPI(
        title="Switchboard API",
        description="Call signaling and offline-aware message delivery",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix=app_settings.api_v1_prefix)

    # Include worker routes
    app.include_router(retry_worker.router, prefix="/workers", tags=["workers"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


# Setup logging
setup_logging(settings.log_level, settings.environment)

app = create_app()
