"""
mailauth.api.main - FastAPI Application Factory

Creates and configures the FastAPI application for the OAuth email API.

Usage:
    # Development
    uvicorn mailauth.api.main:app --reload

    # Production
    python -m mailauth.api
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailauth import __version__
from mailauth.api.errors import install_exception_handlers
from mailauth.api.ratelimit import RateLimiter
from mailauth.api.v1.router import api_router
from mailauth.models.database import get_engine, get_sessionmaker
from mailauth.services.oauth.registry import build_default_registry
from mailauth.settings import MailAuthSettings, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Sets up the database connection pool and provider registry on startup,
    cleans up on shutdown.
    """
    settings: MailAuthSettings = app.state.settings
    logger.info("Starting mailauth API server...", extra={"env": settings.env})

    engine = get_engine(settings.database_url)
    app.state.engine = engine
    app.state.sessionmaker = get_sessionmaker(engine)
    logger.info("Database connection pool initialized")

    app.state.registry = build_default_registry(settings)
    logger.info(
        "OAuth providers registered",
        extra={"providers": app.state.registry.available_providers()},
    )

    yield

    logger.info("Shutting down mailauth API server...")
    await engine.dispose()
    logger.info("Database connections closed")


def create_app(settings: MailAuthSettings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the cached environment settings)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="mailauth API",
        description="OAuth 2.0 token brokering and email delivery for Google and Microsoft",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.callback_limiter = RateLimiter.from_settings(settings)

    logger.info(f"Configuring CORS for origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


# Create the application instance
app = create_app()
