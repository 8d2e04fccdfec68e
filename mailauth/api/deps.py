"""
mailauth.api.deps - FastAPI Dependencies

Provides reusable dependencies for API endpoints:
- get_db: Database session
- get_store: ConfigurationStore bound to the request's session
- get_registry: The application's ProviderRegistry
"""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mailauth.services.oauth.registry import ProviderRegistry
from mailauth.services.oauth.store import ConfigurationStore

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session from app state.

    Yields:
        AsyncSession for database operations

    Raises:
        HTTPException: If database is not initialized
    """
    sessionmaker = getattr(request.app.state, "sessionmaker", None)
    if sessionmaker is None:
        logger.error("Database not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available",
        )

    async with sessionmaker() as session:
        yield session


# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_store(db: DBSession) -> ConfigurationStore:
    return ConfigurationStore(db)


Store = Annotated[ConfigurationStore, Depends(get_store)]


def get_registry(request: Request) -> ProviderRegistry:
    """
    Get the provider registry built at startup.

    Raises:
        HTTPException: If the application has not finished starting
    """
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        logger.error("Provider registry not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provider registry not available",
        )
    return registry


Registry = Annotated[ProviderRegistry, Depends(get_registry)]
