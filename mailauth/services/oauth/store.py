"""
mailauth.services.oauth.store - Configuration Store

Persistence for VendorEmailConfiguration rows on top of an AsyncSession.
Every write commits as one unit; a failed commit is rolled back so a
configuration is never left partially updated.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from mailauth.models.email_configuration import VendorEmailConfiguration
from mailauth.services.oauth.errors import ConfigurationNotFoundError

logger = logging.getLogger(__name__)


def _coerce_id(config_id: UUID | str) -> UUID | None:
    if isinstance(config_id, UUID):
        return config_id
    try:
        return UUID(str(config_id))
    except (TypeError, ValueError):
        return None


class ConfigurationStore:
    """
    Reads and writes email configurations.

    Soft-deleted configurations are invisible to every lookup.

    Example:
        >>> store = ConfigurationStore(session)
        >>> config = await store.get(config_id)
        >>> await store.update(config, access_token="...", expires_in=3600)
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _active(self) -> Select[tuple[VendorEmailConfiguration]]:
        return select(VendorEmailConfiguration).where(
            VendorEmailConfiguration.deleted_at.is_(None)
        )

    async def get_or_none(self, config_id: UUID | str | None) -> VendorEmailConfiguration | None:
        """Return the active configuration with ``config_id`` or None."""
        if config_id is None:
            return None
        key = _coerce_id(config_id)
        if key is None:
            return None

        result = await self.session.execute(
            self._active().where(VendorEmailConfiguration.id == key)
        )
        return result.scalar_one_or_none()

    async def get(self, config_id: UUID | str) -> VendorEmailConfiguration:
        """
        Return the active configuration with ``config_id``.

        Raises:
            ConfigurationNotFoundError: If absent or soft-deleted
        """
        config = await self.get_or_none(config_id)
        if config is None:
            raise ConfigurationNotFoundError(config_id)
        return config

    async def create(self, **fields: Any) -> VendorEmailConfiguration:
        """Insert a new configuration and return it with server defaults loaded."""
        config = VendorEmailConfiguration(**fields)
        self.session.add(config)
        await self._commit()
        await self.session.refresh(config)

        logger.info(
            f"Created email configuration {config.id}",
            extra={
                "config_id": str(config.id),
                "provider": config.provider,
                "vendor_id": config.vendor_id,
                "location_id": config.location_id,
            },
        )
        return config

    async def update(
        self, config: VendorEmailConfiguration, **fields: Any
    ) -> VendorEmailConfiguration:
        """
        Apply ``fields`` to ``config`` and commit them together.

        After a failed commit the session is rolled back and ``config`` is
        expired: none of ``fields`` reached the database, and reading an
        attribute needs a fresh load (``reload``).

        Raises:
            SQLAlchemyError: If the commit fails
        """
        config_id = str(config.id)
        for name, value in fields.items():
            setattr(config, name, value)
        await self._commit()
        await self.session.refresh(config)

        logger.debug(
            f"Updated email configuration {config_id}",
            extra={"config_id": config_id, "fields": sorted(fields)},
        )
        return config

    async def reload(self, config: VendorEmailConfiguration) -> VendorEmailConfiguration:
        """Re-read ``config`` from the database (picks up concurrent refreshes)."""
        await self.session.refresh(config)
        return config

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    # -- Queries ---------------------------------------------------------------

    async def search(
        self,
        *,
        vendor_id: int | None = None,
        location_id: int | None = None,
        provider: str | None = None,
        token_status: str | None = None,
        now: datetime | None = None,
    ) -> list[VendorEmailConfiguration]:
        """
        Active configurations matching every given filter, oldest first.

        ``token_status`` is ``"valid"`` (not yet expired) or ``"expired"``;
        configurations that were never authorized match neither.
        """
        query = self._active()
        if vendor_id is not None:
            query = query.where(VendorEmailConfiguration.vendor_id == vendor_id)
        if location_id is not None:
            query = query.where(VendorEmailConfiguration.location_id == location_id)
        if provider is not None:
            query = query.where(VendorEmailConfiguration.provider == provider)

        if token_status is not None:
            cutoff = now or datetime.now(UTC)
            if token_status == "valid":
                query = query.where(VendorEmailConfiguration.expires_at > cutoff)
            elif token_status == "expired":
                query = query.where(VendorEmailConfiguration.expires_at <= cutoff)
            else:
                raise ValueError(f"Unknown token status: {token_status}")

        result = await self.session.execute(query.order_by(VendorEmailConfiguration.created_at))
        return list(result.scalars().all())

    async def list_by_vendor(self, vendor_id: int) -> list[VendorEmailConfiguration]:
        return await self.search(vendor_id=vendor_id)

    async def list_by_location(self, location_id: int) -> list[VendorEmailConfiguration]:
        return await self.search(location_id=location_id)

    async def list_by_provider(self, provider: str) -> list[VendorEmailConfiguration]:
        return await self.search(provider=provider)

    async def list_valid(self, now: datetime | None = None) -> list[VendorEmailConfiguration]:
        """Configurations whose access token has not expired yet."""
        return await self.search(token_status="valid", now=now)

    async def list_expired(self, now: datetime | None = None) -> list[VendorEmailConfiguration]:
        """Configurations whose access token has expired."""
        return await self.search(token_status="expired", now=now)
