"""
Test doubles shared by the mailauth test suites.

Provides an in-memory ConfigurationStore, a configuration factory and
helpers for the patched ``httpx.AsyncClient``.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import httpx

from mailauth.models.email_configuration import VendorEmailConfiguration
from mailauth.services.oauth.errors import ConfigurationNotFoundError


class InMemoryConfigurationStore:
    """ConfigurationStore with the same interface, backed by a dict."""

    def __init__(self) -> None:
        self.rows: dict[UUID, VendorEmailConfiguration] = {}
        self.update_calls: list[dict[str, Any]] = []
        self.fail_writes: Exception | None = None
        self.last_search: dict[str, Any] | None = None

    def add(self, config: VendorEmailConfiguration) -> VendorEmailConfiguration:
        self.rows[config.id] = config
        return config

    async def get_or_none(self, config_id: UUID | str | None) -> VendorEmailConfiguration | None:
        if config_id is None:
            return None
        try:
            key = config_id if isinstance(config_id, UUID) else UUID(str(config_id))
        except ValueError:
            return None
        config = self.rows.get(key)
        if config is None or config.deleted_at is not None:
            return None
        return config

    async def get(self, config_id: UUID | str) -> VendorEmailConfiguration:
        config = await self.get_or_none(config_id)
        if config is None:
            raise ConfigurationNotFoundError(config_id)
        return config

    async def create(self, **fields: Any) -> VendorEmailConfiguration:
        if self.fail_writes:
            raise self.fail_writes
        now = datetime.now(UTC)
        config = VendorEmailConfiguration(id=uuid4(), created_at=now, updated_at=now, **fields)
        return self.add(config)

    async def update(
        self, config: VendorEmailConfiguration, **fields: Any
    ) -> VendorEmailConfiguration:
        if self.fail_writes:
            raise self.fail_writes
        self.update_calls.append(fields)
        for name, value in fields.items():
            setattr(config, name, value)
        config.updated_at = datetime.now(UTC)
        return config

    async def reload(self, config: VendorEmailConfiguration) -> VendorEmailConfiguration:
        return config

    async def search(self, **filters: Any) -> list[VendorEmailConfiguration]:
        self.last_search = filters
        rows = [c for c in self.rows.values() if c.deleted_at is None]
        for name in ("vendor_id", "location_id", "provider"):
            if filters.get(name) is not None:
                rows = [c for c in rows if getattr(c, name) == filters[name]]
        return sorted(rows, key=lambda c: c.created_at)


def make_config(provider: str = "google", **overrides: Any) -> VendorEmailConfiguration:
    """Build an authorized configuration whose token expires in one hour."""
    now = datetime.now(UTC)
    fields: dict[str, Any] = {
        "id": uuid4(),
        "vendor_id": 1,
        "location_id": 2,
        "provider": provider,
        "client_id": "cid",
        "client_secret": "secret",
        "tenant_id": "contoso" if provider == "microsoft" else None,
        "redirect_uri": "https://app.example.com/oauth/callback",
        "access_token": "access-old",
        "refresh_token": "refresh-old",
        "expires_in": 3600,
        "expires_at": now + timedelta(hours=1),
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return VendorEmailConfiguration(**fields)


class MockHttp:
    """Handle on the patched ``httpx.AsyncClient``."""

    def __init__(self, factory: Any, client: AsyncMock) -> None:
        self.factory = factory
        self.client = client
        self.post = client.post
        self.get = client.get

    @property
    def call_count(self) -> int:
        return self.client.post.await_count + self.client.get.await_count


def json_response(status_code: int, body: Any = None) -> httpx.Response:
    return httpx.Response(status_code, json=body if body is not None else {})
