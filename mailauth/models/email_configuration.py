"""
mailauth.models.email_configuration - Vendor Email Configuration Model

One OAuth client configuration per vendor/location pairing:
- Client credentials (client_id, client_secret, tenant_id, redirect_uri)
- The current token triple (access_token, refresh_token, expires_at)
- The mailbox address resolved from the provider after the first callback

Secrets (client_secret, access_token, refresh_token) are stored as-is;
encryption at rest is the responsibility of the database deployment.
They are never exposed through any response schema.
"""

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from mailauth.models.base import Base, SoftDeletableModel, utcnow

# Tokens are refreshed when they expire within this window, so a token that is
# valid at check time cannot lapse mid-request against the provider.
TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)

DEFAULT_MICROSOFT_TENANT = "common"


class EmailProvider(StrEnum):
    """Supported email providers."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"


VALID_PROVIDERS = tuple(p.value for p in EmailProvider)

PROVIDER_DISPLAY_NAMES = {
    EmailProvider.GOOGLE.value: "Google API",
    EmailProvider.MICROSOFT.value: "Microsoft Graph",
}


class VendorEmailConfiguration(SoftDeletableModel, Base):
    """
    Provider binding for a vendor + location.

    Created without tokens; becomes "authorized" once a token from a
    successful OAuth callback is stored. Tokens are mutated in place by
    refresh and cleared (row kept) by revocation.

    Example:
        >>> config = VendorEmailConfiguration(
        ...     vendor_id=1,
        ...     location_id=2,
        ...     provider="google",
        ...     client_id="1234.apps.googleusercontent.com",
        ...     client_secret="...",
        ...     redirect_uri="https://app.example.com/oauth/callback",
        ... )
    """

    __tablename__ = "vendor_email_configurations"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        comment="Unique identifier",
    )

    # Ownership
    vendor_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        comment="Owning vendor",
    )

    location_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        comment="Owning vendor location",
    )

    user_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Mailbox address reported by the provider after authorization",
    )

    # OAuth client
    provider: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Provider (google, microsoft)",
    )

    client_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="OAuth client ID",
    )

    client_secret: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="OAuth client secret - never serialized",
    )

    tenant_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Azure AD tenant (Microsoft only)",
    )

    redirect_uri: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Redirect URI registered with the provider",
    )

    # Tokens
    access_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Bearer access token - never serialized",
    )

    refresh_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Refresh token - never serialized",
    )

    expires_in: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Lifetime of the access token in seconds, as issued",
    )

    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Issue time + expires_in",
    )

    __table_args__ = (
        CheckConstraint(
            "provider IN ('google', 'microsoft')",
            name="ck_vendor_email_configurations_provider",
        ),
        CheckConstraint(
            "vendor_id >= 1 AND location_id >= 1",
            name="ck_vendor_email_configurations_owner",
        ),
        Index(
            "idx_vendor_email_configurations_vendor_location",
            "vendor_id",
            "location_id",
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index(
            "idx_vendor_email_configurations_expires",
            "expires_at",
            postgresql_where=text("deleted_at IS NULL AND access_token IS NOT NULL"),
        ),
    )

    @validates("provider")
    def _validate_provider(self, key: str, value: str) -> str:
        if value not in VALID_PROVIDERS:
            raise ValueError(f"Invalid provider: {value}")
        current = self.__dict__.get("provider")
        if current is not None and current != value:
            raise ValueError("Provider cannot be changed once a configuration is created")
        return value

    # -- Provider helpers ------------------------------------------------------

    @property
    def is_google(self) -> bool:
        return self.provider == EmailProvider.GOOGLE.value

    @property
    def is_microsoft(self) -> bool:
        return self.provider == EmailProvider.MICROSOFT.value

    @property
    def provider_display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES.get(self.provider, "Unknown")

    # -- Token state -----------------------------------------------------------

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def is_token_expired(self, now: datetime | None = None) -> bool:
        """True once the current time is past ``expires_at``."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) > self.expires_at

    def is_token_expiring_soon(self, now: datetime | None = None) -> bool:
        """True when the token expires within the next five minutes."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) + TOKEN_EXPIRY_BUFFER > self.expires_at

    def has_valid_token(self, now: datetime | None = None) -> bool:
        return not self.is_token_expired(now)

    def time_until_expiration(self, now: datetime | None = None) -> str | None:
        """Human readable time left on the access token, e.g. ``"in 42 minutes"``."""
        if self.expires_at is None:
            return None

        remaining = self.expires_at - (now or utcnow())
        if remaining.total_seconds() < 0:
            return "expired"

        seconds = int(remaining.total_seconds())
        for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
            if seconds >= size:
                count = seconds // size
                return f"in {count} {unit}{'s' if count != 1 else ''}"
        return f"in {seconds} second{'s' if seconds != 1 else ''}"

    def token_summary(self) -> dict[str, Any]:
        """Token presence for logging; never includes token values."""
        return {
            "config_id": str(self.id),
            "provider": self.provider,
            "has_access_token": self.has_access_token,
            "has_refresh_token": self.has_refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<VendorEmailConfiguration(id={self.id}, provider={self.provider}, "
            f"vendor_id={self.vendor_id}, location_id={self.location_id})>"
        )
