"""
mailauth.api.v1.schemas.oauth - OAuth & Email API Schemas

Pydantic schemas for configuration management, the OAuth flow and email
sending. Response schemas never carry client secrets or token values.
"""

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from mailauth.models.email_configuration import VALID_PROVIDERS, VendorEmailConfiguration

DataT = TypeVar("DataT")

TokenStatusValue = Literal["valid", "expired"]


class ApiResponse(BaseModel, Generic[DataT]):
    """Success envelope shared by every endpoint."""

    success: bool = True
    message: str = ""
    data: DataT


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationCreate(BaseModel):
    """Schema for registering a provider configuration."""

    vendor_id: int = Field(..., description="Owning vendor")
    location_id: int = Field(..., description="Owning vendor location")
    provider: str = Field(..., description="Email provider (google or microsoft)")
    client_id: str = Field(..., description="OAuth client ID")
    client_secret: SecretStr = Field(..., description="OAuth client secret")
    redirect_uri: str = Field(..., description="Redirect URI registered with the provider")
    tenant_id: str | None = Field(
        default=None,
        description="Azure AD tenant (Microsoft only, defaults to 'common')",
    )
    user_email: str | None = Field(default=None, description="Mailbox address, if known")

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        name = value.strip().lower()
        if name not in VALID_PROVIDERS:
            raise ValueError(f"provider must be one of: {', '.join(VALID_PROVIDERS)}")
        return name

    def to_config_data(self) -> dict[str, Any]:
        """Raw configuration data for the provider adapter."""
        data = self.model_dump(exclude_unset=True, exclude={"provider", "client_secret"})
        data["client_secret"] = self.client_secret.get_secret_value()
        return data


class ConfigurationResponse(BaseModel):
    """Schema for a configuration; token values are reduced to flags."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    vendor_id: int
    location_id: int
    provider: str
    provider_display_name: str
    client_id: str
    redirect_uri: str
    tenant_id: str | None = None
    user_email: str | None = None
    has_access_token: bool = False
    has_refresh_token: bool = False
    expires_at: datetime | None = None
    expires: str | None = Field(
        default=None,
        description="Human readable time until the access token expires",
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_configuration(cls, config: VendorEmailConfiguration) -> "ConfigurationResponse":
        response = cls.model_validate(config)
        response.expires = config.time_until_expiration()
        return response


# =============================================================================
# OAuth flow
# =============================================================================


class ConfigurationRef(BaseModel):
    """Request body naming a configuration."""

    config_id: UUID


class AuthUrlData(BaseModel):
    auth_url: str
    provider: str
    config_id: UUID


class CallbackData(BaseModel):
    provider: str
    user_email: str | None = None
    expires_at: datetime | None = None
    config_id: UUID


class RefreshData(BaseModel):
    provider: str
    expires_at: datetime | None = None
    config_id: UUID


class RevokeData(BaseModel):
    provider: str
    config_id: UUID


class UserInfoData(BaseModel):
    provider: str
    user_info: dict[str, Any]
    config_id: UUID


# =============================================================================
# Email
# =============================================================================


class SendEmailRequest(BaseModel):
    """
    Schema for sending an email.

    Address syntax is checked by the provider adapter, which reports
    ``invalid_recipient`` / ``invalid_email_format`` errors.
    """

    model_config = ConfigDict(populate_by_name=True)

    config_id: UUID
    to: str = Field(..., max_length=255)
    subject: str = Field(..., max_length=255)
    content: str
    content_type: str = Field(default="HTML", alias="contentType")
    cc: list[str] | str | None = None
    bcc: list[str] | str | None = None
    to_name: str | None = None

    def email_data(self) -> dict[str, Any]:
        return self.model_dump(exclude={"config_id"})


class SendEmailData(BaseModel):
    provider: str
    to: str
    subject: str
    sent_at: datetime
