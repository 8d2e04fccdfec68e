"""
mailauth.models - SQLAlchemy Database Models

Models:
- base: Base model classes (timestamps, soft delete)
- email_configuration: VendorEmailConfiguration (OAuth client + current tokens)

Usage:
    >>> from mailauth.models import VendorEmailConfiguration
    >>> from mailauth.services.oauth.store import ConfigurationStore
    >>>
    >>> config = await ConfigurationStore(session).get(config_id)
"""

from mailauth.models.base import Base
from mailauth.models.email_configuration import (
    DEFAULT_MICROSOFT_TENANT,
    TOKEN_EXPIRY_BUFFER,
    VALID_PROVIDERS,
    EmailProvider,
    VendorEmailConfiguration,
)

__all__ = [
    "DEFAULT_MICROSOFT_TENANT",
    "TOKEN_EXPIRY_BUFFER",
    "VALID_PROVIDERS",
    "Base",
    "EmailProvider",
    "VendorEmailConfiguration",
]
