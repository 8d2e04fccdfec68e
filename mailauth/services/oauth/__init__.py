"""
mailauth.services.oauth - OAuth Token Lifecycle & Email Delivery

This package provides the provider-independent OAuth core:
- Provider adapters (Google, Microsoft) behind one OAuthProvider contract
- ProviderRegistry for name-based adapter lookup
- ConfigurationStore for configuration persistence
- Token lifecycle policy (expiry buffer, state codec, single-flight refresh)
- The OAuthError / EmailError taxonomy

Usage:
    >>> from mailauth.services.oauth import ConfigurationStore, build_default_registry
    >>>
    >>> registry = build_default_registry(get_settings())
    >>> store = ConfigurationStore(session)
    >>> config = await store.get(config_id)
    >>> provider = registry.resolve_from_configuration(config)
    >>> await provider.send_email(store, config, {"to": "...", "subject": "...", "content": "..."})
"""

from mailauth.services.oauth.errors import (
    ConfigurationNotFoundError,
    EmailError,
    InvalidProviderError,
    MailAuthError,
    OAuthError,
)
from mailauth.services.oauth.lifecycle import RefreshGuard, decode_state, encode_state
from mailauth.services.oauth.providers import (
    GoogleOAuthProvider,
    MicrosoftGraphProvider,
    OAuthProvider,
)
from mailauth.services.oauth.registry import ProviderRegistry, build_default_registry
from mailauth.services.oauth.store import ConfigurationStore

__all__ = [
    "ConfigurationNotFoundError",
    "ConfigurationStore",
    "EmailError",
    "GoogleOAuthProvider",
    "InvalidProviderError",
    "MailAuthError",
    "MicrosoftGraphProvider",
    "OAuthError",
    "OAuthProvider",
    "ProviderRegistry",
    "RefreshGuard",
    "build_default_registry",
    "decode_state",
    "encode_state",
]
