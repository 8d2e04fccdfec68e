"""
mailauth - OAuth 2.0 Email Brokering Service

Brokers OAuth 2.0 authorization-code flows against Google and Microsoft and
sends email on a user's behalf with the resulting access tokens.

This package provides:
1. Provider adapters (Google API / Gmail, Microsoft Graph)
2. Token lifecycle management (exchange, storage, refresh, revocation)
3. A provider registry for resolving adapters by name
4. A FastAPI application exposing the OAuth and send-email endpoints

Example:
    >>> from mailauth.services.oauth import build_default_registry
    >>> from mailauth.settings import get_settings
    >>> registry = build_default_registry(get_settings())
    >>> provider = registry.resolve("google")
    >>> url = await provider.get_authorization_url(store, config_id)
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"
