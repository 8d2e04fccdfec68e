"""
mailauth.services.oauth.providers - OAuth Provider Implementations

This package contains provider-specific adapters:
- GoogleOAuthProvider: Google OAuth 2.0 with Gmail delivery
- MicrosoftGraphProvider: Microsoft OAuth 2.0 with Graph sendMail delivery

Each adapter implements the OAuthProvider contract; look adapters up through
a ProviderRegistry rather than constructing them directly.
"""

from mailauth.services.oauth.providers.base import OAuthProvider
from mailauth.services.oauth.providers.google import GoogleOAuthProvider
from mailauth.services.oauth.providers.microsoft import MicrosoftGraphProvider

__all__ = [
    "GoogleOAuthProvider",
    "MicrosoftGraphProvider",
    "OAuthProvider",
]
