"""
mailauth.services.oauth.providers.google - Google OAuth Provider

Implements the OAuth 2.0 authorization code flow for Google and sends mail
through the Gmail API.

Reference:
- https://developers.google.com/identity/protocols/oauth2/web-server
- https://developers.google.com/gmail/api/reference/rest/v1/users.messages/send
"""

import base64
import logging
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

import httpx

from mailauth.models.email_configuration import EmailProvider, VendorEmailConfiguration
from mailauth.services.oauth.lifecycle import cleared_token_fields, encode_state
from mailauth.services.oauth.providers.base import OAuthProvider
from mailauth.services.oauth.store import ConfigurationStore
from mailauth.services.oauth.validation import EmailMessage

logger = logging.getLogger(__name__)


class GoogleOAuthProvider(OAuthProvider):
    """
    Google OAuth 2.0 provider with Gmail delivery.

    Consent is always requested with ``access_type=offline`` and
    ``prompt=consent`` so Google issues a refresh token on every grant.

    Example:
        >>> provider = GoogleOAuthProvider(timeout=10.0)
        >>> auth_url = await provider.get_authorization_url(store, config.id)
    """

    name = EmailProvider.GOOGLE.value
    display_name = "Google API"

    # OAuth endpoints
    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"

    SCOPES = (
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    )

    def token_url(self, config: VendorEmailConfiguration) -> str:
        return self.TOKEN_URL

    def extract_user_email(self, user_info: dict[str, Any]) -> str | None:
        return user_info.get("email")

    async def get_authorization_url(self, store: ConfigurationStore, config_id: UUID | str) -> str:
        config = await self._load_configuration(store, config_id)

        params = {
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": " ".join(self.SCOPES),
            "response_type": "code",
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent (ensures refresh token)
            "state": encode_state(config.id),
        }

        logger.info(
            "Google authorization URL generated",
            extra={"config_id": str(config.id), "provider": self.name},
        )
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    def build_send_request(self, message: EmailMessage) -> tuple[str, dict[str, Any]]:
        """RFC 2822 message, base64url-encoded into Gmail's ``raw`` field."""
        mime = MIMEText(message.content, "html" if message.is_html else "plain", "utf-8")
        mime["To"] = formataddr((message.to_name, message.to)) if message.to_name else message.to
        mime["Subject"] = message.subject
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        if message.bcc:
            mime["Bcc"] = ", ".join(message.bcc)

        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("utf-8")
        return self.GMAIL_SEND_URL, {"json": {"raw": raw}}

    async def revoke_token(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> bool:
        """
        Revoke the access token at Google, then clear stored tokens.

        Returns:
            True if Google accepted the revocation. False when there is no
            token to revoke or the request fails; stored tokens are then
            left untouched.
        """
        context = {"config_id": str(config.id), "provider": self.name, "operation": "revoke_token"}

        if not config.access_token:
            logger.warning("No Google token to revoke", extra=context)
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.REVOKE_URL, data={"token": config.access_token})
        except httpx.HTTPError as e:
            logger.error(f"Google token revocation failed: {e.__class__.__name__}", extra=context)
            return False

        if not response.is_success:
            # Google returns 400 if the token was already revoked or is invalid
            logger.warning(
                f"Google token revocation failed: {response.status_code}",
                extra={**context, "status_code": response.status_code},
            )
            return False

        await self._persist(store, config, cleared_token_fields(expires_in=0), "revoke_token")
        logger.info("Google OAuth token revoked successfully", extra=context)
        return True
