"""
mailauth.services.oauth.providers.microsoft - Microsoft Graph OAuth Provider

Implements the OAuth 2.0 authorization code flow for Microsoft 365 / Azure AD
and sends mail through Microsoft Graph.

Single-tenant configurations carry their tenant id; everything else uses
the multi-tenant ``common`` authority.

Reference:
- https://learn.microsoft.com/en-us/entra/identity-platform/v2-oauth2-auth-code-flow
- https://learn.microsoft.com/en-us/graph/api/user-sendmail
"""

import logging
import secrets
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

from mailauth.models.email_configuration import (
    DEFAULT_MICROSOFT_TENANT,
    EmailProvider,
    VendorEmailConfiguration,
)
from mailauth.services.oauth.errors import OAuthError
from mailauth.services.oauth.lifecycle import cleared_token_fields, encode_state
from mailauth.services.oauth.providers.base import OAuthProvider
from mailauth.services.oauth.store import ConfigurationStore
from mailauth.services.oauth.validation import EmailMessage

logger = logging.getLogger(__name__)


def _recipients(addresses: list[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": address}} for address in addresses]


class MicrosoftGraphProvider(OAuthProvider):
    """
    Microsoft Graph OAuth 2.0 provider.

    Microsoft expects the scope list on the token requests as well as on the
    authorization request, so it is resent on exchange and refresh.

    Example:
        >>> provider = MicrosoftGraphProvider()
        >>> auth_url = await provider.get_authorization_url(store, config.id)
    """

    name = EmailProvider.MICROSOFT.value
    display_name = "Microsoft Graph"

    # OAuth endpoints; {tenant} is the tenant id or "common" for multi-tenant
    AUTHORIZATION_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize"
    TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
    USERINFO_URL = "https://graph.microsoft.com/v1.0/me"
    SEND_MAIL_URL = "https://graph.microsoft.com/v1.0/me/sendMail"

    SCOPES = (
        "Calendars.ReadWrite",
        "IMAP.AccessAsUser.All",
        "Mail.Read",
        "Mail.ReadWrite",
        "Mail.Send",
        "openid",
        "profile",
        "SMTP.Send",
        "User.Read",
        "email",
        "offline_access",  # Required for refresh tokens
    )

    @staticmethod
    def tenant_for(config: VendorEmailConfiguration) -> str:
        return config.tenant_id or DEFAULT_MICROSOFT_TENANT

    def token_url(self, config: VendorEmailConfiguration) -> str:
        return self.TOKEN_URL.format(tenant=self.tenant_for(config))

    def extra_token_params(self) -> dict[str, str]:
        return {"scope": " ".join(self.SCOPES)}

    def extract_user_email(self, user_info: dict[str, Any]) -> str | None:
        return user_info.get("mail") or user_info.get("userPrincipalName")

    def configuration_fields(self, config_data: dict[str, Any]) -> dict[str, Any]:
        """
        Tenant for a new configuration, ``common`` when not given.

        Raises:
            OAuthError: If ``tenant_id`` is given but blank
        """
        tenant_id = config_data.get("tenant_id")
        if tenant_id is None:
            return {"tenant_id": DEFAULT_MICROSOFT_TENANT}
        if not isinstance(tenant_id, str) or not tenant_id.strip():
            raise OAuthError.invalid_configuration("tenant_id cannot be empty", status_code=422)
        return {"tenant_id": tenant_id.strip()}

    async def get_authorization_url(self, store: ConfigurationStore, config_id: UUID | str) -> str:
        config = await self._load_configuration(store, config_id)

        params = {
            "client_id": config.client_id,
            "response_type": "code",
            "redirect_uri": config.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.SCOPES),
            # csrf is part of the state wire format; it is not checked on callback
            "state": encode_state(config.id, csrf=secrets.token_urlsafe(16)),
            "prompt": "consent",
            "access_type": "offline",
        }

        url = self.AUTHORIZATION_URL.format(tenant=self.tenant_for(config))

        logger.info(
            "Microsoft authorization URL generated",
            extra={"config_id": str(config.id), "provider": self.name, "tenant": self.tenant_for(config)},
        )
        return f"{url}?{urlencode(params)}"

    def build_send_request(self, message: EmailMessage) -> tuple[str, dict[str, Any]]:
        """Graph ``sendMail`` JSON payload; the message is saved to Sent Items."""
        to_address: dict[str, Any] = {"address": message.to}
        if message.to_name:
            to_address["name"] = message.to_name

        graph_message: dict[str, Any] = {
            "subject": message.subject,
            "body": {"contentType": message.content_type, "content": message.content},
            "toRecipients": [{"emailAddress": to_address}],
        }
        if message.cc:
            graph_message["ccRecipients"] = _recipients(message.cc)
        if message.bcc:
            graph_message["bccRecipients"] = _recipients(message.bcc)

        return self.SEND_MAIL_URL, {"json": {"message": graph_message, "saveToSentItems": True}}

    async def revoke_token(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> bool:
        """
        Forget the stored tokens.

        Microsoft Graph has no token revocation endpoint, so nothing is sent
        to Microsoft; an issued access token stays valid until it expires.
        """
        await self._persist(store, config, cleared_token_fields(expires_in=None), "revoke_token")

        logger.warning(
            "Microsoft tokens cleared locally; Microsoft Graph has no revocation endpoint "
            "and the access token remains valid until expiry",
            extra={"config_id": str(config.id), "provider": self.name},
        )
        return True
