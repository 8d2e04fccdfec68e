"""
mailauth.services.oauth.providers.base - OAuth Provider Contract

Defines the interface every provider adapter implements and the parts of
the token lifecycle that are identical across providers (code exchange,
token persistence, refresh, user info, message delivery).

Adapters supply the provider-specific pieces: endpoints, authorization URL
parameters, message serialization, user email extraction and revocation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError

from mailauth.models.email_configuration import VendorEmailConfiguration
from mailauth.services.oauth.errors import EmailError, OAuthError
from mailauth.services.oauth.lifecycle import (
    RefreshGuard,
    decode_state,
    needs_refresh,
    token_fields,
)
from mailauth.services.oauth.store import ConfigurationStore
from mailauth.services.oauth.validation import (
    ConfigurationData,
    EmailMessage,
    validate_configuration_data,
    validate_email_data,
)

logger = logging.getLogger(__name__)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Response JSON as a dict, or an empty dict for non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class OAuthProvider(ABC):
    """
    Abstract base class for OAuth email provider adapters.

    Every network operation opens one ``httpx.AsyncClient`` bounded by
    ``timeout`` and makes a single attempt; retries are the caller's concern.
    Persistence goes through the ``ConfigurationStore`` passed to each call.

    Example:
        >>> class MyProvider(OAuthProvider):
        ...     name = "example"
        ...     display_name = "Example Mail"
        ...     def token_url(self, config): ...
        ...     def extract_user_email(self, user_info): ...
        ...     def build_send_request(self, message): ...
        ...     async def get_authorization_url(self, store, config_id): ...
        ...     async def revoke_token(self, store, config): ...
    """

    name: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    SCOPES: ClassVar[tuple[str, ...]] = ()
    USERINFO_URL: ClassVar[str] = ""

    # Default timeout for HTTP requests
    TIMEOUT: ClassVar[float] = 30.0

    def __init__(
        self,
        timeout: float | None = None,
        refresh_guard: RefreshGuard | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            timeout: Seconds before an outbound request is abandoned
            refresh_guard: Guard shared by every adapter of the process, so a
                configuration is never refreshed twice concurrently
        """
        self.timeout = timeout or self.TIMEOUT
        self.refresh_guard = refresh_guard or RefreshGuard()

    @property
    def provider_name(self) -> str:
        return self.display_name

    def get_available_scopes(self) -> list[str]:
        return list(self.SCOPES)

    def supports_scope(self, scope: str) -> bool:
        return scope in self.SCOPES

    # =========================================================================
    # Provider-specific pieces
    # =========================================================================

    @abstractmethod
    def token_url(self, config: VendorEmailConfiguration) -> str:
        """Token endpoint used for both code exchange and refresh."""
        ...

    def extra_token_params(self) -> dict[str, str]:
        """Additional form fields sent with every token request."""
        return {}

    @abstractmethod
    def extract_user_email(self, user_info: dict[str, Any]) -> str | None:
        """Mailbox address from the provider's user profile."""
        ...

    @abstractmethod
    def build_send_request(self, message: EmailMessage) -> tuple[str, dict[str, Any]]:
        """
        Serialize a validated message for the provider's send endpoint.

        Returns:
            Tuple of (url, keyword arguments for ``httpx.AsyncClient.post``)
        """
        ...

    def configuration_fields(self, config_data: dict[str, Any]) -> dict[str, Any]:
        """Provider-specific columns for a new configuration."""
        return {}

    @abstractmethod
    async def get_authorization_url(self, store: ConfigurationStore, config_id: UUID | str) -> str:
        """
        Build the consent URL for a stored configuration.

        Raises:
            ConfigurationNotFoundError: If the configuration does not exist
            OAuthError: If it belongs to another provider
        """
        ...

    @abstractmethod
    async def revoke_token(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> bool:
        """Revoke the stored access token and forget every stored token."""
        ...

    # =========================================================================
    # Configuration
    # =========================================================================

    async def store_configuration(
        self, store: ConfigurationStore, config_data: dict[str, Any]
    ) -> VendorEmailConfiguration:
        """
        Validate and persist a new configuration for this provider.

        The provider is always this adapter's own; tokens start unset.

        Raises:
            OAuthError: ``invalid_configuration`` on invalid data, or if the
                row cannot be written
        """
        data: ConfigurationData = validate_configuration_data(config_data)
        fields = data.model_dump(exclude={"tenant_id"})
        fields.update(self.configuration_fields(config_data))
        fields["provider"] = self.name

        try:
            return await store.create(**fields)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to store {self.display_name} configuration: {e.__class__.__name__}",
                extra={
                    "provider": self.name,
                    "vendor_id": data.vendor_id,
                    "location_id": data.location_id,
                    "operation": "store_configuration",
                },
            )
            raise OAuthError(
                f"Failed to store {self.display_name} configuration",
                500,
                "configuration_store_failed",
                context={"provider": self.name},
            ) from e

    async def _load_configuration(
        self, store: ConfigurationStore, config_id: UUID | str
    ) -> VendorEmailConfiguration:
        config = await store.get(config_id)
        self._ensure_owned(config)
        return config

    def _ensure_owned(self, config: VendorEmailConfiguration) -> None:
        if config.provider != self.name:
            raise OAuthError.invalid_configuration(
                f"configuration {config.id} uses provider {config.provider!r}, not {self.name!r}"
            )

    # =========================================================================
    # Token lifecycle
    # =========================================================================

    async def handle_callback(
        self,
        store: ConfigurationStore,
        code: str,
        state: str | None = None,
        expected_config_id: UUID | str | None = None,
    ) -> dict[str, Any]:
        """
        Exchange an authorization code and fetch the user's profile.

        Nothing is persisted here; pass the result to ``store_token``. A
        token is never returned without the profile it belongs to.

        Args:
            store: Configuration store
            code: Authorization code from the provider redirect
            state: ``state`` value from the redirect
            expected_config_id: Configuration the callback was addressed to;
                the state must name the same one

        Returns:
            Token data: access_token, refresh_token, expires_in, token_type,
            scope and user_info

        Raises:
            OAuthError: ``invalid_authorization_code``, ``invalid_state``,
                ``invalid_configuration`` or a provider/token error
        """
        if not code or not code.strip():
            raise OAuthError.invalid_authorization_code()

        config_id = expected_config_id
        if state:
            config_id = decode_state(state).config_id
            if expected_config_id is not None and str(config_id) != str(expected_config_id):
                raise OAuthError.invalid_state("state does not match the callback configuration")

        config = await store.get_or_none(config_id)
        if config is None:
            raise OAuthError.invalid_configuration("configuration not found for callback processing")
        self._ensure_owned(config)

        logger.info(
            f"Processing {self.display_name} OAuth callback",
            extra={"config_id": str(config.id), "provider": self.name, "has_state": bool(state)},
        )

        tokens = await self._request_token(
            config,
            {
                "code": code,
                "redirect_uri": config.redirect_uri,
                "grant_type": "authorization_code",
            },
            "token exchange",
            OAuthError.TOKEN_EXCHANGE_FAILED,
        )

        access_token = tokens.get("access_token")
        if not access_token:
            raise OAuthError(
                f"{self.display_name} token exchange returned no access token",
                502,
                OAuthError.TOKEN_EXCHANGE_FAILED,
                context={"provider": self.name, "token_data_keys": sorted(tokens)},
            )

        user_info = await self.get_user_info(access_token)

        return {
            "access_token": access_token,
            "refresh_token": tokens.get("refresh_token"),
            "expires_in": tokens.get("expires_in"),
            "token_type": tokens.get("token_type", "Bearer"),
            "scope": tokens.get("scope") or " ".join(self.SCOPES),
            "user_info": user_info,
        }

    async def store_token(
        self,
        store: ConfigurationStore,
        config: VendorEmailConfiguration,
        token_data: dict[str, Any],
    ) -> VendorEmailConfiguration:
        """
        Persist token data from ``handle_callback`` in one commit.

        ``expires_at`` is derived from ``expires_in`` at store time. The
        stored refresh token is kept when the response carries none.
        """
        fields = token_fields(config, token_data)
        user_email = self.extract_user_email(token_data.get("user_info") or {})
        if user_email:
            fields["user_email"] = user_email

        config = await self._persist(store, config, fields, "store_token")

        logger.info(
            f"{self.display_name} token stored",
            extra={**config.token_summary(), "token_data_keys": sorted(token_data)},
        )
        return config

    async def get_valid_token(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> VendorEmailConfiguration:
        """
        Return ``config`` with an access token that is not about to expire.

        A token expiring within five minutes is refreshed first. Concurrent
        callers for one configuration share a single refresh: whoever waits
        on the guard re-reads the row and skips refreshing if it is fresh.

        Raises:
            OAuthError: ``invalid_token`` without an access token,
                ``no_refresh_token`` if a refresh is due but impossible
        """
        if not config.access_token:
            raise OAuthError.invalid_token(self.display_name)

        if not needs_refresh(config):
            return config

        if not config.refresh_token:
            raise OAuthError.no_refresh_token(self.display_name)

        async with self.refresh_guard.hold(config.id):
            config = await store.reload(config)
            if config.access_token and not needs_refresh(config):
                logger.debug(
                    "Token already refreshed by a concurrent request",
                    extra={"config_id": str(config.id), "provider": self.name},
                )
                return config
            return await self._refresh_locked(store, config)

    async def refresh_token(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> VendorEmailConfiguration:
        """
        Exchange the stored refresh token for a new access token.

        Raises:
            OAuthError: ``no_refresh_token`` (re-authorization required) or
                a provider error (``token_refresh_failed`` fallback)
        """
        if not config.refresh_token:
            raise OAuthError.no_refresh_token(self.display_name)

        async with self.refresh_guard.hold(config.id):
            return await self._refresh_locked(store, config)

    async def _refresh_locked(
        self, store: ConfigurationStore, config: VendorEmailConfiguration
    ) -> VendorEmailConfiguration:
        if not config.refresh_token:
            raise OAuthError.no_refresh_token(self.display_name)

        tokens = await self._request_token(
            config,
            {"refresh_token": config.refresh_token, "grant_type": "refresh_token"},
            "token refresh",
            OAuthError.TOKEN_REFRESH_FAILED,
        )
        config = await self._persist(store, config, token_fields(config, tokens), "refresh_token")

        logger.info(
            f"{self.display_name} token refreshed",
            extra={**config.token_summary(), "refresh_token_rotated": "refresh_token" in tokens},
        )
        return config

    async def _request_token(
        self,
        config: VendorEmailConfiguration,
        data: dict[str, str],
        operation: str,
        fallback_code: str,
    ) -> dict[str, Any]:
        payload = {
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            **data,
            **self.extra_token_params(),
        }
        context = {"config_id": str(config.id), "provider": self.name, "operation": operation}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.token_url(config), data=payload)
        except httpx.HTTPError as e:
            logger.error(
                f"{self.display_name} {operation} request failed: {e.__class__.__name__}",
                extra=context,
            )
            raise OAuthError(
                f"{self.display_name} {operation} failed: {e.__class__.__name__}",
                502,
                fallback_code,
                context={"provider": self.name},
            ) from e

        if not response.is_success:
            error = OAuthError.from_provider_response(
                f"{self.display_name} {operation} failed",
                response.status_code,
                _json_body(response),
                fallback_code,
                self.name,
            )
            logger.error(
                f"{self.display_name} {operation} failed: {response.status_code}",
                extra={**context, **error.log_extra()},
            )
            raise error

        tokens = _json_body(response)

        logger.info(
            f"{self.display_name} {operation} successful",
            extra={
                **context,
                "has_refresh_token": "refresh_token" in tokens,
                "expires_in": tokens.get("expires_in"),
                "scope": tokens.get("scope"),
            },
        )
        return tokens

    async def _persist(
        self,
        store: ConfigurationStore,
        config: VendorEmailConfiguration,
        fields: dict[str, Any],
        operation: str,
    ) -> VendorEmailConfiguration:
        # A failed commit expires ``config``; only the values read here are safe afterwards.
        config_id = str(config.id)
        try:
            return await store.update(config, **fields)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to persist {self.display_name} tokens: {e.__class__.__name__}",
                extra={
                    "config_id": config_id,
                    "provider": self.name,
                    "operation": operation,
                    "fields": sorted(fields),
                },
            )
            raise OAuthError(
                f"Failed to store {self.display_name} token",
                500,
                "token_store_failed",
                context={"provider": self.name, "config_id": config_id},
            ) from e

    # =========================================================================
    # User info
    # =========================================================================

    async def get_user_info(self, access_token: str) -> dict[str, Any]:
        """
        Fetch the raw user profile for ``access_token``.

        Raises:
            OAuthError: Provider error code, or ``user_info_failed``
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(
                f"{self.display_name} userinfo request failed: {e.__class__.__name__}",
                extra={"provider": self.name},
            )
            raise OAuthError(
                f"Error retrieving {self.display_name} user information",
                502,
                OAuthError.USER_INFO_FAILED,
                context={"provider": self.name},
            ) from e

        if not response.is_success:
            logger.error(
                f"{self.display_name} userinfo request failed: {response.status_code}",
                extra={"provider": self.name, "status_code": response.status_code},
            )
            raise OAuthError.from_provider_response(
                f"Error retrieving {self.display_name} user information",
                response.status_code,
                _json_body(response),
                OAuthError.USER_INFO_FAILED,
                self.name,
            )

        user_info = _json_body(response)
        logger.debug(
            f"{self.display_name} user info retrieved",
            extra={"provider": self.name, "user_info_keys": sorted(user_info)},
        )
        return user_info

    async def validate_token(self, access_token: str) -> bool:
        """True if the provider accepts ``access_token``; any failure is False."""
        if not access_token:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError:
            return False
        return response.is_success

    # =========================================================================
    # Email
    # =========================================================================

    async def send_email(
        self,
        store: ConfigurationStore,
        config: VendorEmailConfiguration,
        email_data: dict[str, Any],
    ) -> bool:
        """
        Validate, then send one message through the provider.

        Input is validated before any network call. The access token is
        refreshed first if needed. One attempt is made.

        Returns:
            True when the provider accepted the message

        Raises:
            EmailError: Validation failure, ``send_timeout`` or ``network_error``
            OAuthError: If no usable token can be obtained
        """
        message = validate_email_data(email_data, self.display_name)
        self._ensure_owned(config)
        config = await self.get_valid_token(store, config)

        url, request = self.build_send_request(message)
        context = {"config_id": str(config.id), "provider": self.name, "operation": "send_email"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    headers={"Authorization": f"Bearer {config.access_token}"},
                    **request,
                )
        except httpx.TimeoutException as e:
            logger.error(f"{self.display_name} send timed out", extra=context)
            raise EmailError.send_timeout(self.display_name, self.timeout) from e
        except httpx.HTTPError as e:
            logger.error(f"{self.display_name} send failed: {e.__class__.__name__}", extra=context)
            raise EmailError.network_error(self.display_name, e.__class__.__name__) from e

        if not response.is_success:
            error = _json_body(response).get("error")
            details = error.get("message") if isinstance(error, dict) else None
            logger.error(
                f"{self.display_name} send failed: {response.status_code}",
                extra={**context, "status_code": response.status_code},
            )
            raise EmailError.network_error(
                self.display_name, details or f"HTTP {response.status_code}"
            )

        logger.info(
            f"Email sent with {self.display_name}",
            extra={**context, "to": message.to, "subject": message.subject},
        )
        return True
