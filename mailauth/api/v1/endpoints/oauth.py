"""
mailauth.api.v1.endpoints.oauth - OAuth & Email Endpoints

REST API endpoints for the OAuth email flow:
- Register provider configurations and list them
- Authorization URL and provider callback
- Send email with the stored credentials
- Refresh, revoke and inspect tokens

Errors raised by the service layer are rendered by the handlers in
mailauth.api.errors.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from mailauth.api.deps import Registry, Store
from mailauth.api.ratelimit import enforce_callback_rate_limit
from mailauth.api.v1.schemas.oauth import (
    ApiResponse,
    AuthUrlData,
    CallbackData,
    ConfigurationCreate,
    ConfigurationRef,
    ConfigurationResponse,
    RefreshData,
    RevokeData,
    SendEmailData,
    SendEmailRequest,
    TokenStatusValue,
    UserInfoData,
)
from mailauth.models.base import utcnow
from mailauth.services.oauth.errors import OAuthError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/configuration",
    response_model=ApiResponse[ConfigurationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def store_configuration(
    data: ConfigurationCreate,
    store: Store,
    registry: Registry,
) -> ApiResponse[ConfigurationResponse]:
    """Register a provider configuration; tokens are obtained via the callback."""
    provider = registry.resolve(data.provider)
    config = await provider.store_configuration(store, data.to_config_data())

    return ApiResponse(
        message="Configuration stored successfully",
        data=ConfigurationResponse.from_configuration(config),
    )


@router.get("/configurations", response_model=ApiResponse[list[ConfigurationResponse]])
async def list_configurations(
    store: Store,
    vendor_id: int | None = Query(default=None, ge=1),
    location_id: int | None = Query(default=None, ge=1),
    provider: str | None = Query(default=None),
    token_status: TokenStatusValue | None = Query(default=None),
) -> ApiResponse[list[ConfigurationResponse]]:
    """List active configurations, optionally filtered."""
    configs = await store.search(
        vendor_id=vendor_id,
        location_id=location_id,
        provider=provider.strip().lower() if provider else None,
        token_status=token_status,
    )
    return ApiResponse(data=[ConfigurationResponse.from_configuration(c) for c in configs])


@router.get("/auth-url", response_model=ApiResponse[AuthUrlData])
async def get_auth_url(
    store: Store,
    registry: Registry,
    config_id: UUID = Query(..., description="Configuration to authorize"),
) -> ApiResponse[AuthUrlData]:
    """Get the provider consent URL for a configuration."""
    config = await store.get(config_id)
    provider = registry.resolve_from_configuration(config)
    auth_url = await provider.get_authorization_url(store, config.id)

    return ApiResponse(
        message="Authorization URL generated",
        data=AuthUrlData(auth_url=auth_url, provider=config.provider, config_id=config.id),
    )


@router.get(
    "/callback/{config_id}",
    response_model=ApiResponse[CallbackData],
    dependencies=[Depends(enforce_callback_rate_limit)],
)
async def handle_callback(
    config_id: UUID,
    store: Store,
    registry: Registry,
    code: str = Query(default="", description="Authorization code"),
    state: str | None = Query(default=None, description="OAuth state parameter"),
    error: str | None = Query(default=None, description="OAuth error"),
    error_description: str | None = Query(default=None, description="OAuth error description"),
) -> ApiResponse[CallbackData]:
    """Complete the authorization: exchange the code and store the tokens."""
    config = await store.get(config_id)

    # Handle OAuth error from provider
    if error:
        logger.warning(
            "OAuth error from provider",
            extra={"config_id": str(config.id), "error": error, "error_description": error_description},
        )
        raise OAuthError(
            f"Authorization was not granted: {error_description or error}",
            400,
            error,
            error_description,
            {"provider": config.provider},
        )

    provider = registry.resolve_from_configuration(config)
    token_data = await provider.handle_callback(store, code, state, expected_config_id=config.id)
    config = await provider.store_token(store, config, token_data)

    return ApiResponse(
        message="Authentication completed successfully",
        data=CallbackData(
            provider=config.provider,
            user_email=config.user_email,
            expires_at=config.expires_at,
            config_id=config.id,
        ),
    )


@router.post("/send-email", response_model=ApiResponse[SendEmailData])
async def send_email(
    data: SendEmailRequest,
    store: Store,
    registry: Registry,
) -> ApiResponse[SendEmailData]:
    """Send an email from the configuration's mailbox."""
    config = await store.get(data.config_id)
    provider = registry.resolve_from_configuration(config)
    await provider.send_email(store, config, data.email_data())

    return ApiResponse(
        message="Email sent successfully",
        data=SendEmailData(
            provider=config.provider,
            to=data.to,
            subject=data.subject,
            sent_at=utcnow(),
        ),
    )


@router.post("/refresh-token", response_model=ApiResponse[RefreshData])
async def refresh_token(
    data: ConfigurationRef,
    store: Store,
    registry: Registry,
) -> ApiResponse[RefreshData]:
    """Force a token refresh."""
    config = await store.get(data.config_id)
    provider = registry.resolve_from_configuration(config)
    config = await provider.refresh_token(store, config)

    return ApiResponse(
        message="Token refreshed successfully",
        data=RefreshData(provider=config.provider, expires_at=config.expires_at, config_id=config.id),
    )


@router.post("/revoke-token", response_model=ApiResponse[RevokeData])
async def revoke_token(
    data: ConfigurationRef,
    store: Store,
    registry: Registry,
) -> ApiResponse[RevokeData]:
    """Revoke the configuration's tokens."""
    config = await store.get(data.config_id)
    provider = registry.resolve_from_configuration(config)

    if not await provider.revoke_token(store, config):
        raise OAuthError(
            "Token could not be revoked",
            400,
            "token_revocation_failed",
            context={"provider": config.provider, "config_id": str(config.id)},
        )

    return ApiResponse(
        message="Token revoked successfully",
        data=RevokeData(provider=config.provider, config_id=config.id),
    )


@router.get("/user-info", response_model=ApiResponse[UserInfoData])
async def get_user_info(
    store: Store,
    registry: Registry,
    config_id: UUID = Query(..., description="Configuration to inspect"),
) -> ApiResponse[UserInfoData]:
    """Get the authorized user's profile, refreshing the token first if needed."""
    config = await store.get(config_id)
    provider = registry.resolve_from_configuration(config)
    config = await provider.get_valid_token(store, config)
    user_info = await provider.get_user_info(config.access_token)

    return ApiResponse(
        data=UserInfoData(provider=config.provider, user_info=user_info, config_id=config.id),
    )
