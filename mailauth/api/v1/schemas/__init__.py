"""
mailauth.api.v1.schemas - API Schemas

Contains all v1 API Pydantic schemas.
"""

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
    UserInfoData,
)

__all__ = [
    "ApiResponse",
    "AuthUrlData",
    "CallbackData",
    "ConfigurationCreate",
    "ConfigurationRef",
    "ConfigurationResponse",
    "RefreshData",
    "RevokeData",
    "SendEmailData",
    "SendEmailRequest",
    "UserInfoData",
]
