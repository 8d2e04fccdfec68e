"""
mailauth.services.oauth.errors - Error Taxonomy

Every failure in the OAuth/email core is one of:
- OAuthError: authorization and token lifecycle failures
- EmailError: message validation, construction and transmission failures
- InvalidProviderError / ConfigurationNotFoundError: caller-input and lookup
  failures that are not specific to OAuth or email

Each error carries a human message, an HTTP-style status code, a
machine-readable ``error_code`` and optional structured ``context``.
Wrapped exceptions are kept as ``__cause__`` (``raise ... from e``).
"""

from typing import Any

# Email fields that may be echoed back to callers; everything else in the
# error context stays in the logs.
_SAFE_EMAIL_FIELDS = ("to", "subject", "cc", "bcc", "field", "value", "provider")


class MailAuthError(Exception):
    """Base exception for all mailauth errors."""

    error_type = "internal_error"
    default_status_code = 500
    default_error_code = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code or self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error for an external caller."""
        return {
            "error": True,
            "message": self.message,
            "error_type": self.error_type,
            "error_code": self.error_code,
            "http_code": self.status_code,
        }

    def log_extra(self) -> dict[str, Any]:
        """Structured fields for ``logger.*(..., extra=...)``."""
        return {
            "error_type": self.error_type,
            "error_code": self.error_code,
            "status_code": self.status_code,
            **{f"ctx_{key}": value for key, value in self.context.items()},
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(error_code={self.error_code!r}, status_code={self.status_code})>"


class OAuthError(MailAuthError):
    """
    Raised for anything in the authorization/token lifecycle.

    ``error_code`` is either one of the sub-codes below or the ``error``
    value returned by the provider's token endpoint (e.g. ``invalid_grant``).
    """

    error_type = "oauth_error"
    default_status_code = 401
    default_error_code = "oauth_error"

    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"
    NO_REFRESH_TOKEN = "no_refresh_token"
    INVALID_AUTHORIZATION_CODE = "invalid_authorization_code"
    INVALID_CONFIGURATION = "invalid_configuration"
    INVALID_STATE = "invalid_state"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    USER_INFO_FAILED = "user_info_failed"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        error_description: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, status_code, error_code, context)
        self.error_description = error_description

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.error_description:
            payload["error_description"] = self.error_description
        return payload

    @classmethod
    def token_expired(cls, provider: str = "Unknown") -> "OAuthError":
        return cls(
            f"Access token expired for {provider}",
            401,
            cls.TOKEN_EXPIRED,
            "The access token has expired and must be refreshed",
            {"provider": provider},
        )

    @classmethod
    def invalid_token(cls, provider: str = "Unknown") -> "OAuthError":
        return cls(
            f"Invalid access token for {provider}",
            401,
            cls.INVALID_TOKEN,
            "No usable access token is stored for this configuration",
            {"provider": provider},
        )

    @classmethod
    def no_refresh_token(cls, provider: str = "Unknown") -> "OAuthError":
        return cls(
            f"No refresh token available for {provider}",
            401,
            cls.NO_REFRESH_TOKEN,
            "The token cannot be renewed without a refresh token; re-run the authorization flow",
            {"provider": provider},
        )

    @classmethod
    def invalid_authorization_code(cls) -> "OAuthError":
        return cls(
            "Invalid authorization code",
            400,
            cls.INVALID_AUTHORIZATION_CODE,
            "The authorization code received is empty or invalid",
        )

    @classmethod
    def invalid_configuration(cls, details: str = "", status_code: int = 500) -> "OAuthError":
        return cls(
            "Invalid OAuth configuration" + (f": {details}" if details else ""),
            status_code,
            cls.INVALID_CONFIGURATION,
            "The OAuth client configuration is not valid",
        )

    @classmethod
    def invalid_state(cls, details: str = "") -> "OAuthError":
        return cls(
            "Invalid state received in the callback" + (f": {details}" if details else ""),
            400,
            cls.INVALID_STATE,
        )

    @classmethod
    def from_provider_response(
        cls,
        message: str,
        status_code: int,
        body: dict[str, Any],
        fallback_code: str,
        provider: str,
    ) -> "OAuthError":
        """Build an error from a provider's ``{"error", "error_description"}`` body."""
        error = body.get("error")
        description = body.get("error_description")

        # Graph returns {"error": {"code", "message"}} on resource endpoints
        if isinstance(error, dict):
            description = description or error.get("message")
            error = error.get("code")

        return cls(
            f"{message}: {description or 'Unknown error'}",
            status_code,
            error or fallback_code,
            description,
            {"provider": provider},
        )


class EmailError(MailAuthError):
    """Raised for anything in message construction, validation or transmission."""

    error_type = "email_error"
    default_status_code = 500
    default_error_code = "send_error"

    INVALID_RECIPIENT = "invalid_recipient"
    EMPTY_SUBJECT = "empty_subject"
    EMPTY_CONTENT = "empty_content"
    INVALID_EMAIL_FORMAT = "invalid_email_format"
    INVALID_ATTACHMENT = "invalid_attachment"
    SIZE_LIMIT_EXCEEDED = "size_limit_exceeded"
    SEND_LIMIT_EXCEEDED = "send_limit_exceeded"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    SEND_TIMEOUT = "send_timeout"
    NETWORK_ERROR = "network_error"

    @property
    def field(self) -> str | None:
        """The offending field for ``invalid_email_format`` errors."""
        return self.context.get("field")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        safe = {key: self.context[key] for key in _SAFE_EMAIL_FIELDS if key in self.context}
        if safe:
            payload["email_data"] = safe
        return payload

    @classmethod
    def invalid_recipient(cls, email: str, provider: str = "Unknown") -> "EmailError":
        return cls(
            f"Invalid email recipient: {email}",
            400,
            cls.INVALID_RECIPIENT,
            {"to": email, "provider": provider},
        )

    @classmethod
    def empty_subject(cls, provider: str = "Unknown") -> "EmailError":
        return cls(
            "Email subject cannot be empty", 400, cls.EMPTY_SUBJECT, {"provider": provider}
        )

    @classmethod
    def empty_content(cls, provider: str = "Unknown") -> "EmailError":
        return cls(
            "Email content cannot be empty", 400, cls.EMPTY_CONTENT, {"provider": provider}
        )

    @classmethod
    def invalid_email_format(cls, field: str, value: str) -> "EmailError":
        return cls(
            f"Invalid email format in {field}: {value}",
            400,
            cls.INVALID_EMAIL_FORMAT,
            {"field": field, "value": value},
        )

    @classmethod
    def invalid_attachment(cls, filename: str, reason: str = "") -> "EmailError":
        return cls(
            f"Invalid attachment: {filename}" + (f" - {reason}" if reason else ""),
            400,
            cls.INVALID_ATTACHMENT,
            {"filename": filename, "reason": reason},
        )

    @classmethod
    def size_limit_exceeded(cls, size: int, max_size: int, provider: str = "Unknown") -> "EmailError":
        return cls(
            f"Email size exceeded: {size} bytes. Maximum allowed: {max_size} bytes",
            413,
            cls.SIZE_LIMIT_EXCEEDED,
            {"size": size, "max_size": max_size, "provider": provider},
        )

    @classmethod
    def send_limit_exceeded(cls, provider: str = "Unknown") -> "EmailError":
        return cls(
            "Email sending limit exceeded", 429, cls.SEND_LIMIT_EXCEEDED, {"provider": provider}
        )

    @classmethod
    def provider_unavailable(cls, provider: str) -> "EmailError":
        return cls(
            f"Email service provider unavailable: {provider}",
            503,
            cls.PROVIDER_UNAVAILABLE,
            {"provider": provider},
        )

    @classmethod
    def quota_exceeded(cls, provider: str, current_usage: int, limit: int) -> "EmailError":
        return cls(
            f"Email quota exceeded for {provider}: {current_usage}/{limit}",
            403,
            cls.QUOTA_EXCEEDED,
            {"provider": provider, "current_usage": current_usage, "limit": limit},
        )

    @classmethod
    def send_timeout(cls, provider: str, timeout: float) -> "EmailError":
        return cls(
            f"Email send timeout with {provider}: {timeout} seconds",
            408,
            cls.SEND_TIMEOUT,
            {"provider": provider, "timeout": timeout},
        )

    @classmethod
    def network_error(cls, provider: str, details: str = "") -> "EmailError":
        return cls(
            f"Network error with {provider}" + (f": {details}" if details else ""),
            502,
            cls.NETWORK_ERROR,
            {"provider": provider, "details": details},
        )


class InvalidProviderError(MailAuthError):
    """Raised when a provider name cannot be resolved to an adapter."""

    default_status_code = 400
    default_error_code = "invalid_provider"

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message, context={"provider": provider} if provider else None)
        self.provider = provider


class ConfigurationNotFoundError(MailAuthError):
    """Raised when a configuration id does not match an active configuration."""

    default_status_code = 404
    default_error_code = "configuration_not_found"

    def __init__(self, config_id: Any) -> None:
        super().__init__(
            f"Configuration not found: {config_id}",
            context={"config_id": str(config_id)},
        )
        self.config_id = config_id
