"""
mailauth.services.oauth.validation - Input Validation

Validation of caller-supplied email and configuration data. Everything here
runs before any network or persistence call, so invalid input never has
side effects.

Address syntax is checked with pydantic's ``EmailStr`` (email-validator).
"""

from typing import Any, Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from mailauth.services.oauth.errors import EmailError, OAuthError

_EMAIL = TypeAdapter(EmailStr)
_HTTP_URL = TypeAdapter(AnyHttpUrl)

ContentType = Literal["HTML", "Text"]


def is_valid_email(value: Any) -> bool:
    """True if ``value`` is a syntactically valid email address."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        _EMAIL.validate_python(value.strip())
    except ValidationError:
        return False
    return True


def _addresses(value: Any) -> list[str]:
    """Normalize a cc/bcc value (single address or list) to a list."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [item.strip() if isinstance(item, str) else item for item in value]
    return [value.strip() if isinstance(value, str) else value]


class EmailMessage(BaseModel):
    """A validated outgoing message, ready for a provider to serialize."""

    to: str
    subject: str
    content: str
    content_type: ContentType = "HTML"
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    to_name: str | None = None

    @property
    def is_html(self) -> bool:
        return self.content_type == "HTML"


def validate_email_data(email_data: dict[str, Any], provider: str = "Unknown") -> EmailMessage:
    """
    Validate raw email data and return a normalized message.

    Checks run in order: recipient presence, recipient syntax, subject,
    content, then every cc and bcc address.

    Args:
        email_data: Mapping with ``to``, ``subject``, ``content`` and optional
            ``cc``, ``bcc`` (string or list), ``content_type`` and ``to_name``
        provider: Provider display name for error context

    Raises:
        EmailError: ``invalid_recipient``, ``invalid_email_format``,
            ``empty_subject`` or ``empty_content``
    """
    to = email_data.get("to")
    if not to or (isinstance(to, str) and not to.strip()):
        raise EmailError.invalid_recipient("", provider)
    if not is_valid_email(to):
        raise EmailError.invalid_email_format("to", str(to))

    subject = email_data.get("subject")
    if not isinstance(subject, str) or not subject.strip():
        raise EmailError.empty_subject(provider)

    content = email_data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise EmailError.empty_content(provider)

    copies: dict[str, list[str]] = {}
    for field in ("cc", "bcc"):
        copies[field] = _addresses(email_data.get(field))
        for address in copies[field]:
            if not is_valid_email(address):
                raise EmailError.invalid_email_format(field, str(address))

    content_type = str(email_data.get("content_type") or "HTML")

    return EmailMessage(
        to=to.strip(),
        subject=subject,
        content=content,
        content_type="Text" if content_type.lower() == "text" else "HTML",
        cc=copies["cc"],
        bcc=copies["bcc"],
        to_name=email_data.get("to_name") or None,
    )


class ConfigurationData(BaseModel):
    """Fields accepted when registering a provider configuration."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    vendor_id: int = Field(strict=True, ge=1)
    location_id: int = Field(strict=True, ge=1)
    client_id: str = Field(min_length=1, max_length=255)
    client_secret: str = Field(min_length=1, max_length=255)
    redirect_uri: str = Field(min_length=1, max_length=500)
    user_email: EmailStr | None = None
    tenant_id: str | None = Field(default=None, max_length=255)

    @field_validator("redirect_uri")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        # Keep the caller's exact string; providers compare it byte for byte
        try:
            _HTTP_URL.validate_python(value)
        except ValidationError:
            raise ValueError("must be an absolute http(s) URL") from None
        return value

    @field_validator("user_email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def validate_configuration_data(config_data: dict[str, Any]) -> ConfigurationData:
    """
    Validate configuration data before anything is written.

    Raises:
        OAuthError: ``invalid_configuration`` (422) naming every failing field
    """
    try:
        return ConfigurationData.model_validate(config_data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise OAuthError.invalid_configuration(details, status_code=422) from e
