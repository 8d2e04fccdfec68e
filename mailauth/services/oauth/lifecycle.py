"""
mailauth.services.oauth.lifecycle - Token Lifecycle

Provider-independent token policy shared by every adapter:
- Refresh decision (expired, or expiring within the 5 minute buffer)
- Mapping token endpoint responses onto configuration fields
- The OAuth ``state`` codec (base64-encoded JSON)
- Single-flight refresh guard keyed by configuration id
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from mailauth.models.email_configuration import VendorEmailConfiguration
from mailauth.services.oauth.errors import OAuthError

logger = logging.getLogger(__name__)

# Used when a token response omits expires_in (RFC 6749 leaves it optional).
DEFAULT_EXPIRES_IN = 3600


def needs_refresh(config: VendorEmailConfiguration, now: datetime | None = None) -> bool:
    """True if the stored access token is expired or expiring soon."""
    now = now or datetime.now(UTC)
    return config.is_token_expired(now) or config.is_token_expiring_soon(now)


def _expires_in(config: VendorEmailConfiguration, value: Any) -> int:
    if value is None:
        return DEFAULT_EXPIRES_IN
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise OAuthError(
            "Token response carried an invalid expires_in",
            502,
            OAuthError.INVALID_TOKEN,
            context={"provider": config.provider, "expires_in_type": type(value).__name__},
        ) from e


def token_fields(
    config: VendorEmailConfiguration,
    token_data: dict[str, Any],
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Configuration fields for a token endpoint response.

    ``expires_at`` is always derived here as ``now + expires_in``. A missing
    ``expires_in`` means ``DEFAULT_EXPIRES_IN``; ``0`` is kept as issued. A
    response without ``refresh_token`` keeps the stored one.

    Raises:
        OAuthError: If the response carries no access token or a
            non-integer ``expires_in``
    """
    access_token = token_data.get("access_token")
    if not access_token:
        raise OAuthError(
            "Token response did not include an access token",
            502,
            OAuthError.INVALID_TOKEN,
            context={"provider": config.provider, "token_data_keys": sorted(token_data)},
        )

    expires_in = _expires_in(config, token_data.get("expires_in"))
    issued_at = now or datetime.now(UTC)

    return {
        "access_token": access_token,
        "refresh_token": token_data.get("refresh_token") or config.refresh_token,
        "expires_in": expires_in,
        "expires_at": issued_at + timedelta(seconds=expires_in),
    }


def cleared_token_fields(expires_in: int | None = 0) -> dict[str, Any]:
    """Fields that forget every stored token."""
    return {
        "access_token": None,
        "refresh_token": None,
        "expires_at": None,
        "expires_in": expires_in,
    }


# =============================================================================
# OAuth state parameter
# =============================================================================


class StatePayload(BaseModel):
    """Decoded ``state`` round-tripped through the provider redirect."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    config_id: UUID = Field(validation_alias=AliasChoices("uid", "config_id"))
    timestamp: int | None = None
    csrf: str | None = None


def encode_state(config_id: UUID | str, csrf: str | None = None) -> str:
    """Base64 JSON ``state``: ``{"uid": <config id>, "timestamp": <issue time>[, "csrf"]}``."""
    payload: dict[str, Any] = {"uid": str(config_id), "timestamp": int(time.time())}
    if csrf:
        payload["csrf"] = csrf
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_state(state: str) -> StatePayload:
    """
    Decode and validate a ``state`` value from a callback.

    The value is untrusted input; it must decode to a JSON object with a
    configuration id.

    Raises:
        OAuthError: With ``invalid_state`` if decoding or validation fails
    """
    padded = state.strip() + "=" * (-len(state.strip()) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=False)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
        raise OAuthError.invalid_state("state is not base64-encoded JSON") from e

    if not isinstance(data, dict):
        raise OAuthError.invalid_state("state payload is not an object")

    try:
        return StatePayload.model_validate(data)
    except ValidationError as e:
        raise OAuthError.invalid_state("missing or malformed configuration id") from e


# =============================================================================
# Single-flight refresh
# =============================================================================


class RefreshGuard:
    """
    Per-configuration mutual exclusion around token refresh.

    Concurrent refreshes of the same configuration could each succeed at the
    provider while invalidating each other's access token, so only one
    refresh per configuration id runs at a time. Locks are dropped once no
    task holds or waits on them.

    Example:
        >>> guard = RefreshGuard()
        >>> async with guard.hold(config.id):
        ...     ...  # re-check expiry, then refresh
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: UUID | str) -> AsyncIterator[None]:
        name = str(key)
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._users[name] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if self._users[name] <= 0:
                self._users.pop(name, None)
                self._locks.pop(name, None)

    def is_held(self, key: UUID | str) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
