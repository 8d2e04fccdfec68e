"""
Unit tests for mailauth.services.oauth.lifecycle.

Tests cover:
- Refresh decision
- Token response to configuration fields
- State encoding/decoding
- Single-flight refresh guard
"""

import asyncio
import base64
import json
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from mailauth.services.oauth.errors import OAuthError
from mailauth.services.oauth.lifecycle import (
    DEFAULT_EXPIRES_IN,
    RefreshGuard,
    cleared_token_fields,
    decode_state,
    encode_state,
    needs_refresh,
    token_fields,
)
from tests.support import make_config

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestNeedsRefresh:
    """Tests for needs_refresh()."""

    def test_fresh_token(self):
        config = make_config(expires_at=NOW + timedelta(hours=1))

        assert needs_refresh(config, NOW) is False

    def test_inside_buffer(self):
        config = make_config(expires_at=NOW + timedelta(minutes=4))

        assert needs_refresh(config, NOW) is True

    def test_expired(self):
        config = make_config(expires_at=NOW - timedelta(minutes=1))

        assert needs_refresh(config, NOW) is True

    def test_without_expiry(self):
        assert needs_refresh(make_config(expires_at=None), NOW) is False


class TestTokenFields:
    """Tests for token_fields()."""

    def test_expires_at_is_issue_time_plus_lifetime(self):
        config = make_config()

        fields = token_fields(
            config,
            {"access_token": "new", "refresh_token": "r2", "expires_in": 1800},
            now=NOW,
        )

        assert fields == {
            "access_token": "new",
            "refresh_token": "r2",
            "expires_in": 1800,
            "expires_at": NOW + timedelta(seconds=1800),
        }

    def test_keeps_stored_refresh_token(self):
        config = make_config(refresh_token="refresh-old")

        fields = token_fields(config, {"access_token": "new", "expires_in": 3600}, now=NOW)

        assert fields["refresh_token"] == "refresh-old"

    def test_default_lifetime(self):
        fields = token_fields(make_config(), {"access_token": "new"}, now=NOW)

        assert fields["expires_in"] == DEFAULT_EXPIRES_IN
        assert fields["expires_at"] == NOW + timedelta(seconds=DEFAULT_EXPIRES_IN)

    def test_string_lifetime(self):
        fields = token_fields(make_config(), {"access_token": "new", "expires_in": "60"}, now=NOW)

        assert fields["expires_in"] == 60

    def test_zero_lifetime_is_kept(self):
        fields = token_fields(make_config(), {"access_token": "new", "expires_in": 0}, now=NOW)

        assert fields["expires_in"] == 0
        assert fields["expires_at"] == NOW

    def test_null_lifetime_uses_default(self):
        fields = token_fields(make_config(), {"access_token": "new", "expires_in": None}, now=NOW)

        assert fields["expires_in"] == DEFAULT_EXPIRES_IN

    @pytest.mark.parametrize("expires_in", ["soon", "3599.5", {"seconds": 60}])
    def test_invalid_lifetime(self, expires_in):
        with pytest.raises(OAuthError) as exc_info:
            token_fields(
                make_config(), {"access_token": "ya29.secret", "expires_in": expires_in}, now=NOW
            )

        assert exc_info.value.error_code == OAuthError.INVALID_TOKEN
        assert exc_info.value.status_code == 502
        assert "ya29.secret" not in str(exc_info.value.log_extra())

    def test_missing_access_token(self):
        with pytest.raises(OAuthError) as exc_info:
            token_fields(make_config(), {"refresh_token": "r2"}, now=NOW)

        assert exc_info.value.error_code == OAuthError.INVALID_TOKEN
        assert exc_info.value.context["token_data_keys"] == ["refresh_token"]

    def test_cleared_fields(self):
        assert cleared_token_fields() == {
            "access_token": None,
            "refresh_token": None,
            "expires_at": None,
            "expires_in": 0,
        }
        assert cleared_token_fields(None)["expires_in"] is None


class TestState:
    """Tests for encode_state() / decode_state()."""

    def test_round_trip(self):
        config_id = uuid4()

        payload = decode_state(encode_state(config_id, csrf="abc"))

        assert payload.config_id == config_id
        assert payload.csrf == "abc"
        assert payload.timestamp is not None

    def test_is_base64_json(self):
        config_id = uuid4()

        data = json.loads(base64.b64decode(encode_state(config_id)))

        assert set(data) == {"uid", "timestamp"}
        assert data["uid"] == str(config_id)

    def test_csrf_key(self):
        data = json.loads(base64.b64decode(encode_state(uuid4(), csrf="abc")))

        assert set(data) == {"uid", "timestamp", "csrf"}
        assert data["csrf"] == "abc"

    def test_accepts_config_id_key(self):
        config_id = uuid4()
        state = base64.b64encode(json.dumps({"config_id": str(config_id)}).encode()).decode()

        assert decode_state(state).config_id == config_id

    def test_accepts_unpadded_urlsafe(self):
        config_id = uuid4()
        state = base64.urlsafe_b64encode(
            json.dumps({"uid": str(config_id), "timestamp": 1}).encode()
        ).decode().rstrip("=")

        assert decode_state(state).config_id == config_id

    @pytest.mark.parametrize(
        "state",
        [
            "not base64 at all!!",
            base64.b64encode(b"not json").decode(),
            base64.b64encode(b'["a list"]').decode(),
            base64.b64encode(b'{"timestamp": 1}').decode(),
            base64.b64encode(b'{"uid": "not-a-uuid"}').decode(),
        ],
    )
    def test_rejects_invalid_state(self, state):
        with pytest.raises(OAuthError) as exc_info:
            decode_state(state)

        assert exc_info.value.error_code == OAuthError.INVALID_STATE
        assert exc_info.value.status_code == 400


class TestRefreshGuard:
    """Tests for RefreshGuard."""

    @pytest.mark.asyncio
    async def test_serializes_same_key(self):
        guard = RefreshGuard()
        order: list[str] = []

        async def worker(name: str):
            async with guard.hold("config-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        guard = RefreshGuard()

        async with guard.hold("config-1"):
            async with guard.hold("config-2"):
                assert guard.is_held("config-1")
                assert guard.is_held("config-2")

    @pytest.mark.asyncio
    async def test_locks_are_released(self):
        guard = RefreshGuard()
        key = uuid4()

        async with guard.hold(key):
            assert len(guard) == 1
            assert guard.is_held(str(key))

        assert len(guard) == 0
        assert guard.is_held(key) is False

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        guard = RefreshGuard()

        with pytest.raises(RuntimeError):
            async with guard.hold("config-1"):
                raise RuntimeError("refresh failed")

        assert len(guard) == 0
