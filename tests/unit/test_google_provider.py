"""
Unit tests for the Google OAuth provider.

Tests cover:
- Configuration storage and the authorization URL
- Code exchange, token storage and refresh
- Gmail delivery and token revocation
"""

import asyncio
import base64
import email
import json
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from mailauth.services.oauth.errors import ConfigurationNotFoundError, EmailError, OAuthError
from mailauth.services.oauth.lifecycle import decode_state, encode_state
from mailauth.services.oauth.providers.google import GoogleOAuthProvider
from tests.support import json_response, make_config


@pytest.fixture
def provider():
    return GoogleOAuthProvider(timeout=5.0)


class TestGoogleConfiguration:
    """Tests for store_configuration / get_authorization_url."""

    @pytest.mark.asyncio
    async def test_store_configuration(self, provider, store):
        config = await provider.store_configuration(
            store,
            {
                "vendor_id": 1,
                "location_id": 2,
                "provider": "google",
                "client_id": "cid",
                "client_secret": "secret",
                "redirect_uri": "https://x.test/cb",
            },
        )

        assert config.provider == "google"
        assert config.access_token is None
        assert config.refresh_token is None
        assert config.tenant_id is None
        assert config.id in store.rows

    @pytest.mark.asyncio
    async def test_store_configuration_rejects_invalid_data(self, provider, store):
        with pytest.raises(OAuthError) as exc_info:
            await provider.store_configuration(store, {"vendor_id": 1})

        assert exc_info.value.error_code == OAuthError.INVALID_CONFIGURATION
        assert store.rows == {}

    @pytest.mark.asyncio
    async def test_store_configuration_database_failure(self, provider, store):
        store.fail_writes = OperationalError("INSERT", {}, Exception("down"))

        with pytest.raises(OAuthError) as exc_info:
            await provider.store_configuration(
                store,
                {
                    "vendor_id": 1,
                    "location_id": 2,
                    "client_id": "cid",
                    "client_secret": "secret",
                    "redirect_uri": "https://app.example.com/cb",
                },
            )

        assert exc_info.value.error_code == "configuration_store_failed"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_authorization_url(self, provider, store, google_config):
        url = await provider.get_authorization_url(store, google_config.id)

        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == provider.AUTHORIZATION_URL
        assert params["client_id"] == ["cid"]
        assert params["redirect_uri"] == [google_config.redirect_uri]
        assert params["response_type"] == ["code"]
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["scope"] == [" ".join(provider.SCOPES)]
        assert decode_state(params["state"][0]).config_id == google_config.id
        assert set(json.loads(base64.b64decode(params["state"][0]))) == {"uid", "timestamp"}
        assert "client_secret" not in params

    @pytest.mark.asyncio
    async def test_authorization_url_unknown_configuration(self, provider, store):
        with pytest.raises(ConfigurationNotFoundError):
            await provider.get_authorization_url(store, uuid4())

    @pytest.mark.asyncio
    async def test_authorization_url_other_provider(self, provider, store, microsoft_config):
        with pytest.raises(OAuthError) as exc_info:
            await provider.get_authorization_url(store, microsoft_config.id)

        assert exc_info.value.error_code == OAuthError.INVALID_CONFIGURATION


class TestGoogleCallback:
    """Tests for handle_callback / store_token."""

    @pytest.mark.asyncio
    async def test_empty_code_makes_no_request(self, provider, store, google_config, http):
        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "", encode_state(google_config.id))

        assert exc_info.value.error_code == OAuthError.INVALID_AUTHORIZATION_CODE
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_successful_exchange(self, provider, store, google_config, http):
        http.post.return_value = json_response(
            200,
            {
                "access_token": "ya29.new",
                "refresh_token": "1//refresh",
                "expires_in": 3599,
                "token_type": "Bearer",
                "scope": "https://www.googleapis.com/auth/gmail.send",
            },
        )
        http.get.return_value = json_response(200, {"email": "owner@example.com", "name": "Owner"})

        token_data = await provider.handle_callback(
            store, "auth-code", encode_state(google_config.id), expected_config_id=google_config.id
        )

        assert token_data["access_token"] == "ya29.new"
        assert token_data["refresh_token"] == "1//refresh"
        assert token_data["user_info"]["email"] == "owner@example.com"

        call_args = http.post.call_args
        assert call_args.args[0] == provider.TOKEN_URL
        assert call_args.kwargs["data"] == {
            "client_id": "cid",
            "client_secret": "secret",
            "code": "auth-code",
            "redirect_uri": google_config.redirect_uri,
            "grant_type": "authorization_code",
        }
        assert http.get.call_args.kwargs["headers"] == {"Authorization": "Bearer ya29.new"}
        http.factory.assert_called_with(timeout=5.0)

        # Nothing is persisted until store_token
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_exchange_without_state_uses_expected_configuration(
        self, provider, store, google_config, http
    ):
        http.post.return_value = json_response(200, {"access_token": "ya29.new", "expires_in": 3600})
        http.get.return_value = json_response(200, {"email": "owner@example.com"})

        token_data = await provider.handle_callback(
            store, "auth-code", None, expected_config_id=google_config.id
        )

        assert token_data["scope"] == " ".join(provider.SCOPES)
        assert token_data["token_type"] == "Bearer"

    @pytest.mark.asyncio
    async def test_state_for_another_configuration(self, provider, store, google_config, http):
        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(
                store, "auth-code", encode_state(uuid4()), expected_config_id=google_config.id
            )

        assert exc_info.value.error_code == OAuthError.INVALID_STATE
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_state_for_unknown_configuration(self, provider, store, http):
        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "auth-code", encode_state(uuid4()))

        assert exc_info.value.error_code == OAuthError.INVALID_CONFIGURATION
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_garbage_state(self, provider, store, http):
        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "auth-code", "%%%garbage%%%")

        assert exc_info.value.error_code == OAuthError.INVALID_STATE

    @pytest.mark.asyncio
    async def test_provider_rejects_code(self, provider, store, google_config, http):
        http.post.return_value = json_response(
            400, {"error": "invalid_grant", "error_description": "Bad Request"}
        )

        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "used-code", encode_state(google_config.id))

        assert exc_info.value.error_code == "invalid_grant"
        assert exc_info.value.status_code == 400
        http.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_user_info_failure_fails_callback(self, provider, store, google_config, http):
        http.post.return_value = json_response(200, {"access_token": "ya29.new"})
        http.get.return_value = json_response(401, {"error": "invalid_token"})

        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "auth-code", encode_state(google_config.id))

        assert exc_info.value.error_code == "invalid_token"
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, provider, store, google_config, http):
        http.post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(OAuthError) as exc_info:
            await provider.handle_callback(store, "auth-code", encode_state(google_config.id))

        assert exc_info.value.error_code == OAuthError.TOKEN_EXCHANGE_FAILED
        assert exc_info.value.status_code == 502
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_store_token(self, provider, store):
        config = store.add(make_config(access_token=None, refresh_token=None, expires_at=None))
        before = datetime.now(UTC)

        config = await provider.store_token(
            store,
            config,
            {
                "access_token": "ya29.new",
                "refresh_token": "1//refresh",
                "expires_in": 3600,
                "user_info": {"email": "owner@example.com"},
            },
        )

        assert config.access_token == "ya29.new"
        assert config.refresh_token == "1//refresh"
        assert config.user_email == "owner@example.com"
        assert config.expires_in == 3600
        assert before + timedelta(seconds=3600) <= config.expires_at
        assert config.expires_at <= datetime.now(UTC) + timedelta(seconds=3600)
        assert len(store.update_calls) == 1

    @pytest.mark.asyncio
    async def test_store_token_database_failure(self, provider, store, google_config):
        store.fail_writes = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(OAuthError) as exc_info:
            await provider.store_token(store, google_config, {"access_token": "ya29.new"})

        assert exc_info.value.error_code == "token_store_failed"


class TestGoogleTokenLifecycle:
    """Tests for get_valid_token / refresh_token."""

    @pytest.mark.asyncio
    async def test_fresh_token_is_returned_without_requests(self, provider, store, google_config, http):
        first = await provider.get_valid_token(store, google_config)
        second = await provider.get_valid_token(store, google_config)

        assert first.access_token == "access-old"
        assert second.access_token == "access-old"
        assert http.call_count == 0
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, provider, store, http):
        config = store.add(
            make_config(
                refresh_token=None,
                expires_at=datetime.now(UTC) - timedelta(seconds=1),
            )
        )

        with pytest.raises(OAuthError) as exc_info:
            await provider.get_valid_token(store, config)

        assert exc_info.value.error_code == OAuthError.NO_REFRESH_TOKEN
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_no_access_token(self, provider, store):
        config = store.add(make_config(access_token=None))

        with pytest.raises(OAuthError) as exc_info:
            await provider.get_valid_token(store, config)

        assert exc_info.value.error_code == OAuthError.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed(self, provider, store, http):
        config = store.add(make_config(expires_at=datetime.now(UTC) + timedelta(minutes=2)))
        http.post.return_value = json_response(200, {"access_token": "ya29.fresh", "expires_in": 3600})

        config = await provider.get_valid_token(store, config)

        assert config.access_token == "ya29.fresh"
        assert config.refresh_token == "refresh-old"
        assert config.is_token_expiring_soon() is False
        assert http.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"
        assert http.post.call_args.kwargs["data"]["refresh_token"] == "refresh-old"
        assert "scope" not in http.post.call_args.kwargs["data"]

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, provider, store, http):
        config = store.add(make_config(expires_at=datetime.now(UTC) - timedelta(minutes=1)))
        http.post.return_value = json_response(200, {"access_token": "ya29.fresh", "expires_in": 3600})

        results = await asyncio.gather(
            provider.get_valid_token(store, config),
            provider.get_valid_token(store, config),
            provider.get_valid_token(store, config),
        )

        assert {c.access_token for c in results} == {"ya29.fresh"}
        assert http.post.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_rotates_refresh_token(self, provider, store, google_config, http):
        http.post.return_value = json_response(
            200, {"access_token": "ya29.fresh", "refresh_token": "1//rotated", "expires_in": 1200}
        )

        config = await provider.refresh_token(store, google_config)

        assert config.refresh_token == "1//rotated"
        assert config.expires_in == 1200

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, provider, store, google_config, http):
        http.post.return_value = json_response(
            400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
        )

        with pytest.raises(OAuthError) as exc_info:
            await provider.refresh_token(store, google_config)

        assert exc_info.value.error_code == "invalid_grant"
        assert google_config.access_token == "access-old"
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_refresh_with_non_json_error(self, provider, store, google_config, http):
        http.post.return_value = httpx.Response(503, text="Service Unavailable")

        with pytest.raises(OAuthError) as exc_info:
            await provider.refresh_token(store, google_config)

        assert exc_info.value.error_code == OAuthError.TOKEN_REFRESH_FAILED
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token(self, provider, store, http):
        config = store.add(make_config(refresh_token=None))

        with pytest.raises(OAuthError) as exc_info:
            await provider.refresh_token(store, config)

        assert exc_info.value.error_code == OAuthError.NO_REFRESH_TOKEN
        assert http.call_count == 0


class TestGoogleSendEmail:
    """Tests for send_email via the Gmail API."""

    @pytest.mark.asyncio
    async def test_invalid_recipient_makes_no_request(self, provider, store, google_config, http):
        with pytest.raises(EmailError) as exc_info:
            await provider.send_email(
                store, google_config, {"to": "not-an-email", "subject": "Hi", "content": "Body"}
            )

        assert exc_info.value.error_code == EmailError.INVALID_EMAIL_FORMAT
        assert exc_info.value.field == "to"
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_sends_raw_mime_message(self, provider, store, google_config, http):
        http.post.return_value = json_response(200, {"id": "18c1", "labelIds": ["SENT"]})

        sent = await provider.send_email(
            store,
            google_config,
            {
                "to": "client@example.com",
                "to_name": "Jane Client",
                "subject": "Your appointment",
                "content": "<p>See you soon</p>",
                "cc": "front-desk@example.com",
                "bcc": ["audit@example.com"],
            },
        )

        assert sent is True
        call_args = http.post.call_args
        assert call_args.args[0] == provider.GMAIL_SEND_URL
        assert call_args.kwargs["headers"] == {"Authorization": "Bearer access-old"}

        raw = call_args.kwargs["json"]["raw"]
        message = email.message_from_bytes(base64.urlsafe_b64decode(raw))
        assert message["To"] == "Jane Client <client@example.com>"
        assert message["Subject"] == "Your appointment"
        assert message["Cc"] == "front-desk@example.com"
        assert message["Bcc"] == "audit@example.com"
        assert message.get_content_type() == "text/html"

    @pytest.mark.asyncio
    async def test_plain_text(self, provider, store, google_config, http):
        http.post.return_value = json_response(200, {"id": "18c1"})

        await provider.send_email(
            store,
            google_config,
            {"to": "client@example.com", "subject": "Hi", "content": "Plain", "content_type": "text"},
        )

        raw = http.post.call_args.kwargs["json"]["raw"]
        message = email.message_from_bytes(base64.urlsafe_b64decode(raw))
        assert message.get_content_type() == "text/plain"

    @pytest.mark.asyncio
    async def test_timeout(self, provider, store, google_config, http):
        http.post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(EmailError) as exc_info:
            await provider.send_email(
                store, google_config, {"to": "client@example.com", "subject": "Hi", "content": "Body"}
            )

        assert exc_info.value.error_code == EmailError.SEND_TIMEOUT
        assert exc_info.value.status_code == 408

    @pytest.mark.asyncio
    async def test_rejected_by_gmail(self, provider, store, google_config, http):
        http.post.return_value = json_response(
            403, {"error": {"code": 403, "message": "Insufficient Permission"}}
        )

        with pytest.raises(EmailError) as exc_info:
            await provider.send_email(
                store, google_config, {"to": "client@example.com", "subject": "Hi", "content": "Body"}
            )

        assert exc_info.value.error_code == EmailError.NETWORK_ERROR
        assert "Insufficient Permission" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_refreshes_before_sending(self, provider, store, http):
        config = store.add(make_config(expires_at=datetime.now(UTC) - timedelta(minutes=1)))
        http.post.side_effect = [
            json_response(200, {"access_token": "ya29.fresh", "expires_in": 3600}),
            json_response(200, {"id": "18c1"}),
        ]

        await provider.send_email(
            store, config, {"to": "client@example.com", "subject": "Hi", "content": "Body"}
        )

        assert http.post.await_count == 2
        assert http.post.call_args.kwargs["headers"] == {"Authorization": "Bearer ya29.fresh"}


class TestGoogleRevoke:
    """Tests for revoke_token / validate_token."""

    @pytest.mark.asyncio
    async def test_revoke_clears_tokens(self, provider, store, google_config, http):
        http.post.return_value = httpx.Response(200)

        assert await provider.revoke_token(store, google_config) is True

        assert http.post.call_args.args[0] == provider.REVOKE_URL
        assert http.post.call_args.kwargs["data"] == {"token": "access-old"}
        assert google_config.access_token is None
        assert google_config.refresh_token is None
        assert google_config.expires_at is None
        assert google_config.expires_in == 0

    @pytest.mark.asyncio
    async def test_revoke_rejected_keeps_tokens(self, provider, store, google_config, http):
        http.post.return_value = json_response(400, {"error": "invalid_token"})

        assert await provider.revoke_token(store, google_config) is False
        assert google_config.access_token == "access-old"
        assert store.update_calls == []

    @pytest.mark.asyncio
    async def test_revoke_network_failure(self, provider, store, google_config, http):
        http.post.side_effect = httpx.ConnectError("connection refused")

        assert await provider.revoke_token(store, google_config) is False

    @pytest.mark.asyncio
    async def test_revoke_without_token(self, provider, store, http):
        config = store.add(make_config(access_token=None))

        assert await provider.revoke_token(store, config) is False
        assert http.call_count == 0

    @pytest.mark.asyncio
    async def test_validate_token(self, provider, http):
        http.get.return_value = json_response(200, {"email": "owner@example.com"})
        assert await provider.validate_token("ya29.ok") is True

        http.get.return_value = json_response(401, {"error": "invalid_token"})
        assert await provider.validate_token("ya29.bad") is False

        http.get.side_effect = httpx.ConnectError("down")
        assert await provider.validate_token("ya29.any") is False

    @pytest.mark.asyncio
    async def test_validate_empty_token(self, provider, http):
        assert await provider.validate_token("") is False
        assert http.call_count == 0

    def test_scopes(self, provider):
        assert provider.supports_scope("https://www.googleapis.com/auth/gmail.send")
        assert not provider.supports_scope("Mail.Send")
        assert provider.provider_name == "Google API"
        assert isinstance(provider.get_available_scopes(), list)


