# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Response

from shopvault.api.v1.dependencies import (
    RequestGate,
    get_drive_client,
    get_drive_tokens,
    get_session_id,
    read_drive_tokens,
)
from shopvault.core.errors import AuthorizationError, UpstreamError
from shopvault.schemas.drive import TokenCookiePayload
from shopvault.services.crypto import TokenCipher


def _request(cookies: dict[str, str] | None = None) -> MagicMock:
    request = MagicMock()
    request.cookies = cookies or {}
    request.state = SimpleNamespace()
    return request


class TestRequestGate:
    """Test gate construction."""

    def test_unknown_policy_is_rejected(self):
        """A typo in a policy name fails at import time, not per request."""
        with pytest.raises(ValueError):
            RequestGate("bulk")

    def test_policy_lookup(self):
        gate = RequestGate("upload", csrf=False)
        assert gate.policy.max_requests == 5
        assert gate.csrf is False


class TestSessionId:
    """Test the operator session cookie dependency."""

    def test_existing_session_is_reused(self):
        session_id = "a" * 43
        response = Response()
        assert get_session_id(_request({"shopvault_session": session_id}), response) == session_id
        assert "set-cookie" not in response.headers

    def test_missing_session_is_issued(self):
        request = _request()
        response = Response()
        session_id = get_session_id(request, response)

        assert len(session_id) >= 32
        assert request.state.new_session_id == session_id
        assert "httponly" in response.headers["set-cookie"].lower()

    def test_malformed_session_is_replaced(self):
        response = Response()
        session_id = get_session_id(_request({"shopvault_session": "../../etc"}), response)
        assert session_id != "../../etc"


class TestDriveTokens:
    """Test decoding and refreshing the Drive session cookie."""

    def test_unreadable_cookie_reads_as_none(self, cipher: TokenCipher):
        assert read_drive_tokens(_request({"gdrive_session": "garbage"}), cipher) is None

    def test_payload_must_match_schema(self, cipher: TokenCipher):
        cookie = cipher.encrypt_json({"access_token": ["not", "a", "string"]})
        assert read_drive_tokens(_request({"gdrive_session": cookie}), cipher) is None

    async def test_failed_refresh_is_unauthorized(self, cipher: TokenCipher):
        cookie = cipher.encrypt_json({"access_token": "a", "refresh_token": "r", "expiry_date": 1})
        oauth = MagicMock()
        oauth.refresh = AsyncMock(side_effect=UpstreamError("Google authentication service unavailable"))

        with pytest.raises(AuthorizationError, match="expired"):
            await get_drive_tokens(_request({"gdrive_session": cookie}), Response(), cipher, oauth)

    async def test_valid_token_is_not_refreshed(self, cipher: TokenCipher):
        tokens = TokenCookiePayload(access_token="a", refresh_token="r", expiry_date=None)
        oauth = MagicMock()
        oauth.refresh = AsyncMock()

        result = await get_drive_tokens(
            _request({"gdrive_session": cipher.encrypt_json(tokens.model_dump())}),
            Response(),
            cipher,
            oauth,
        )

        assert result == tokens
        oauth.refresh.assert_not_called()

    def test_client_requires_access_token(self):
        tokens = TokenCookiePayload(access_token="", refresh_token="r", expiry_date=None)
        with pytest.raises(AuthorizationError, match="Not authenticated"):
            get_drive_client(tokens, MagicMock())
