"""Tests for JWT token management."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from vidtube.auth.jwt import (
    _load_keys,
    create_access_token,
    create_refresh_token,
    issue_token_pair,
    verify_token,
)
from vidtube.config import get_settings


class TestAccessToken:
    def test_create_and_verify(self):
        token = create_access_token(user_id="u-1", username="alice")
        payload = verify_token(token, expected_type="access")
        assert payload["sub"] == "u-1"
        assert payload["username"] == "alice"
        assert payload["type"] == "access"
        assert payload["iss"] == "vidtube"

    def test_wrong_type_rejected(self):
        token = create_refresh_token(user_id="u-1")
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            verify_token(token, expected_type="access")

    def test_expired_token_rejected(self):
        private_key, _ = _load_keys()
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "u-1", "iat": past, "exp": past + timedelta(minutes=1), "iss": "vidtube", "type": "access"},
            private_key,
            algorithm="RS256",
        )
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            verify_token(token, expected_type="access")

    def test_missing_type_claim_rejected(self):
        private_key, _ = _load_keys()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "u-1", "iat": now, "exp": now + timedelta(minutes=5), "iss": "vidtube"},
            private_key,
            algorithm="RS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token, expected_type="access")

    def test_foreign_issuer_rejected(self):
        private_key, _ = _load_keys()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "u-1", "iat": now, "exp": now + timedelta(minutes=5), "iss": "someone-else", "type": "access"},
            private_key,
            algorithm="RS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token, expected_type="access")

    def test_tampered_token_rejected(self):
        token = create_access_token(user_id="u-1", username="alice")
        header, payload, signature = token.split(".")
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(f"{header}.{payload}.{signature[::-1]}", expected_type="access")

    def test_garbage_rejected(self):
        with pytest.raises(jwt.InvalidTokenError):
            verify_token("not.a.jwt", expected_type="access")


class TestRefreshToken:
    def test_create_includes_jti(self):
        token = create_refresh_token(user_id="u-1", token_id="abc-123")
        payload = verify_token(token, expected_type="refresh")
        assert payload["jti"] == "abc-123"
        assert payload["type"] == "refresh"

    def test_refresh_lifetime(self):
        payload = verify_token(create_refresh_token(user_id="u-1"), expected_type="refresh")
        days = get_settings().jwt_refresh_token_expire_days
        assert payload["exp"] - payload["iat"] == days * 86400

    def test_each_issuance_is_distinct(self):
        first = issue_token_pair("u-1", "alice")
        second = issue_token_pair("u-1", "alice")
        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token
