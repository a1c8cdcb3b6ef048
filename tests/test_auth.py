"""Tests for bearer token authentication."""

import time

import pytest
from jose import jwt

from copilot_api.auth import (
    TokenPayload,
    TokenSessionCache,
    authenticate_token,
    create_access_token,
    decode_access_token,
    get_session_cache,
)
from copilot_api.errors import AuthError, ErrorCode


def _payload(role: str = "recruiter") -> TokenPayload:
    return TokenPayload(user_id="u-42", email="r@example.com", role=role)


class TestTokens:
    def test_round_trip_claims(self) -> None:
        token = create_access_token(_payload())
        payload = decode_access_token(token)

        assert payload.user_id == "u-42"
        assert payload.email == "r@example.com"
        assert payload.role == "recruiter"

    def test_claims_use_camel_case(self) -> None:
        token = create_access_token(_payload())
        claims = jwt.get_unverified_claims(token)
        assert claims["userId"] == "u-42"
        assert "exp" in claims

    def test_expired_token(self) -> None:
        token = create_access_token(_payload(), expires_minutes=-1)

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.code == ErrorCode.TOKEN_EXPIRED
        assert exc_info.value.message == "Token expired"

    def test_wrong_secret(self) -> None:
        token = jwt.encode({"userId": "u", "email": "e", "role": "admin"}, "other", "HS256")

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert exc_info.value.message == "Invalid token"

    def test_missing_claims(self) -> None:
        token = jwt.encode({"userId": "u"}, "test-secret", "HS256")

        with pytest.raises(AuthError, match="Invalid token"):
            decode_access_token(token)

    def test_unknown_role_rejected(self) -> None:
        token = jwt.encode(
            {"userId": "u", "email": "e", "role": "superuser"}, "test-secret", "HS256"
        )

        with pytest.raises(AuthError):
            decode_access_token(token)


class TestSessionCache:
    def test_authenticate_caches_claims(self) -> None:
        token = create_access_token(_payload())

        first = authenticate_token(token)
        second = authenticate_token(token)

        assert first is second
        assert get_session_cache().count() == 1

    def test_invalid_token_not_cached(self) -> None:
        with pytest.raises(AuthError):
            authenticate_token("not-a-jwt")
        assert get_session_cache().count() == 0

    def test_entry_expires_with_token(self) -> None:
        clock = [1_000.0]
        cache = TokenSessionCache(ttl_seconds=1800, timer=lambda: clock[0])
        payload = TokenPayload(user_id="u", email="e", role="candidate", exp=1_010)

        cache.set("token", payload)
        assert cache.get("token") is payload

        clock[0] = 1_010.0
        assert cache.get("token") is None

    def test_entry_expires_with_ttl_before_token(self) -> None:
        clock = [1_000.0]
        cache = TokenSessionCache(ttl_seconds=5, timer=lambda: clock[0])
        cache.set("token", TokenPayload(user_id="u", email="e", role="candidate", exp=5_000))

        clock[0] = 1_005.0
        assert cache.get("token") is None

    def test_cached_token_rejected_after_expiry(self) -> None:
        token = jwt.encode(
            {"userId": "u", "email": "e", "role": "candidate", "exp": int(time.time()) + 1},
            "test-secret",
            "HS256",
        )
        assert authenticate_token(token).user_id == "u"

        time.sleep(2.1)

        with pytest.raises(AuthError) as exc_info:
            authenticate_token(token)
        assert exc_info.value.code == ErrorCode.TOKEN_EXPIRED
