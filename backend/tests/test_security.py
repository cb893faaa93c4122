"""
Test suite for JWT access token handling.

Covers token creation, decoding, expiry and the extraction of the user id
that the API dependencies rely on.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from jose import jwt

from makoexpress.core.security import (
    TokenError,
    create_access_token,
    decode_token,
    get_token_user_id,
    settings,
)


def encode(claims: dict[str, Any], key: Optional[str] = None) -> str:
    return jwt.encode(claims, key or settings.secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


# ============================================================================
# Token Creation
# ============================================================================


class TestCreateAccessToken:
    def test_token_carries_claims(self, user_id):
        token = create_access_token({"sub": str(user_id), "role": "driver"})

        payload = decode_token(token)

        assert payload["sub"] == str(user_id)
        assert payload["role"] == "driver"
        assert payload["type"] == "access"
        assert payload["exp"] > payload["iat"]

    def test_custom_expiry(self, user_id):
        token = create_access_token({"sub": str(user_id)}, expires_delta=timedelta(minutes=5))

        payload = decode_token(token)

        assert payload["exp"] - payload["iat"] == 300

    def test_input_is_not_mutated(self, user_id):
        claims = {"sub": str(user_id)}

        create_access_token(claims)

        assert claims == {"sub": str(user_id)}


# ============================================================================
# Token Decoding
# ============================================================================


class TestDecodeToken:
    def test_empty_token(self):
        with pytest.raises(TokenError) as exc_info:
            decode_token("")

        assert exc_info.value.code == "EMPTY_TOKEN"

    def test_expired_token(self, user_id):
        now = datetime.now(timezone.utc)
        token = encode(
            {
                "sub": str(user_id),
                "type": "access",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
            }
        )

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_wrong_signing_key(self, user_id):
        token = encode(
            {"sub": str(user_id), "type": "access", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            key="another-secret-key-of-sufficient-length",
        )

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_garbage(self):
        with pytest.raises(TokenError) as exc_info:
            decode_token("not.a.token")

        assert exc_info.value.code == "TOKEN_INVALID"

    def test_wrong_token_type(self, user_id):
        token = encode(
            {"sub": str(user_id), "type": "refresh", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        )

        with pytest.raises(TokenError) as exc_info:
            decode_token(token)

        assert exc_info.value.code == "TOKEN_TYPE_INVALID"


class TestGetTokenUserId:
    def test_returns_uuid(self, user_id):
        assert get_token_user_id(create_access_token({"sub": str(user_id)})) == user_id

    def test_missing_subject(self):
        with pytest.raises(TokenError) as exc_info:
            get_token_user_id(create_access_token({"role": "customer"}))

        assert exc_info.value.code == "TOKEN_NO_SUBJECT"

    def test_subject_not_a_uuid(self):
        with pytest.raises(TokenError) as exc_info:
            get_token_user_id(create_access_token({"sub": "user@example.com"}))

        assert exc_info.value.code == "TOKEN_BAD_SUBJECT"
