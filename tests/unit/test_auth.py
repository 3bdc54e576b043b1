"""Unit tests for authentication functions."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from roomhub.auth import create_access_token, decode_token, get_password_hash, verify_password
from roomhub.config import get_settings


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_password_hash_and_verify(self):
        """Test that password can be hashed and verified."""
        password = "MySecurePassword123!"
        hashed = get_password_hash(password)

        assert hashed != password
        assert verify_password(password, hashed) is True
        assert verify_password("WrongPassword", hashed) is False

    def test_same_password_different_hashes(self):
        """Test that the same password generates different hashes (salt)."""
        hash1 = get_password_hash("TestPassword123")
        hash2 = get_password_hash("TestPassword123")

        assert hash1 != hash2


class TestJWTTokens:
    """Test JWT token creation and decoding."""

    def test_create_access_token(self):
        settings = get_settings()
        token = create_access_token({"sub": "testuser", "role": "admin", "uid": 1})

        decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        assert decoded["sub"] == "testuser"
        assert decoded["role"] == "admin"
        assert decoded["exp"] > datetime.now(timezone.utc).timestamp()

    def test_decode_token_valid(self):
        token = create_access_token({"sub": "testuser", "role": "user"}, timedelta(minutes=30))

        assert decode_token(token)["role"] == "user"

    def test_decode_token_invalid(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token("invalid.token.here")

        assert exc_info.value.status_code == 401

    def test_decode_token_expired(self):
        """Tokens that expired an hour ago are rejected."""
        token = create_access_token({"sub": "testuser"}, timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401
