"""Unit tests for password hashing and tokens."""
from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from quickroom.auth import (
    authenticate_user,
    create_access_token,
    decode_token,
    get_password_hash,
    token_for,
    verify_password,
)
from quickroom.config import get_settings
from tests.helpers import PASSWORD


class TestPasswordHashing:
    """Test password hashing helpers."""

    def test_password_hash_and_verify(self):
        """Test a hash verifies only its own password."""
        hashed = get_password_hash("MySecurePassword123!")

        assert hashed != "MySecurePassword123!"
        assert verify_password("MySecurePassword123!", hashed) is True
        assert verify_password("WrongPassword", hashed) is False

    def test_same_password_different_hashes(self):
        """Salted hashes differ for the same input."""
        assert get_password_hash("TestPassword123") != get_password_hash("TestPassword123")


class TestTokens:
    """Test JWT issue and decode."""

    def test_token_subject_is_user_id(self, student):
        """Test the token subject carries the user id and role."""
        settings = get_settings()
        decoded = jwt.decode(token_for(student), settings.jwt_secret, algorithms=[settings.jwt_algorithm])

        assert decoded["sub"] == str(student.id)
        assert decoded["role"] == "student"

    def test_expired_token_rejected(self):
        """Test an expired token is refused with 401."""
        token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(HTTPException) as excinfo:
            decode_token(token)
        assert excinfo.value.status_code == 401

    def test_garbage_token_rejected(self):
        """Test a malformed token is refused with 401."""
        with pytest.raises(HTTPException):
            decode_token("not-a-token")


class TestAuthenticateUser:
    """Test credential lookup."""

    def test_username_or_email(self, db_session, student):
        """Test login accepts either the username or the email."""
        assert authenticate_user(db_session, "alice", PASSWORD).id == student.id
        assert authenticate_user(db_session, "alice@example.com", PASSWORD).id == student.id

    def test_bad_password(self, db_session, student):
        """Test a wrong password yields no user."""
        assert authenticate_user(db_session, "alice", "wrong") is None
