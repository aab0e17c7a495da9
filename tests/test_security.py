"""
Unit tests for the access gate
"""
from datetime import timedelta

import pytest
from jose import jwt

import config
from errors import AuthError
from security import (
    create_access_token,
    decode_token,
    get_password_hash,
    token_for_user,
    verify_password,
)


class TestPasswordHashing:
    """Test password hashing functions"""

    def test_password_hash_is_different(self):
        password = "mysecretpassword"
        hashed = get_password_hash(password)
        assert hashed != password
        assert len(hashed) > 0

    def test_verify_correct_password(self):
        hashed = get_password_hash("mysecretpassword")
        assert verify_password("mysecretpassword", hashed) is True

    def test_verify_wrong_password(self):
        hashed = get_password_hash("mysecretpassword")
        assert verify_password("wrongpassword", hashed) is False

    def test_empty_hash_never_verifies(self):
        assert verify_password("anything", "") is False


class TestTokens:
    """Test JWT issuance and verification"""

    def test_token_carries_id_and_role(self):
        token = token_for_user({"_id": "665f1c2e8a1b2c3d4e5f6a7b", "role": "ngo"})
        user = decode_token(token)
        assert user.id == "665f1c2e8a1b2c3d4e5f6a7b"
        assert user.role == "ngo"

    def test_expired_token(self):
        token = create_access_token({"sub": "u1", "role": "volunteer"}, expires_delta=timedelta(seconds=-10))
        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.code == "TOKEN_EXPIRED"

    def test_tampered_token(self):
        token = create_access_token({"sub": "u1", "role": "volunteer"})
        with pytest.raises(AuthError) as exc:
            decode_token(token[:-4] + "abcd")
        assert exc.value.code == "TOKEN_INVALID"

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "u1", "role": "admin"}, "some-other-secret", algorithm=config.ALGORITHM)
        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.code == "TOKEN_INVALID"

    def test_token_without_role(self):
        token = create_access_token({"sub": "u1"})
        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.code == "TOKEN_INVALID"

    def test_garbage_token(self):
        with pytest.raises(AuthError):
            decode_token("not.a.jwt")
