from datetime import timedelta

import pytest
from jose import jwt

from coollibrary.auth import (
    AuthError,
    RegistrationError,
    authenticate,
    create_access_token,
    decode_access_token,
    hash_password,
    register_user,
    verify_password,
)
from coollibrary.config import settings
from coollibrary.models import User, utc_now


def test_password_hash_roundtrip():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("battery staple", hashed)


def test_verify_password_with_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_token_claims():
    user = User(email="reader@example.com", password_hash="x", user_id=7, roles=["Librarian"])
    token, expires_at = create_access_token(user)

    claims = decode_access_token(token)

    assert claims["sub"] == "7"
    assert claims["email"] == "reader@example.com"
    assert claims["roles"] == ["Librarian"]
    assert claims["iss"] == "CoolLibrary"
    assert claims["aud"] == "CoolLibraryUsers"
    assert claims["jti"]
    assert claims["exp"] == int(expires_at.timestamp())


def test_token_expires_after_configured_minutes():
    user = User(email="reader@example.com", password_hash="x", user_id=1)
    now = utc_now()
    _, expires_at = create_access_token(user, now=now)
    assert expires_at - now == timedelta(minutes=settings.jwt_expiration_minutes)


def test_expired_token_rejected():
    user = User(email="reader@example.com", password_hash="x", user_id=1)
    token, _ = create_access_token(user, now=utc_now() - timedelta(hours=3))
    with pytest.raises(AuthError):
        decode_access_token(token)


def test_token_with_wrong_audience_rejected():
    claims = {"sub": "1", "iss": settings.jwt_issuer, "aud": "SomeoneElse"}
    token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    with pytest.raises(AuthError):
        decode_access_token(token)


def test_token_signed_with_other_key_rejected():
    claims = {"sub": "1", "iss": settings.jwt_issuer, "aud": settings.jwt_audience}
    token = jwt.encode(claims, "another-secret", algorithm=settings.jwt_algorithm)
    with pytest.raises(AuthError):
        decode_access_token(token)


def test_register_and_authenticate(conn):
    user = register_user(conn, "Reader@Example.com", "pass1234")
    assert user.user_id is not None

    logged_in = authenticate(conn, "reader@example.com", "pass1234")
    assert logged_in.user_id == user.user_id


def test_register_duplicate(conn):
    register_user(conn, "reader@example.com", "pass1234")
    with pytest.raises(RegistrationError, match="already exists"):
        register_user(conn, "READER@example.com", "other123")


def test_authenticate_failures(conn):
    register_user(conn, "reader@example.com", "pass1234")
    with pytest.raises(AuthError, match="Invalid email or password"):
        authenticate(conn, "reader@example.com", "wrong")
    with pytest.raises(AuthError, match="Invalid email or password"):
        authenticate(conn, "nobody@example.com", "pass1234")
