import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from coollibrary.config import settings
from coollibrary.models import User, utc_now
from coollibrary.repositories import UsersRepository

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised for invalid credentials or tokens."""
    pass


class RegistrationError(ValueError):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash stored for this account
        return False


def token_expiration(now: Optional[datetime] = None) -> datetime:
    now = now or utc_now()
    return now + timedelta(minutes=settings.jwt_expiration_minutes)


def create_access_token(user: User, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Sign a JWT for ``user``; returns the token and its expiry."""
    now = now or utc_now()
    expires_at = token_expiration(now)
    claims: Dict[str, Any] = {
        "sub": str(user.user_id),
        "email": user.email,
        "jti": uuid.uuid4().hex,
        "roles": list(user.roles),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, expires_at


def decode_access_token(token: str) -> Dict[str, Any]:
    """Validate signature, expiry, issuer and audience; return the claims."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        raise AuthError("Could not validate credentials") from e
    if not claims.get("sub"):
        raise AuthError("Could not validate credentials")
    return claims


def register_user(conn: sqlite3.Connection, email: str, password: str, roles: Optional[List[str]] = None) -> User:
    users = UsersRepository(conn)
    if users.get_by_email(email) is not None:
        raise RegistrationError("User with this email already exists")
    try:
        user = users.insert(User(email=email, password_hash=hash_password(password), roles=roles or []))
    except ValueError as e:
        raise RegistrationError(str(e)) from e
    logger.info("New user registered: %s", user.email)
    return user


def authenticate(conn: sqlite3.Connection, email: str, password: str) -> User:
    user = UsersRepository(conn).get_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login attempt for user: %s", email)
        raise AuthError("Invalid email or password")
    logger.info("User logged in successfully: %s", user.email)
    return user
