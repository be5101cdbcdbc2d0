"""
Authentication utilities: password hashing and signed session tokens.
"""
import secrets
from datetime import timedelta
import bcrypt
import jwt

from panodesk.core import config
from panodesk.core.errors import AuthenticationError
from panodesk.utils import utcnow

ALGORITHM = "HS256"


def hash_password(raw_password: str) -> str:
    """Hash a plaintext password with bcrypt."""
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(raw_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(raw_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def generate_token() -> str:
    """Opaque, URL-safe single-use token (invitations, email links)."""
    return secrets.token_urlsafe(32)


def create_session_token(user_id: str) -> str:
    """
    Create the signed token stored in the session cookie.

    Only the user id is carried; the role is re-read from the database on
    every request so demotions take effect immediately.
    """
    now = utcnow()
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(hours=config.SESSION_TTL_HOURS),
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=ALGORITHM)


def verify_session_token(token: str) -> dict:
    """
    Verify a session token and return its payload.

    Raises:
        AuthenticationError: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid session")
