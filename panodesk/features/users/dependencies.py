"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core import config
from panodesk.core.database.engine import get_db
from panodesk.core.errors import AuthenticationError, AccessDenied
from panodesk.features.users.models import User
from panodesk.features.users.auth import verify_session_token


security = HTTPBearer(auto_error=False)


def get_session_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Session cookie first, ``Authorization: Bearer`` as a fallback for API clients."""
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise AuthenticationError()
    return token


async def get_current_user(
    token: Annotated[str, Depends(get_session_token)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from the session token.

    This dependency:
    1. Extracts the token from the session cookie (or Authorization header)
    2. Verifies its signature and expiry
    3. Loads the user so the role is always the stored one

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    payload = verify_session_token(token)
    user_id = payload.get("sub")

    if not user_id:
        raise AuthenticationError("Invalid session")

    user = await db.scalar(select(User).where(User.id == user_id))

    if user is None:
        raise AuthenticationError("Invalid session")

    if not user.is_active:
        raise AccessDenied("User account is deactivated")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_rate_limit_key(request: Request) -> str:
    """
    Key for the slowapi limiter: the session if there is one, else the client address.
    """
    session = request.cookies.get(config.SESSION_COOKIE_NAME)
    if session:
        return session
    auth = request.headers.get("Authorization", "")
    if auth:
        return auth
    return request.client.host if request.client else "anonymous"
