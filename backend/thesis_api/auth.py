"""Authentication helpers and FastAPI security dependencies.

This module issues and verifies JWT access/refresh tokens, provides the
`get_current_user` dependency that resolves a bearer token to an active
`User`, and the `require(capability)` dependency factory used by every
protected route.

Verification failures raise typed application errors so they can be used
directly inside route dependencies.
"""

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import Settings
from .database import get_session
from .dependencies import get_settings
from .errors import AuthenticationError, ForbiddenError
from .permissions import Capability, has_capability

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


def create_access_token(user: models.User, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user.id,
        "email": user.email,
        "role": models.Role(user.role).value,
        "type": ACCESS,
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user: models.User, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    payload = {"user_id": user.id, "type": REFRESH, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_REFRESH_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, secret: str, algorithm: str, expected_type: str) -> dict:
    """Decode and verify a JWT token of the expected type.

    Returns the decoded payload on success or raises `AuthenticationError`.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("invalid token")
    if payload.get("type") != expected_type or not payload.get("user_id"):
        raise AuthenticationError("invalid token payload")
    return payload


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The function extracts the bearer token from the request, decodes it
    and loads the `User` through the request's session. Missing or bad
    tokens give 401, deactivated accounts 403.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("missing bearer token")
    payload = decode_token(credentials.credentials, settings.JWT_SECRET, settings.JWT_ALGORITHM, ACCESS)
    user = repositories.UserRepository(session).get(payload["user_id"])
    if not user:
        raise AuthenticationError("user not found")
    if not user.is_active:
        raise ForbiddenError("account disabled")
    return user


def require(capability: Capability):
    """Dependency factory: the current user must hold `capability`."""
    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if not has_capability(user.role, capability):
            raise ForbiddenError("not allowed")
        return user
    return _dependency
