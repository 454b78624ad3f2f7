"""
Password hashing and caller resolution.

Passwords are hashed with passlib's bcrypt scheme.  Sessions are opaque
tokens kept by the store; a request carries its token either in the
session cookie or as ``Authorization: Bearer <token>``.  Route handlers
only ever ask the dependencies below who the caller is; how sessions are
issued is kept to ``start_session`` and ``end_session``.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Request, Response
from passlib.context import CryptContext

from .config import Settings
from .errors import ForbiddenError, UnauthenticatedError
from .schemas import User, UserRole
from .storage import IStorage

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    if len(password) > 72:
        password = password[:72]
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if len(plain_password) > 72:
        plain_password = plain_password[:72]
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_storage(request: Request) -> IStorage:
    return request.app.state.storage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_token(request: Request) -> Optional[str]:
    settings = get_settings(request)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def get_current_user(request: Request, storage: IStorage = Depends(get_storage)) -> User:
    """Resolve the caller or raise ``UnauthenticatedError``."""
    token = get_session_token(request)
    if not token:
        raise UnauthenticatedError()
    user_id = storage.get_session_user_id(token)
    if user_id is None:
        raise UnauthenticatedError("Invalid or expired session")
    user = storage.get_user(user_id)
    if user is None:
        storage.delete_session(token)
        raise UnauthenticatedError("User no longer exists")
    return user


def require_role(role: UserRole, detail: str) -> Callable[..., User]:
    """Dependency factory: the caller must be authenticated and have ``role``."""

    def _role_dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise ForbiddenError(detail)
        return current_user

    return _role_dependency


# ============================================================================
# SESSION ISSUANCE
# ============================================================================

def start_session(response: Response, storage: IStorage, settings: Settings, user: User) -> str:
    token = storage.create_session(user.id)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    logger.info("Session opened for user %d", user.id)
    return token


def end_session(request: Request, response: Response, storage: IStorage, settings: Settings) -> None:
    token = get_session_token(request)
    if token:
        storage.delete_session(token)
    response.delete_cookie(settings.session_cookie_name)
