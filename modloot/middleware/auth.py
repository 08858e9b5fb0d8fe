"""
JWT authentication.

Admin users sign in with email + password and get:
  - an access token (Bearer, short-lived) carrying {sub, email, admin}
  - a refresh token (long-lived) in an HTTP-only, secure, cross-site cookie

Key rules:
  - No token → 401; a token that fails to verify or is expired → 403
  - Admin endpoints additionally require users.is_admin
  - The refresh token is stored on the user row; logout clears it
"""

import datetime
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.config import get_settings
from modloot.core.errors import AuthenticationFailed, PermissionDenied
from modloot.models.database import get_db
from modloot.models.tables import User, utcnow

import structlog

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Passwords ─────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# ─── Tokens ────────────────────────────────────────────────────────

def create_access_token(user: User) -> str:
    settings = get_settings()
    expires = utcnow() + datetime.timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "admin": bool(user.is_admin),
        "type": "access",
        "exp": expires,
    }
    return jwt.encode(payload, settings.access_token_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user: User) -> str:
    settings = get_settings()
    expires = utcnow() + datetime.timedelta(days=settings.refresh_token_expire_days)
    payload = {"sub": str(user.id), "type": "refresh", "exp": expires}
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, secret: str, expected_type: str) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise PermissionDenied("Invalid or expired token") from None
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise PermissionDenied("Invalid or expired token")
    return payload


def set_refresh_cookie(response: Response, token: str):
    settings = get_settings()
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=True,
        samesite="none",
    )


def clear_refresh_cookie(response: Response):
    response.delete_cookie(
        key=get_settings().refresh_cookie_name,
        httponly=True,
        secure=True,
        samesite="none",
    )


# ─── Dependencies ──────────────────────────────────────────────────

@dataclass
class AuthContext:
    user_id: UUID
    email: str
    is_admin: bool


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed("Authorization token required")

    payload = decode_token(credentials.credentials, get_settings().access_token_secret, "access")
    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise PermissionDenied("Invalid or expired token") from None

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("auth_unknown_or_inactive_user", user_id=str(user_id))
        raise AuthenticationFailed("User not found or inactive")

    return AuthContext(user_id=user.id, email=user.email, is_admin=bool(user.is_admin))


async def require_admin(auth: AuthContext = Depends(require_user)) -> AuthContext:
    if not auth.is_admin:
        logger.warning("auth_admin_required", user_id=str(auth.user_id))
        raise PermissionDenied("Admin access required")
    return auth
