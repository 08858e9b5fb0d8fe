"""
Auth API — admin sign-up, login, token refresh and logout.

Tokens:
  - access token: returned in the body, sent back as `Authorization: Bearer`
  - refresh token: HTTP-only cookie, exchanged at /refresh for a new access token
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from pydantic import EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.config import get_settings
from modloot.core.errors import AuthenticationFailed, Conflict, PermissionDenied
from modloot.middleware.auth import (
    AuthContext,
    clear_refresh_cookie,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    require_user,
    set_refresh_cookie,
    verify_password,
)
from modloot.models.database import get_db
from modloot.models.schemas import CamelModel
from modloot.models.tables import User, utcnow

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupRequest(CamelModel):
    name: Optional[str] = Field(None, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)  # bcrypt input limit


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "roles": {"admin": bool(user.is_admin)},
        "isActive": user.is_active,
        "lastLoginAt": user.last_login_at,
    }


@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, db: AsyncSession = Depends(get_db)):
    email = str(body.email).strip().lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise Conflict("An account with this email already exists")

    user = User(name=body.name, email=email, password_hash=hash_password(body.password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("An account with this email already exists") from None
    await db.refresh(user)

    logger.info("user_signed_up", user_id=str(user.id))
    return {"success": True, "message": "Account created", "data": _user_out(user)}


@router.post("/login")
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    email = str(body.email).strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning("login_failed", email=email)
        raise AuthenticationFailed("Invalid email or password")
    if not user.is_active:
        raise PermissionDenied("Account is disabled")

    access_token = create_access_token(user)
    refresh_token = create_refresh_token(user)
    user.refresh_token = refresh_token
    user.last_login_at = utcnow()
    await db.commit()

    set_refresh_cookie(response, refresh_token)
    logger.info("user_logged_in", user_id=str(user.id))
    return {"success": True, "accessToken": access_token, "user": _user_out(user)}


@router.get("/refresh")
async def refresh(request: Request, db: AsyncSession = Depends(get_db)):
    settings = get_settings()
    token = request.cookies.get(settings.refresh_cookie_name)
    if not token:
        raise AuthenticationFailed("Refresh token required")

    payload = decode_token(token, settings.refresh_token_secret, "refresh")
    try:
        user = await db.get(User, UUID(payload["sub"]))
    except ValueError:
        raise PermissionDenied("Invalid or expired token") from None
    if user is None or not user.is_active or user.refresh_token != token:
        raise PermissionDenied("Invalid or expired token")

    return {"success": True, "accessToken": create_access_token(user), "user": _user_out(user)}


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    token = request.cookies.get(get_settings().refresh_cookie_name)
    if token:
        result = await db.execute(select(User).where(User.refresh_token == token))
        user = result.scalar_one_or_none()
        if user is not None:
            user.refresh_token = None
            await db.commit()
            logger.info("user_logged_out", user_id=str(user.id))
    clear_refresh_cookie(response)
    return {"success": True, "message": "Logged out"}


@router.get("/me")
async def me(auth: AuthContext = Depends(require_user), db: AsyncSession = Depends(get_db)):
    user = await db.get(User, auth.user_id)
    return {"success": True, "data": _user_out(user)}
