"""
User service: registration, credential checks, profile, calendar tokens.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password, load_memberships, verify_password
from app.core.config import get_settings
from app.core.errors import NotAuthenticated, ValidationError
from app.models.base import utcnow
from app.models.user import User
from taskmate_shared.schemas.users import (
    MembershipRead,
    ProfileUpdateRequest,
    RegisterRequest,
    UserRead,
)

log = structlog.get_logger()


def _check_password(password: str) -> None:
    minimum = get_settings().min_password_length
    if len(password) < minimum:
        raise ValidationError(f"Password must be at least {minimum} characters")


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def build_user_read(user: User, session: AsyncSession) -> UserRead:
    memberships = await load_memberships(session, user.id)
    return UserRead(
        id=user.id,
        name=user.name,
        email=user.email,
        profile_image_url=user.profile_image_url,
        is_superuser=user.is_superuser,
        memberships=[MembershipRead(org_id=m.org_id, role=m.role) for m in memberships],
        calendar_connected=user.google_refresh_token is not None,
        created_at=user.created_at,
    )


async def register_user(req: RegisterRequest, session: AsyncSession) -> User:
    _check_password(req.password)
    if await get_user_by_email(req.email, session):
        raise ValidationError("User already exists")

    user = User(
        name=req.name,
        email=req.email.lower(),
        password_hash=hash_password(req.password),
        profile_image_url=req.profile_image_url,
    )
    session.add(user)
    await session.flush()
    log.info("user.registered", user_id=str(user.id))
    return user


async def authenticate(email: str, password: str, session: AsyncSession) -> User:
    user = await get_user_by_email(email, session)
    if not user or not user.password_hash or not verify_password(password, user.password_hash):
        log.warning("user.login_failed", email=email)
        raise NotAuthenticated("Invalid email or password")
    log.info("user.logged_in", user_id=str(user.id))
    return user


async def update_profile(
    user: User, req: ProfileUpdateRequest, session: AsyncSession
) -> User:
    data = req.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in data:
        email = data.pop("email").lower()
        if email != user.email:
            existing = await get_user_by_email(email, session)
            if existing and existing.id != user.id:
                raise ValidationError("Email is already in use")
            user.email = email

    if "password" in data:
        password = data.pop("password")
        _check_password(password)
        user.password_hash = hash_password(password)

    for key, value in data.items():
        setattr(user, key, value)

    session.add(user)
    await session.flush()
    log.info("user.profile_updated", user_id=str(user.id))
    return user


async def store_google_tokens(
    user_id: uuid.UUID, tokens: dict, session: AsyncSession
) -> User:
    """Persist tokens from a Google OAuth exchange or refresh.

    Google only returns a refresh token on first consent; an existing one is
    kept when the response omits it.
    """
    user = await session.get(User, user_id)
    if not user:
        raise ValidationError("Unknown user in OAuth state")

    user.google_access_token = tokens.get("access_token")
    if tokens.get("refresh_token"):
        user.google_refresh_token = tokens["refresh_token"]
    expires_in = tokens.get("expires_in")
    user.google_token_expiry = (
        utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
    )
    session.add(user)
    await session.flush()
    log.info("user.calendar_connected", user_id=str(user.id))
    return user
