"""
Authentication and request-scoped identity for TaskMate.

Supports:
- Password hashing (bcrypt)
- Bearer JWT issue/verification
- Actor resolution with all organization memberships
- Organization context from the `x-org-id` header
- Role-based authorization dependencies
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import (
    Forbidden,
    MissingOrgContext,
    NotAuthenticated,
    NotFound,
    ValidationError,
)
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg
from taskmate_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_access_token(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
    purpose: str = "access",
    extra: dict | None = None,
) -> str:
    """Create a signed JWT for a user."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "purpose": purpose,
        "iat": now,
        "exp": exp,
        **(extra or {}),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, *, purpose: str = "access") -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    if payload.get("purpose") != purpose:
        raise jwt.InvalidTokenError(f"Token is not valid for '{purpose}'")
    return payload


# ---------------------------------------------------------------------------
# Authenticated actor
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated user, their memberships and org context."""

    def __init__(
        self,
        user: User,
        memberships: Iterable[UserOrg],
        org: Optional[Organization] = None,
    ):
        self.user = user
        self.user_id = user.id
        self.memberships: dict[uuid.UUID, str] = {m.org_id: m.role for m in memberships}
        self.org = org
        self.org_id = org.id if org else None

    @property
    def is_superuser(self) -> bool:
        return bool(self.user.is_superuser)

    @property
    def role(self) -> Optional[str]:
        """Role in the current org context."""
        return self.role_in(self.org_id) if self.org_id else None

    def role_in(self, org_id: uuid.UUID) -> Optional[str]:
        return self.memberships.get(org_id)

    def is_member_of(self, org_id: uuid.UUID) -> bool:
        return org_id in self.memberships

    def is_admin_of(self, org_id: uuid.UUID) -> bool:
        return self.memberships.get(org_id) == Role.ADMIN.value


async def load_memberships(session: AsyncSession, user_id: uuid.UUID) -> list[UserOrg]:
    result = await session.execute(
        select(UserOrg).where(UserOrg.user_id == user_id).order_by(UserOrg.joined_at)
    )
    return list(result.scalars().all())


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the bearer token to a User."""
    if credentials is None or not credentials.credentials:
        raise NotAuthenticated("Not authorized, no token")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise NotAuthenticated("Invalid or expired token")

    user = await session.get(User, user_id)
    if not user:
        raise NotAuthenticated("User not found")
    return user


async def get_current_actor(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Authenticated user without an org context (org-less routes)."""
    memberships = await load_memberships(session, user.id)
    return AuthenticatedUser(user=user, memberships=memberships)


def parse_org_id(raw: Optional[str]) -> uuid.UUID:
    if not raw:
        raise MissingOrgContext()
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError("x-org-id must be an organization id")


async def get_org_context(
    x_org_id: Optional[str] = Header(default=None),
) -> uuid.UUID:
    """Organization context from the `x-org-id` header."""
    return parse_org_id(x_org_id)


async def get_authenticated_user(
    user: User = Depends(get_current_user),
    org_id: uuid.UUID = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Main org-scoped dependency: the caller must be a member of the org context."""
    org = await session.get(Organization, org_id)
    if not org:
        raise NotFound("Organization not found")

    memberships = await load_memberships(session, user.id)
    auth = AuthenticatedUser(user=user, memberships=memberships, org=org)
    if not auth.is_member_of(org_id):
        log.warning("auth.org_access_denied", user_id=str(user.id), org_id=str(org_id))
        raise Forbidden("You are not a member of this organization")

    structlog.contextvars.bind_contextvars(user_id=str(user.id), org_id=str(org_id))
    return auth


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any org member can access this endpoint."""
    return auth


async def require_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Requires the admin role in the org context."""
    if auth.role != Role.ADMIN.value:
        raise Forbidden("Access denied, admin only")
    return auth
