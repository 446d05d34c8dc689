"""User and authentication schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import EmailStr, Field

from .common import CamelModel, Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str
    profile_image_url: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    profile_image_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MembershipRead(CamelModel):
    org_id: uuid.UUID
    role: Role


class UserRead(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    profile_image_url: Optional[str] = None
    is_superuser: bool = False
    memberships: List[MembershipRead] = Field(default_factory=list)
    calendar_connected: bool = False
    created_at: datetime


class AuthResponse(CamelModel):
    user: UserRead
    token: str
    needs_onboarding: bool = False


class AuthUrlResponse(CamelModel):
    auth_url: str
