"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    password_hash: Optional[str] = Field(default=None)  # absent for externally authenticated users
    profile_image_url: Optional[str] = None
    # Platform-wide superuser. Organization roles live on UserOrg.
    is_superuser: bool = Field(default=False, nullable=False)
    google_access_token: Optional[str] = None
    google_refresh_token: Optional[str] = None
    google_token_expiry: Optional[datetime] = Field(default=None, sa_type=sa.DateTime())
