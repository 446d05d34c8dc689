"""Organization and join-request models."""

from datetime import datetime
import secrets
from typing import List
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


def generate_invite_slug() -> str:
    return secrets.token_hex(8)


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    invite_slug: str = Field(
        default_factory=generate_invite_slug, unique=True, nullable=False, index=True
    )
    # Denormalized copy of users_orgs for quick lookups (user ids as strings).
    member_ids: List[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)


class JoinRequest(SQLModel, table=True):
    __tablename__ = "join_requests"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    requested_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=sa.DateTime())
