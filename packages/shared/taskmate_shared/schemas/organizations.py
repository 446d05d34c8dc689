"""
Organization-related Pydantic schemas.

Covers: org creation, invite links, join requests, membership listings.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List

from pydantic import EmailStr, Field

from .common import CamelModel, Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")


class AddMemberRequest(CamelModel):
    email: EmailStr


class ApproveJoinRequest(CamelModel):
    user_id_to_approve: uuid.UUID


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(CamelModel):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    invite_slug: str
    member_ids: List[uuid.UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(CamelModel):
    id: uuid.UUID
    name: str
    role: Role  # the requesting user's role in this org


class OrgListResponse(CamelModel):
    data: List[OrgListItem]


class InviteLinkResponse(CamelModel):
    invite_link: str
    invite_slug: str


class JoinRequestRead(CamelModel):
    user_id: uuid.UUID
    name: str
    email: str
    requested_at: datetime


class JoinRequestListResponse(CamelModel):
    data: List[JoinRequestRead]


class MemberRead(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    profile_image_url: str | None = None
    role: Role


class MemberListResponse(CamelModel):
    data: List[MemberRead]


class MemberWorkload(MemberRead):
    """A member with counts of the tasks assigned to them in the org."""

    pending_tasks: int = 0
    in_progress_tasks: int = 0
    in_review_tasks: int = 0
    completed_tasks: int = 0


class MemberWorkloadListResponse(CamelModel):
    data: List[MemberWorkload]


class SwitchOrgResponse(CamelModel):
    message: str
    org: OrgListItem
