"""
Member management for org admins, scoped by the `x-org-id` header.

GET    /api/v1/users               - Members with their task counts (admin)
POST   /api/v1/users/add-member    - Add an existing user by email (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_admin
from app.core.database import get_session
from app.services import organizations as org_service
from taskmate_shared.schemas.organizations import (
    AddMemberRequest,
    MemberRead,
    MemberWorkloadListResponse,
)

router = APIRouter()


@router.get("", response_model=MemberWorkloadListResponse)
async def list_users(
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    items = await org_service.list_member_workloads(auth.org_id, session)
    return MemberWorkloadListResponse(data=items)


@router.post("/add-member", response_model=MemberRead, status_code=201)
async def add_member(
    body: AddMemberRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Add an already registered user to the org context as a member."""
    member = await org_service.add_member_by_email(auth.org_id, body.email, auth, session)
    await session.commit()
    return member
