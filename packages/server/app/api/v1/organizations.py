"""
Organization API endpoints.

GET    /api/v1/orgs                          - List orgs for the caller, with role
POST   /api/v1/orgs                          - Create an org (caller becomes admin)
POST   /api/v1/orgs/join/{inviteSlug}        - Request to join via invite link
GET    /api/v1/orgs/{orgId}/invite-link      - Invite link (admin of that org)
GET    /api/v1/orgs/{orgId}/join-requests    - Pending join requests (admin)
POST   /api/v1/orgs/{orgId}/approve          - Approve a join request (admin)
GET    /api/v1/orgs/{orgId}/members          - Members with roles (any member)
GET    /api/v1/orgs/switch/{orgId}           - Validate a context switch
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_actor
from app.core.database import get_session
from app.services import organizations as org_service
from taskmate_shared.schemas.common import MessageResponse
from taskmate_shared.schemas.organizations import (
    ApproveJoinRequest,
    InviteLinkResponse,
    JoinRequestListResponse,
    MemberListResponse,
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
    SwitchOrgResponse,
)

router = APIRouter()


@router.get("", response_model=OrgListResponse)
async def list_orgs(
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    items = await org_service.list_user_orgs(actor.user_id, session)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its admin."""
    org = await org_service.create_org(body, actor.user_id, session)
    await session.commit()
    await session.refresh(org)
    return OrgResponse.model_validate(org)


@router.post("/join/{invite_slug}", response_model=MessageResponse)
async def join_org(
    invite_slug: str,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.request_to_join(invite_slug, actor, session)
    await session.commit()
    return MessageResponse(message=f"Join request sent to {org.name}")


@router.get("/switch/{org_id}", response_model=SwitchOrgResponse)
async def switch_org(
    org_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.switch_org(org_id, actor, session)
    return SwitchOrgResponse(message=f"Switched to {org.name}", org=org)


@router.get("/{org_id}/invite-link", response_model=InviteLinkResponse)
async def get_invite_link(
    org_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.get_invite_link(org_id, actor, session)


@router.get("/{org_id}/join-requests", response_model=JoinRequestListResponse)
async def list_join_requests(
    org_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    items = await org_service.list_join_requests(org_id, actor, session)
    return JoinRequestListResponse(data=items)


@router.post("/{org_id}/approve", response_model=MessageResponse)
async def approve_join_request(
    org_id: uuid.UUID,
    body: ApproveJoinRequest,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    await org_service.approve_join_request(org_id, body.user_id_to_approve, actor, session)
    await session.commit()
    return MessageResponse(message="User approved and added to the organization")


@router.get("/{org_id}/members", response_model=MemberListResponse)
async def list_members(
    org_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    items = await org_service.list_members(org_id, actor, session)
    return MemberListResponse(data=items)
