"""
Organization service: org creation, invite links, join requests, members.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.config import get_settings
from app.core.errors import AlreadyMember, DuplicateRequest, NotFound
from app.core.permissions import ensure_org_admin, ensure_org_member
from app.core.saga import Saga
from app.models.organization import JoinRequest, Organization
from app.models.user import User
from app.models.user_org import UserOrg
from app.services.tasks import assigned_scope, status_counts
from taskmate_shared.schemas.common import Role, TaskStatus
from taskmate_shared.schemas.organizations import (
    InviteLinkResponse,
    JoinRequestRead,
    MemberRead,
    MemberWorkload,
    OrgCreateRequest,
    OrgListItem,
)

log = structlog.get_logger()


async def get_org_or_404(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    org = await session.get(Organization, org_id)
    if not org:
        raise NotFound("Organization not found")
    return org


async def list_user_orgs(user_id: uuid.UUID, session: AsyncSession) -> list[OrgListItem]:
    """List all orgs a user belongs to, with their role."""
    result = await session.execute(
        select(Organization, UserOrg.role)
        .join(UserOrg, UserOrg.org_id == Organization.id)
        .where(UserOrg.user_id == user_id)
        .order_by(UserOrg.joined_at)
    )
    return [OrgListItem(id=org.id, name=org.name, role=role) for org, role in result.all()]


async def create_org(
    req: OrgCreateRequest, creator_id: uuid.UUID, session: AsyncSession
) -> Organization:
    """Create an org and make the creator its admin."""
    org = Organization(name=req.name, owner_id=creator_id, member_ids=[str(creator_id)])

    async def insert_org():
        session.add(org)
        await session.flush()

    async def add_admin():
        session.add(UserOrg(user_id=creator_id, org_id=org.id, role=Role.ADMIN.value))
        await session.flush()

    saga = Saga("org.create", context={"user_id": str(creator_id)})
    saga.step("insert_org", insert_org)
    saga.step("add_admin_membership", add_admin)
    await saga.run()

    log.info("org.created", org_id=str(org.id), name=org.name, owner_id=str(creator_id))
    return org


def build_invite_link(org: Organization) -> str:
    return f"{get_settings().client_url.rstrip('/')}/join/{org.invite_slug}"


async def get_invite_link(
    org_id: uuid.UUID, actor: AuthenticatedUser, session: AsyncSession
) -> InviteLinkResponse:
    org = await get_org_or_404(org_id, session)
    ensure_org_admin(actor, org.id)
    return InviteLinkResponse(invite_link=build_invite_link(org), invite_slug=org.invite_slug)


async def request_to_join(
    invite_slug: str, actor: AuthenticatedUser, session: AsyncSession
) -> Organization:
    result = await session.execute(
        select(Organization).where(Organization.invite_slug == invite_slug)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Invalid invite link")

    if actor.is_member_of(org.id):
        raise AlreadyMember()

    existing = await session.get(JoinRequest, (org.id, actor.user_id))
    if existing:
        raise DuplicateRequest()

    session.add(JoinRequest(org_id=org.id, user_id=actor.user_id))
    await session.flush()
    log.info("org.join_requested", org_id=str(org.id), user_id=str(actor.user_id))
    return org


async def list_join_requests(
    org_id: uuid.UUID, actor: AuthenticatedUser, session: AsyncSession
) -> list[JoinRequestRead]:
    org = await get_org_or_404(org_id, session)
    ensure_org_admin(actor, org.id)

    result = await session.execute(
        select(JoinRequest, User)
        .join(User, User.id == JoinRequest.user_id)
        .where(JoinRequest.org_id == org.id)
        .order_by(JoinRequest.requested_at)
    )
    return [
        JoinRequestRead(
            user_id=user.id, name=user.name, email=user.email, requested_at=req.requested_at
        )
        for req, user in result.all()
    ]


async def _admit_member(
    org: Organization,
    user_id: uuid.UUID,
    session: AsyncSession,
    *,
    saga_name: str,
    drop_join_request: bool = False,
) -> None:
    """Record `user_id` as a member on the org side, then on the membership side.

    A failure in the second write surfaces as PartialCompletion.
    """

    async def update_org():
        if drop_join_request:
            await session.execute(
                delete(JoinRequest).where(
                    JoinRequest.org_id == org.id, JoinRequest.user_id == user_id
                )
            )
        member_id = str(user_id)
        if member_id not in org.member_ids:
            # Reassign so the JSON column is marked dirty.
            org.member_ids = [*org.member_ids, member_id]
        session.add(org)
        await session.flush()

    async def add_membership():
        existing = await session.get(UserOrg, (user_id, org.id))
        if existing is None:
            session.add(UserOrg(user_id=user_id, org_id=org.id, role=Role.MEMBER.value))
        await session.flush()

    saga = Saga(saga_name, context={"org_id": str(org.id), "user_id": str(user_id)})
    saga.step("update_org", update_org)
    saga.step("add_membership", add_membership)
    await saga.run()


async def approve_join_request(
    org_id: uuid.UUID,
    user_id_to_approve: uuid.UUID,
    actor: AuthenticatedUser,
    session: AsyncSession,
) -> Organization:
    """Consume a pending join request and make the requester a member."""
    org = await get_org_or_404(org_id, session)
    ensure_org_admin(actor, org.id)

    join_request = await session.get(JoinRequest, (org.id, user_id_to_approve))
    if not join_request:
        raise NotFound("Join request not found")

    await _admit_member(
        org,
        user_id_to_approve,
        session,
        saga_name="org.approve_join_request",
        drop_join_request=True,
    )

    log.info(
        "org.join_approved",
        org_id=str(org.id),
        user_id=str(user_id_to_approve),
        approved_by=str(actor.user_id),
    )
    return org


async def add_member_by_email(
    org_id: uuid.UUID, email: str, actor: AuthenticatedUser, session: AsyncSession
) -> MemberRead:
    """Add an existing account to the org as a member.

    A pending join request from the same user is consumed along the way.
    """
    org = await get_org_or_404(org_id, session)
    ensure_org_admin(actor, org.id)

    result = await session.execute(select(User).where(User.email == email.lower()))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("No user with that email")
    if await session.get(UserOrg, (user.id, org.id)) is not None:
        raise AlreadyMember("User already exists in this organization")

    pending = await session.get(JoinRequest, (org.id, user.id))
    await _admit_member(
        org,
        user.id,
        session,
        saga_name="org.add_member",
        drop_join_request=pending is not None,
    )

    log.info(
        "org.member_added",
        org_id=str(org.id),
        user_id=str(user.id),
        added_by=str(actor.user_id),
    )
    return MemberRead(
        id=user.id,
        name=user.name,
        email=user.email,
        profile_image_url=user.profile_image_url,
        role=Role.MEMBER,
    )


async def list_member_workloads(
    org_id: uuid.UUID, session: AsyncSession
) -> list[MemberWorkload]:
    """Members (role member) of the org with counts of the tasks assigned to them."""
    result = await session.execute(
        select(User)
        .join(UserOrg, UserOrg.user_id == User.id)
        .where(UserOrg.org_id == org_id, UserOrg.role == Role.MEMBER.value)
        .order_by(UserOrg.joined_at)
    )
    workloads = []
    for user in result.scalars().all():
        counts = await status_counts(session, assigned_scope(org_id, user.id))
        workloads.append(
            MemberWorkload(
                id=user.id,
                name=user.name,
                email=user.email,
                profile_image_url=user.profile_image_url,
                role=Role.MEMBER,
                pending_tasks=counts.get(TaskStatus.PENDING.value, 0),
                in_progress_tasks=counts.get(TaskStatus.IN_PROGRESS.value, 0),
                in_review_tasks=counts.get(TaskStatus.IN_REVIEW.value, 0),
                completed_tasks=counts.get(TaskStatus.COMPLETED.value, 0),
            )
        )
    return workloads


async def list_members(
    org_id: uuid.UUID, actor: AuthenticatedUser, session: AsyncSession
) -> list[MemberRead]:
    org = await get_org_or_404(org_id, session)
    ensure_org_member(actor, org.id)

    result = await session.execute(
        select(User, UserOrg.role)
        .join(UserOrg, UserOrg.user_id == User.id)
        .where(UserOrg.org_id == org.id)
        .order_by(UserOrg.joined_at)
    )
    return [
        MemberRead(
            id=user.id,
            name=user.name,
            email=user.email,
            profile_image_url=user.profile_image_url,
            role=role,
        )
        for user, role in result.all()
    ]


async def count_members(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(UserOrg).where(UserOrg.org_id == org_id)
    )
    return result.scalar_one()


async def switch_org(
    org_id: uuid.UUID, actor: AuthenticatedUser, session: AsyncSession
) -> OrgListItem:
    """Validate a context switch: the caller must belong to the target org."""
    org = await get_org_or_404(org_id, session)
    ensure_org_member(actor, org.id)
    log.info("org.switched", org_id=str(org.id), user_id=str(actor.user_id))
    return OrgListItem(id=org.id, name=org.name, role=actor.role_in(org.id))
