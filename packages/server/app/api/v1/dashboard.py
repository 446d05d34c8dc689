"""
Dashboard endpoints: read-only statistics for the org context.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, require_admin, require_member
from app.core.database import get_session
from app.services import dashboard as dashboard_service
from taskmate_shared.schemas.dashboard import DashboardResponse, OrgStatsResponse

router = APIRouter()


@router.get("/admin", response_model=DashboardResponse)
async def admin_dashboard(
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Statistics over the top-level tasks the caller created in this org."""
    return await dashboard_service.admin_dashboard(session, auth)


@router.get("/member", response_model=DashboardResponse)
async def member_dashboard(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Statistics over the tasks assigned to the caller in this org."""
    return await dashboard_service.member_dashboard(session, auth)


@router.get("/stats", response_model=OrgStatsResponse)
async def org_stats(
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await dashboard_service.org_stats(session, auth.org_id)
