"""
Read-only aggregation over an org-scoped slice of tasks.

The admin dashboard covers the top-level tasks an admin created, the member
dashboard the tasks assigned to the member, org stats the whole org. All
three share the same counting primitives.
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.models.base import utcnow
from app.models.task import Task
from app.services.organizations import count_members
from app.services.tasks import assigned_scope, created_scope, status_counts
from taskmate_shared.schemas.common import TaskPriority, TaskStatus
from taskmate_shared.schemas.dashboard import (
    DashboardCharts,
    DashboardResponse,
    DashboardStatistics,
    OrgStatsResponse,
    RecentTask,
    TaskDistribution,
    TaskPriorityLevels,
)

log = structlog.get_logger()

RECENT_TASK_LIMIT = 10


async def _priority_counts(session: AsyncSession, conditions: list) -> dict[str, int]:
    result = await session.execute(
        select(Task.priority, func.count(Task.id)).where(*conditions).group_by(Task.priority)
    )
    return {priority: count for priority, count in result.all()}


async def _count(session: AsyncSession, conditions: list) -> int:
    result = await session.execute(select(func.count(Task.id)).where(*conditions))
    return result.scalar_one()


async def _recent(session: AsyncSession, conditions: list) -> list[RecentTask]:
    result = await session.execute(
        select(Task).where(*conditions).order_by(Task.created_at.desc()).limit(RECENT_TASK_LIMIT)
    )
    return [RecentTask.model_validate(task) for task in result.scalars().all()]


async def build_dashboard(
    session: AsyncSession, conditions: list, *, now: datetime | None = None
) -> DashboardResponse:
    now = now or utcnow()
    open_task = Task.status != TaskStatus.COMPLETED.value

    by_status = await status_counts(session, conditions)
    by_priority = await _priority_counts(session, conditions)
    overdue = await _count(session, [*conditions, Task.due_date < now, open_task])
    high_open = await _count(
        session, [*conditions, Task.priority == TaskPriority.HIGH.value, open_task]
    )

    total = sum(by_status.values())
    pending = by_status.get(TaskStatus.PENDING.value, 0)
    in_progress = by_status.get(TaskStatus.IN_PROGRESS.value, 0)
    in_review = by_status.get(TaskStatus.IN_REVIEW.value, 0)
    completed = by_status.get(TaskStatus.COMPLETED.value, 0)

    return DashboardResponse(
        statistics=DashboardStatistics(
            total_tasks=total,
            pending_tasks=pending,
            in_progress_tasks=in_progress,
            in_review_tasks=in_review,
            completed_tasks=completed,
            overdue_tasks=overdue,
            high_priority_open_tasks=high_open,
        ),
        charts=DashboardCharts(
            task_distribution=TaskDistribution(
                pending=pending,
                in_progress=in_progress,
                in_review=in_review,
                completed=completed,
                all=total,
            ),
            task_priority_levels=TaskPriorityLevels(
                low=by_priority.get(TaskPriority.LOW.value, 0),
                medium=by_priority.get(TaskPriority.MEDIUM.value, 0),
                high=by_priority.get(TaskPriority.HIGH.value, 0),
            ),
        ),
        recent_tasks=await _recent(session, conditions),
    )


async def admin_dashboard(session: AsyncSession, actor: AuthenticatedUser) -> DashboardResponse:
    return await build_dashboard(session, created_scope(actor.org_id, actor.user_id))


async def member_dashboard(session: AsyncSession, actor: AuthenticatedUser) -> DashboardResponse:
    return await build_dashboard(session, assigned_scope(actor.org_id, actor.user_id))


async def org_stats(session: AsyncSession, org_id: uuid.UUID) -> OrgStatsResponse:
    counts = await status_counts(session, [Task.org_id == org_id])
    stats = OrgStatsResponse(
        total_tasks=sum(counts.values()),
        pending_tasks=counts.get(TaskStatus.PENDING.value, 0),
        in_progress_tasks=counts.get(TaskStatus.IN_PROGRESS.value, 0),
        in_review_tasks=counts.get(TaskStatus.IN_REVIEW.value, 0),
        completed_tasks=counts.get(TaskStatus.COMPLETED.value, 0),
        total_members=await count_members(org_id, session),
    )
    log.info("dashboard.org_stats", org_id=str(org_id), total_tasks=stats.total_tasks)
    return stats
