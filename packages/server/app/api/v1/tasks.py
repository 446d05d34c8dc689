"""
Task endpoints: CRUD, checklist/status/review lifecycle, master tasks, scheduling.

Status columns: Pending → In Progress → In Review → Completed
- Progress and status are derived from the checklist; In Review waits for an admin.
- "individual" tasks fan out into one child task per assignee.
- Org context comes from the `x-org-id` header on list, create, read, update, delete.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_current_actor, require_member
from app.core.database import get_session
from app.core.errors import Forbidden
from app.integrations import google_calendar
from app.services import tasks as task_service
from taskmate_shared.schemas.common import MessageResponse, TaskStatus
from taskmate_shared.schemas.tasks import (
    MasterTaskResponse,
    ScheduleResponse,
    TaskChecklistUpdate,
    TaskCreate,
    TaskCreateResponse,
    TaskListResponse,
    TaskMessageResponse,
    TaskRead,
    TaskReview,
    TaskStatusUpdate,
    TaskUpdate,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.get("", response_model=TaskListResponse)
async def list_tasks_endpoint(
    status: Optional[str] = None,
    sort: Optional[str] = None,
    assigned_to: Optional[Literal["me"]] = Query(default=None, alias="assignedTo"),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Admins see the tasks they created; members see the tasks assigned to them."""
    return await task_service.list_tasks(
        session, auth, status=status, sort=sort, assigned_to_me=assigned_to == "me"
    )


@router.post("", response_model=TaskCreateResponse, status_code=201)
async def create_task_endpoint(
    task_in: TaskCreate,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Create a task. "individual" tasks return the master plus its children."""
    task, children = await task_service.create_task(session, auth, task_in)
    await session.commit()
    for t in (task, *children):
        await session.refresh(t)

    return TaskCreateResponse(
        message="Task created successfully",
        task=await task_service.enrich_task(session, task),
        child_tasks=await task_service.enrich_tasks(session, children),
    )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    task = await task_service.get_task(session, auth, task_id)
    return await task_service.enrich_task(session, task)


@router.put("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Creator-only update. Edits on a master task propagate to its children."""
    task = await task_service.update_task(session, auth, task_id, task_in)
    await session.commit()
    await session.refresh(task)
    return await task_service.enrich_task(session, task)


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await task_service.delete_task(session, auth, task_id)
    await session.commit()
    return MessageResponse(message="Task deleted successfully")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.put("/{task_id}/status", response_model=TaskMessageResponse)
async def update_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    task = await task_service.update_status(session, actor, task_id, body.status)
    await session.commit()
    await session.refresh(task)
    return TaskMessageResponse(
        message="Task status updated", task=await task_service.enrich_task(session, task)
    )


@router.put("/{task_id}/todo", response_model=TaskMessageResponse)
async def update_checklist_endpoint(
    task_id: uuid.UUID,
    body: TaskChecklistUpdate,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    """Submit the full checklist; progress and status are recomputed."""
    task = await task_service.update_checklist(session, actor, task_id, body.todo_checklist)
    await session.commit()
    await session.refresh(task)
    return TaskMessageResponse(
        message="Task checklist updated", task=await task_service.enrich_task(session, task)
    )


@router.put("/{task_id}/review", response_model=TaskMessageResponse)
async def review_task_endpoint(
    task_id: uuid.UUID,
    body: TaskReview,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    """Admin gate out of In Review: APPROVE completes, REJECT returns to In Progress."""
    task = await task_service.review_task(session, actor, task_id, body.action)
    await session.commit()
    await session.refresh(task)
    verb = "approved" if task.status == TaskStatus.COMPLETED.value else "rejected"
    return TaskMessageResponse(
        message=f"Task {verb}", task=await task_service.enrich_task(session, task)
    )


# ---------------------------------------------------------------------------
# Master tasks
# ---------------------------------------------------------------------------


@router.get("/master/{task_id}", response_model=MasterTaskResponse)
async def get_master_task_endpoint(
    task_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    master, children = await task_service.get_master_with_children(session, actor, task_id)
    return MasterTaskResponse(
        master_task=await task_service.enrich_task(session, master),
        child_tasks=await task_service.enrich_tasks(session, children),
    )


@router.delete("/master/{task_id}", response_model=MessageResponse)
async def delete_master_task_endpoint(
    task_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    removed = await task_service.delete_master(session, actor, task_id)
    await session.commit()
    return MessageResponse(
        message=f"Master task and {removed} child tasks deleted successfully"
    )


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


@router.post("/{task_id}/schedule", response_model=ScheduleResponse)
async def schedule_task_endpoint(
    task_id: uuid.UUID,
    actor: AuthenticatedUser = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
):
    """Put the task on the caller's Google Calendar (one hour from the due date)."""
    task = await task_service.get_task_or_404(session, task_id)
    if not (actor.is_member_of(task.org_id) or actor.is_superuser):
        raise Forbidden("Not authorized to schedule this task")

    event = await google_calendar.schedule_task(session, actor.user, task)
    await session.commit()
    return ScheduleResponse(
        message="Task scheduled successfully",
        event_id=event.get("id"),
        html_link=event.get("htmlLink"),
    )
