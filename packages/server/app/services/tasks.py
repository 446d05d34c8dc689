"""
Task service layer: org-scoped task store on top of the lifecycle engine.

Handles:
- Task CRUD with ordered assignee links
- "individual" fan-out into a master task plus one child per assignee
- Checklist, status and review updates (delegated to app.services.lifecycle)
- Scoped listing with a per-status summary
- Enrichment of task data for API responses
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, Sequence

import sqlalchemy as sa
import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import AuthenticatedUser
from app.core.errors import CrossOrgAssignment, NotFound, ValidationError
from app.core.permissions import (
    ensure_can_manage_master,
    ensure_can_read,
    ensure_can_review,
    ensure_can_update_checklist,
    ensure_can_update_status,
    ensure_creator,
)
from app.core.saga import Saga
from app.models.assignments import TaskUserAssignment
from app.models.task import Task
from app.models.user import User
from app.models.user_org import UserOrg
from app.services import lifecycle
from taskmate_shared.schemas.common import AssignmentType, Role, TaskPriority, TaskStatus
from taskmate_shared.schemas.tasks import (
    ChecklistItemRead,
    StatusSummary,
    TaskCreate,
    TaskListResponse,
    TaskRead,
    TaskUpdate,
    UserSummary,
)

log = structlog.get_logger()

SORT_OPTIONS = ("createdAt", "-createdAt", "dueDate", "-dueDate", "priority")

_PRIORITY_RANK = sa.case(
    (Task.priority == TaskPriority.HIGH.value, 0),
    (Task.priority == TaskPriority.MEDIUM.value, 1),
    else_=2,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_due_date(value: Optional[datetime]) -> Optional[datetime]:
    """Store due dates as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


async def get_task_or_404(session: AsyncSession, task_id: uuid.UUID) -> Task:
    task = await session.get(Task, task_id)
    if not task:
        raise NotFound("Task not found")
    return task


async def get_assignee_ids(session: AsyncSession, task_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(TaskUserAssignment.user_id)
        .where(TaskUserAssignment.task_id == task_id)
        .order_by(TaskUserAssignment.position)
    )
    return [row[0] for row in result.all()]


async def _assignee_map(
    session: AsyncSession, task_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, list[uuid.UUID]]:
    if not task_ids:
        return {}
    result = await session.execute(
        select(TaskUserAssignment.task_id, TaskUserAssignment.user_id)
        .where(TaskUserAssignment.task_id.in_(task_ids))
        .order_by(TaskUserAssignment.task_id, TaskUserAssignment.position)
    )
    mapping: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for task_id, user_id in result.all():
        mapping[task_id].append(user_id)
    return mapping


async def validate_assignees(
    session: AsyncSession, org_id: uuid.UUID, user_ids: Sequence[uuid.UUID]
) -> list[uuid.UUID]:
    """De-duplicate (keeping order) and require org membership for every assignee."""
    unique = list(dict.fromkeys(user_ids))
    if not unique:
        return unique
    result = await session.execute(
        select(UserOrg.user_id).where(UserOrg.org_id == org_id, UserOrg.user_id.in_(unique))
    )
    members = {row[0] for row in result.all()}
    outsiders = [uid for uid in unique if uid not in members]
    if outsiders:
        log.warning(
            "task.assignment.cross_org",
            org_id=str(org_id),
            user_ids=[str(uid) for uid in outsiders],
        )
        raise CrossOrgAssignment(
            "Tasks can only be assigned to members of this organization",
            userIds=[str(uid) for uid in outsiders],
        )
    return unique


async def set_assignees(
    session: AsyncSession, task: Task, user_ids: Sequence[uuid.UUID]
) -> None:
    await session.execute(
        delete(TaskUserAssignment).where(TaskUserAssignment.task_id == task.id)
    )
    for position, uid in enumerate(user_ids):
        session.add(
            TaskUserAssignment(task_id=task.id, user_id=uid, org_id=task.org_id, position=position)
        )


async def _load_children(session: AsyncSession, master_id: uuid.UUID) -> list[Task]:
    result = await session.execute(
        select(Task).where(Task.parent_task_id == master_id).order_by(Task.created_at)
    )
    return list(result.scalars().all())


async def _delete_tasks(session: AsyncSession, task_ids: Sequence[uuid.UUID]) -> None:
    if not task_ids:
        return
    await session.execute(
        delete(TaskUserAssignment).where(TaskUserAssignment.task_id.in_(task_ids))
    )
    await session.execute(delete(Task).where(Task.id.in_(task_ids)))


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


def _summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(
        id=user.id, name=user.name, email=user.email, profile_image_url=user.profile_image_url
    )


def _to_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def enrich_tasks(session: AsyncSession, tasks: Sequence[Task]) -> list[TaskRead]:
    """Convert Task rows to TaskRead with assignees and checklist completers populated."""
    if not tasks:
        return []
    assignees = await _assignee_map(session, [t.id for t in tasks])

    user_ids: set[uuid.UUID] = set()
    for ids in assignees.values():
        user_ids.update(ids)
    for task in tasks:
        for item in task.todo_checklist or []:
            uid = _to_uuid(item.get("completed_by"))
            if uid:
                user_ids.add(uid)

    users: dict[uuid.UUID, User] = {}
    if user_ids:
        result = await session.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in result.scalars().all()}

    enriched = []
    for task in tasks:
        checklist = [
            ChecklistItemRead(
                id=item["id"],
                text=item.get("text", ""),
                completed=bool(item.get("completed")),
                completed_by=_summary(users.get(_to_uuid(item.get("completed_by")))),
            )
            for item in task.todo_checklist or []
        ]
        enriched.append(
            TaskRead(
                id=task.id,
                org_id=task.org_id,
                title=task.title,
                description=task.description,
                priority=task.priority,
                status=task.status,
                progress=task.progress,
                due_date=task.due_date,
                created_by=task.created_by,
                assigned_to=[
                    _summary(users[uid]) for uid in assignees.get(task.id, []) if uid in users
                ],
                todo_checklist=checklist,
                completed_todo_count=lifecycle.count_completed(task.todo_checklist or []),
                attachments=task.attachments or [],
                assignment_type=task.assignment_type,
                parent_task_id=task.parent_task_id,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
        )
    return enriched


async def enrich_task(session: AsyncSession, task: Task) -> TaskRead:
    return (await enrich_tasks(session, [task]))[0]


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def created_scope(org_id: uuid.UUID, user_id: uuid.UUID) -> list:
    """Admin view: top-level tasks the admin created in this org."""
    return [Task.org_id == org_id, Task.created_by == user_id, Task.parent_task_id.is_(None)]


def assigned_scope(org_id: uuid.UUID, user_id: uuid.UUID) -> list:
    """Member view: tasks in this org assigned to the user."""
    assigned = select(TaskUserAssignment.task_id).where(TaskUserAssignment.user_id == user_id)
    return [Task.org_id == org_id, Task.id.in_(assigned)]


def actor_scope(actor: AuthenticatedUser, assigned_to_me: bool = False) -> list:
    if actor.role == Role.ADMIN.value and not assigned_to_me:
        return created_scope(actor.org_id, actor.user_id)
    return assigned_scope(actor.org_id, actor.user_id)


def _order_by(sort: Optional[str]) -> list:
    if sort == "createdAt":
        return [Task.created_at.asc()]
    if sort == "dueDate":
        return [Task.due_date.is_(None), Task.due_date.asc()]
    if sort == "-dueDate":
        return [Task.due_date.is_(None), Task.due_date.desc()]
    if sort == "priority":
        return [_PRIORITY_RANK, Task.created_at.desc()]
    return [Task.created_at.desc()]


async def status_counts(session: AsyncSession, conditions: list) -> dict[str, int]:
    result = await session.execute(
        select(Task.status, func.count(Task.id)).where(*conditions).group_by(Task.status)
    )
    return {status: count for status, count in result.all()}


def build_status_summary(counts: dict[str, int]) -> StatusSummary:
    return StatusSummary(
        all=sum(counts.values()),
        pending_tasks=counts.get(TaskStatus.PENDING.value, 0),
        in_progress_tasks=counts.get(TaskStatus.IN_PROGRESS.value, 0),
        in_review_tasks=counts.get(TaskStatus.IN_REVIEW.value, 0),
        completed_tasks=counts.get(TaskStatus.COMPLETED.value, 0),
    )


async def list_tasks(
    session: AsyncSession,
    actor: AuthenticatedUser,
    *,
    status: Optional[str] = None,
    sort: Optional[str] = None,
    assigned_to_me: bool = False,
) -> TaskListResponse:
    if sort is not None and sort not in SORT_OPTIONS:
        raise ValidationError(f"Invalid sort '{sort}'. Allowed: {list(SORT_OPTIONS)}")

    scope = actor_scope(actor, assigned_to_me)
    stmt = select(Task).where(*scope)
    if status and status != "All":
        if status not in {s.value for s in TaskStatus}:
            raise ValidationError(f"Invalid status filter '{status}'")
        stmt = stmt.where(Task.status == status)
    stmt = stmt.order_by(*_order_by(sort))

    result = await session.execute(stmt)
    tasks = list(result.scalars().all())
    counts = await status_counts(session, scope)

    return TaskListResponse(
        tasks=await enrich_tasks(session, tasks),
        status_summary=build_status_summary(counts),
    )


async def get_task(session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID) -> Task:
    task = await get_task_or_404(session, task_id)
    ensure_can_read(actor, task, actor.org_id)
    return task


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


async def create_task(
    session: AsyncSession, actor: AuthenticatedUser, task_in: TaskCreate
) -> tuple[Task, list[Task]]:
    """Create a task. Returns the task and, for "individual" tasks, its children."""
    org_id = actor.org_id
    if task_in.assignment_type == AssignmentType.ME or not task_in.assigned_to:
        assignee_ids = [actor.user_id]
    else:
        assignee_ids = await validate_assignees(session, org_id, task_in.assigned_to)

    checklist = lifecycle.normalize_checklist(task_in.todo_checklist, actor.user_id)
    task = Task(
        org_id=org_id,
        created_by=actor.user_id,
        title=task_in.title,
        description=task_in.description,
        priority=task_in.priority.value,
        due_date=normalize_due_date(task_in.due_date),
        todo_checklist=checklist,
        attachments=[a.model_dump(mode="json") for a in task_in.attachments],
        assignment_type=task_in.assignment_type.value,
        progress=lifecycle.derive_progress(checklist),
        status=lifecycle.derive_status(checklist).value,
    )

    if task_in.assignment_type != AssignmentType.INDIVIDUAL:
        session.add(task)
        await session.flush()
        await set_assignees(session, task, assignee_ids)
        await session.flush()
        log.info(
            "task.created",
            task_id=str(task.id),
            org_id=str(org_id),
            assignment_type=task.assignment_type,
            assignees=len(assignee_ids),
        )
        return task, []

    children: list[Task] = []

    async def insert_master():
        session.add(task)
        await session.flush()

    async def insert_children():
        children.extend(lifecycle.build_child_tasks(task, assignee_ids))
        session.add_all(children)
        await session.flush()

    async def assign_children():
        for child, uid in zip(children, assignee_ids):
            await set_assignees(session, child, [uid])
        await session.flush()

    saga = Saga("task.create_individual", context={"org_id": str(org_id)})
    saga.step("insert_master", insert_master)
    saga.step("insert_children", insert_children)
    saga.step("assign_children", assign_children)
    await saga.run()

    log.info(
        "task.created",
        task_id=str(task.id),
        org_id=str(org_id),
        assignment_type=task.assignment_type,
        children=len(children),
    )
    return task, children


async def update_task(
    session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID, task_in: TaskUpdate
) -> Task:
    task = await get_task_or_404(session, task_id)
    ensure_creator(actor, task, actor.org_id)

    data = task_in.model_dump(exclude_unset=True)
    master = lifecycle.is_master(task)

    if "assigned_to" in data:
        assigned_to = data.pop("assigned_to")
        if master:
            raise ValidationError("Master task assignees are managed through its child tasks")
        if not assigned_to:
            raise ValidationError("assignedTo cannot be empty")
        assignee_ids = await validate_assignees(session, task.org_id, assigned_to)
        await set_assignees(session, task, assignee_ids)

    if "todo_checklist" in data:
        data.pop("todo_checklist")
        if task_in.todo_checklist is not None:
            lifecycle.apply_checklist_update(task, task_in.todo_checklist, actor.user_id)

    if "attachments" in data:
        data.pop("attachments")
        task.attachments = [a.model_dump(mode="json") for a in task_in.attachments or []]

    # title and priority are not nullable; an explicit null leaves them as they are.
    for key in ("title", "priority"):
        if key in data and data[key] is None:
            data.pop(key)
    if "priority" in data:
        data["priority"] = data["priority"].value
    if "due_date" in data:
        data["due_date"] = normalize_due_date(data["due_date"])

    for key, value in data.items():
        setattr(task, key, value)
    session.add(task)

    shared_touched = master and any(name in data for name in lifecycle.SHARED_FIELDS)
    if not shared_touched:
        await session.flush()
        log.info("task.updated", task_id=str(task.id), fields=sorted(data))
        return task

    children: list[Task] = []

    async def save_master():
        await session.flush()

    async def propagate():
        children.extend(await _load_children(session, task.id))
        changed = lifecycle.propagate_master_edit(task, children)
        session.add_all(changed)
        await session.flush()
        return changed

    saga = Saga("task.propagate_master_edit", context={"task_id": str(task.id)})
    saga.step("save_master", save_master)
    saga.step("propagate_children", propagate)
    _, changed = await saga.run()

    log.info(
        "task.updated",
        task_id=str(task.id),
        fields=sorted(data),
        children=len(children),
        children_changed=len(changed),
    )
    return task


async def _cascade_delete_master(session: AsyncSession, master: Task) -> int:
    children = await _load_children(session, master.id)
    child_ids = [c.id for c in children]

    async def delete_children():
        await _delete_tasks(session, child_ids)

    async def delete_master_row():
        await _delete_tasks(session, [master.id])

    saga = Saga("task.delete_master", context={"task_id": str(master.id)})
    saga.step("delete_children", delete_children)
    saga.step("delete_master", delete_master_row)
    await saga.run()
    return len(child_ids)


async def delete_task(session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID) -> None:
    task = await get_task_or_404(session, task_id)
    ensure_creator(actor, task, actor.org_id)

    if lifecycle.is_master(task):
        removed = await _cascade_delete_master(session, task)
        log.info("task.deleted", task_id=str(task_id), children=removed)
        return

    await _delete_tasks(session, [task.id])
    log.info("task.deleted", task_id=str(task_id))


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------


async def update_status(
    session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID, status: TaskStatus
) -> Task:
    task = await get_task_or_404(session, task_id)
    assignee_ids = await get_assignee_ids(session, task.id)
    ensure_can_update_status(actor, task, assignee_ids)

    old_status = task.status
    lifecycle.set_status(task, status)
    session.add(task)
    await session.flush()
    log.info(
        "task.status.updated",
        task_id=str(task.id),
        actor_id=str(actor.user_id),
        from_status=old_status,
        to_status=task.status,
    )
    return task


async def update_checklist(
    session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID, checklist: Sequence
) -> Task:
    task = await get_task_or_404(session, task_id)
    assignee_ids = await get_assignee_ids(session, task.id)
    ensure_can_update_checklist(actor, task, assignee_ids)

    lifecycle.apply_checklist_update(task, checklist, actor.user_id)
    session.add(task)
    await session.flush()
    return task


async def review_task(
    session: AsyncSession, actor: AuthenticatedUser, task_id: uuid.UUID, action: str
) -> Task:
    task = await get_task_or_404(session, task_id)
    ensure_can_review(actor, task)

    lifecycle.review(task, action, actor.user_id)
    session.add(task)
    await session.flush()
    return task


# ---------------------------------------------------------------------------
# Master tasks
# ---------------------------------------------------------------------------


async def get_master_or_404(session: AsyncSession, master_id: uuid.UUID) -> Task:
    task = await session.get(Task, master_id)
    if not task or not lifecycle.is_master(task):
        raise NotFound("Master task not found")
    return task


async def get_master_with_children(
    session: AsyncSession, actor: AuthenticatedUser, master_id: uuid.UUID
) -> tuple[Task, list[Task]]:
    master = await get_master_or_404(session, master_id)
    ensure_can_manage_master(actor, master)
    return master, await _load_children(session, master.id)


async def delete_master(
    session: AsyncSession, actor: AuthenticatedUser, master_id: uuid.UUID
) -> int:
    master = await get_master_or_404(session, master_id)
    ensure_can_manage_master(actor, master)
    removed = await _cascade_delete_master(session, master)
    log.info("task.master.deleted", task_id=str(master_id), children=removed)
    return removed
