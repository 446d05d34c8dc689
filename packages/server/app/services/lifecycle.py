"""
Task lifecycle engine: the only place that derives `progress` and `status`.

Everything here is synchronous and operates on Task instances in memory;
callers load and persist. Checklist items are stored as dicts:

    {"id": str, "text": str, "completed": bool, "completed_by": str | None}

Status state machine:

    Pending ──checklist partly done──▶ In Progress ──checklist 100%──▶ In Review
       ▲                                  ▲   │                          │  │
       └────────checklist 0%──────────────┘   └──────REJECT / uncheck────┘  │
                                                                APPROVE ────▶ Completed

A direct status set may move any state to any state; setting `Completed`
force-completes the checklist.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import structlog

from app.core.errors import InvalidAction, ValidationError
from app.models.task import Task
from taskmate_shared.schemas.common import AssignmentType, ReviewAction, TaskStatus
from taskmate_shared.schemas.tasks import ChecklistItemIn

log = structlog.get_logger()

# Fields a master task pushes down to its children on edit.
SHARED_FIELDS = ("title", "description", "due_date", "priority")

IncomingItem = Union[ChecklistItemIn, Mapping[str, Any]]


@dataclass(frozen=True)
class CompletionFlip:
    item_id: str
    completed: bool


def new_item_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def count_completed(items: Iterable[Mapping[str, Any]]) -> int:
    return sum(1 for item in items if item.get("completed"))


def derive_progress(items: Sequence[Mapping[str, Any]]) -> int:
    """Percentage of completed items, rounded half up; 0 for an empty list."""
    total = len(items)
    if total == 0:
        return 0
    done = count_completed(items)
    return (200 * done + total) // (2 * total)


def derive_status(items: Sequence[Mapping[str, Any]]) -> TaskStatus:
    total = len(items)
    done = count_completed(items)
    if total == 0 or done == 0:
        return TaskStatus.PENDING
    if done < total:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.IN_REVIEW


# ---------------------------------------------------------------------------
# Checklist merge
# ---------------------------------------------------------------------------


def _incoming_fields(raw: IncomingItem) -> tuple[Optional[str], str, bool]:
    if isinstance(raw, ChecklistItemIn):
        return raw.id, raw.text, raw.completed
    return raw.get("id"), raw.get("text", ""), bool(raw.get("completed", False))


def merge_checklist(
    existing: Sequence[Mapping[str, Any]],
    incoming: Sequence[IncomingItem],
    actor_id: Union[uuid.UUID, str],
) -> tuple[list[dict], list[CompletionFlip]]:
    """Merge a full submitted checklist against the stored one.

    Items are matched by id. Unknown or missing ids are new items. Returns the
    merged items (in submitted order) and the items whose completed state
    changed.
    """
    actor = str(actor_id)
    stored = {item["id"]: item for item in existing if item.get("id")}
    merged: list[dict] = []
    flips: list[CompletionFlip] = []
    seen: set[str] = set()

    for raw in incoming:
        item_id, text, completed = _incoming_fields(raw)
        if not item_id or item_id in seen or item_id not in stored:
            item_id = new_item_id()
        seen.add(item_id)

        previous = stored.get(item_id)
        was_completed = bool(previous and previous.get("completed"))

        if completed and was_completed:
            completed_by = previous.get("completed_by")
        elif completed:
            completed_by = actor
            flips.append(CompletionFlip(item_id, True))
        else:
            completed_by = None
            if was_completed:
                flips.append(CompletionFlip(item_id, False))

        merged.append(
            {"id": item_id, "text": text, "completed": completed, "completed_by": completed_by}
        )

    return merged, flips


def normalize_checklist(items: Sequence[IncomingItem], actor_id: Union[uuid.UUID, str]) -> list[dict]:
    """Stored form of a brand-new checklist (task creation)."""
    merged, _ = merge_checklist([], items, actor_id)
    return merged


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def apply_checklist_update(
    task: Task, new_checklist: Sequence[IncomingItem], actor_id: Union[uuid.UUID, str]
) -> Task:
    """Replace the checklist and recompute progress/status from scratch."""
    merged, flips = merge_checklist(task.todo_checklist or [], new_checklist, actor_id)
    old_status = task.status

    task.todo_checklist = merged
    task.progress = derive_progress(merged)
    task.status = derive_status(merged).value

    log.info(
        "task.checklist.applied",
        task_id=str(task.id),
        actor_id=str(actor_id),
        flips=[(f.item_id, f.completed) for f in flips],
        from_status=old_status,
        to_status=task.status,
        progress=task.progress,
    )
    return task


def _parse_status(value: Union[TaskStatus, str]) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        allowed = [s.value for s in TaskStatus]
        raise ValidationError(f"Invalid status '{value}'. Allowed: {allowed}")


def set_status(task: Task, new_status: Union[TaskStatus, str]) -> Task:
    """Direct status override.

    `Completed` force-completes every checklist item and pins progress to 100
    but leaves `completed_by` unset on items that were not already completed.
    """
    status = _parse_status(new_status)

    if status == TaskStatus.COMPLETED:
        items = [dict(item) for item in task.todo_checklist or []]
        unattributed = [item["id"] for item in items if not item.get("completed")]
        for item in items:
            item["completed"] = True
        task.todo_checklist = items
        task.progress = 100
        if unattributed:
            log.warning(
                "task.status.unattributed_completion",
                task_id=str(task.id),
                item_ids=unattributed,
            )

    task.status = status.value
    return task


def review(task: Task, action: Union[ReviewAction, str], admin_id: Union[uuid.UUID, str]) -> Task:
    """Admin approve/reject gate."""
    try:
        decision = ReviewAction(action)
    except ValueError:
        raise InvalidAction("Invalid action. Must be APPROVE or REJECT.")

    if decision == ReviewAction.APPROVE:
        admin = str(admin_id)
        items = []
        for item in task.todo_checklist or []:
            item = dict(item)
            if not item.get("completed"):
                item["completed"] = True
                item["completed_by"] = admin
            items.append(item)
        task.todo_checklist = items
        task.status = TaskStatus.COMPLETED.value
        task.progress = 100
    else:
        task.status = TaskStatus.IN_PROGRESS.value

    log.info("task.reviewed", task_id=str(task.id), action=decision.value, admin_id=str(admin_id))
    return task


# ---------------------------------------------------------------------------
# Master / child fan-out
# ---------------------------------------------------------------------------


def is_master(task: Task) -> bool:
    return task.assignment_type == AssignmentType.INDIVIDUAL.value and task.parent_task_id is None


def _template_checklist(master: Task) -> list[dict]:
    return [
        {"id": new_item_id(), "text": item["text"], "completed": False, "completed_by": None}
        for item in master.todo_checklist or []
    ]


def build_child_tasks(master: Task, assignee_ids: Sequence[uuid.UUID]) -> list[Task]:
    """One child per assignee, in assignee order. Assignment rows are the caller's job."""
    children = []
    for _assignee in assignee_ids:
        children.append(
            Task(
                org_id=master.org_id,
                created_by=master.created_by,
                parent_task_id=master.id,
                title=master.title,
                description=master.description,
                priority=master.priority,
                due_date=master.due_date,
                attachments=[dict(a) for a in master.attachments or []],
                todo_checklist=_template_checklist(master),
                assignment_type=AssignmentType.INDIVIDUAL.value,
                status=TaskStatus.PENDING.value,
                progress=0,
            )
        )
    return children


def propagate_master_edit(master: Task, children: Iterable[Task]) -> list[Task]:
    """Copy the shared fields onto every child; returns the children that changed."""
    changed = []
    for child in children:
        dirty = False
        for name in SHARED_FIELDS:
            value = getattr(master, name)
            if getattr(child, name) != value:
                setattr(child, name, value)
                dirty = True
        if dirty:
            changed.append(child)
    return changed
