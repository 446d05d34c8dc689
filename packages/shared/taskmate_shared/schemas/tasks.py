"""Task-related Pydantic schemas shared between the server and API clients."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from .common import AssignmentType, AttachmentType, CamelModel, TaskPriority, TaskStatus


def _split_assignees(value):
    """Accept assignees as a list or as a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


# ---------------------------------------------------------------------------
# Embedded documents
# ---------------------------------------------------------------------------

class UserSummary(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    profile_image_url: Optional[str] = None


class ChecklistItemIn(CamelModel):
    """A checklist item as submitted by a client. `id` is omitted for new items."""
    id: Optional[str] = None
    text: str = Field(min_length=1)
    completed: bool = False


class ChecklistItemRead(CamelModel):
    id: str
    text: str
    completed: bool
    completed_by: Optional[UserSummary] = None


class Attachment(CamelModel):
    type: AttachmentType = AttachmentType.LINK
    url: str = Field(min_length=1)
    name: Optional[str] = None


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to: List[uuid.UUID] = Field(default_factory=list)
    assignment_type: AssignmentType = AssignmentType.GROUP
    todo_checklist: List[ChecklistItemIn] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _split(cls, value):
        return _split_assignees(value)


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[List[uuid.UUID]] = None
    todo_checklist: Optional[List[ChecklistItemIn]] = None
    attachments: Optional[List[Attachment]] = None

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _split(cls, value):
        if value is None:
            return None
        return _split_assignees(value)


class TaskRead(CamelModel):
    id: uuid.UUID
    org_id: uuid.UUID
    title: str
    description: Optional[str] = None
    priority: TaskPriority
    status: TaskStatus
    progress: int
    due_date: Optional[datetime] = None
    created_by: uuid.UUID
    assigned_to: List[UserSummary] = Field(default_factory=list)
    todo_checklist: List[ChecklistItemRead] = Field(default_factory=list)
    completed_todo_count: int = 0
    attachments: List[Attachment] = Field(default_factory=list)
    assignment_type: AssignmentType
    parent_task_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class TaskCreateResponse(CamelModel):
    message: str
    task: TaskRead
    child_tasks: List[TaskRead] = Field(default_factory=list)


class TaskMessageResponse(CamelModel):
    """Response of the status, checklist and review endpoints."""
    message: str
    task: TaskRead


class MasterTaskResponse(CamelModel):
    master_task: TaskRead
    child_tasks: List[TaskRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Lifecycle requests
# ---------------------------------------------------------------------------

class TaskStatusUpdate(CamelModel):
    """Request body for PUT /tasks/{taskId}/status."""
    status: TaskStatus


class TaskChecklistUpdate(CamelModel):
    """Request body for PUT /tasks/{taskId}/todo. The full checklist is sent."""
    todo_checklist: List[ChecklistItemIn]


class TaskReview(CamelModel):
    """Request body for PUT /tasks/{taskId}/review. Validated by the lifecycle engine."""
    action: str


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class StatusSummary(CamelModel):
    all: int = 0
    pending_tasks: int = 0
    in_progress_tasks: int = 0
    in_review_tasks: int = 0
    completed_tasks: int = 0


class TaskListResponse(CamelModel):
    tasks: List[TaskRead]
    status_summary: StatusSummary


class ScheduleResponse(CamelModel):
    message: str
    event_id: Optional[str] = None
    html_link: Optional[str] = None
