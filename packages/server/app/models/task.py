"""Task model."""

from datetime import datetime
from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    # Set on the per-assignee copies of an "individual" master task.
    parent_task_id: Optional[uuid.UUID] = Field(default=None, foreign_key="tasks.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    priority: str = Field(nullable=False, default="Medium")  # Low | Medium | High
    status: str = Field(nullable=False, default="Pending")  # Pending | In Progress | In Review | Completed
    progress: int = Field(nullable=False, default=0)
    due_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime())
    # [{id, text, completed, completed_by}]
    todo_checklist: List[dict] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    # [{type, url, name}]
    attachments: List[dict] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    assignment_type: str = Field(nullable=False, default="group")  # group | individual | me
