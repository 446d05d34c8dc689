"""Task assignee join table."""

import uuid

from sqlmodel import Field, SQLModel


class TaskUserAssignment(SQLModel, table=True):
    __tablename__ = "task_user_assignments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    position: int = Field(default=0, nullable=False)  # keeps assignedTo ordered
