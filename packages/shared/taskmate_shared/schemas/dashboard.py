"""Dashboard (aggregation) response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import CamelModel, TaskPriority, TaskStatus


class DashboardStatistics(CamelModel):
    total_tasks: int = 0
    pending_tasks: int = 0
    in_progress_tasks: int = 0
    in_review_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
    high_priority_open_tasks: int = 0


class TaskDistribution(BaseModel):
    """Status buckets keyed by status name with whitespace removed."""

    model_config = ConfigDict(populate_by_name=True)

    pending: int = Field(default=0, alias="Pending")
    in_progress: int = Field(default=0, alias="InProgress")
    in_review: int = Field(default=0, alias="InReview")
    completed: int = Field(default=0, alias="Completed")
    all: int = Field(default=0, alias="All")


class TaskPriorityLevels(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    low: int = Field(default=0, alias="Low")
    medium: int = Field(default=0, alias="Medium")
    high: int = Field(default=0, alias="High")


class DashboardCharts(CamelModel):
    task_distribution: TaskDistribution = Field(default_factory=TaskDistribution)
    task_priority_levels: TaskPriorityLevels = Field(default_factory=TaskPriorityLevels)


class RecentTask(CamelModel):
    id: uuid.UUID
    title: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DashboardResponse(CamelModel):
    statistics: DashboardStatistics
    charts: DashboardCharts
    recent_tasks: List[RecentTask] = Field(default_factory=list)


class OrgStatsResponse(CamelModel):
    total_tasks: int = 0
    pending_tasks: int = 0
    in_progress_tasks: int = 0
    in_review_tasks: int = 0
    completed_tasks: int = 0
    total_members: int = 0
