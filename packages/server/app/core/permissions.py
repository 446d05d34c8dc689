"""
Per-operation authorization rules for tasks and organizations.

"Org admin" always means the admin role in the organization that owns the
resource. Superusers pass task-level checks but not organization-directory
checks (invite links and join approvals stay with the org's own admins).
"""

from __future__ import annotations

import uuid
from typing import Sequence

from app.core.auth import AuthenticatedUser
from app.core.errors import Forbidden, NotFound, WrongOrganization
from app.models.task import Task


def _is_task_admin(actor: AuthenticatedUser, task: Task) -> bool:
    return actor.is_superuser or actor.is_admin_of(task.org_id)


def ensure_same_org(task: Task, org_id: uuid.UUID) -> None:
    if task.org_id != org_id:
        raise WrongOrganization("Task belongs to a different organization")


def ensure_can_read(actor: AuthenticatedUser, task: Task, org_id: uuid.UUID) -> None:
    ensure_same_org(task, org_id)
    if not (actor.is_member_of(task.org_id) or actor.is_superuser):
        raise Forbidden("Not authorized to view this task")


def ensure_creator(actor: AuthenticatedUser, task: Task, org_id: uuid.UUID) -> None:
    """Full edit and delete: the creator, inside the task's own org context."""
    ensure_same_org(task, org_id)
    if task.created_by != actor.user_id:
        raise Forbidden("Not authorized to modify this task")


def ensure_can_update_status(
    actor: AuthenticatedUser, task: Task, assignee_ids: Sequence[uuid.UUID]
) -> None:
    if task.created_by == actor.user_id or actor.user_id in assignee_ids:
        return
    if _is_task_admin(actor, task):
        return
    raise Forbidden("Not authorized to update the status of this task")


def ensure_can_update_checklist(
    actor: AuthenticatedUser, task: Task, assignee_ids: Sequence[uuid.UUID]
) -> None:
    if actor.user_id in assignee_ids or _is_task_admin(actor, task):
        return
    raise Forbidden("Not authorized to update checklist")


def ensure_can_review(actor: AuthenticatedUser, task: Task) -> None:
    if not _is_task_admin(actor, task):
        raise Forbidden("Access denied, admin only")


def ensure_can_manage_master(actor: AuthenticatedUser, task: Task) -> None:
    if not _is_task_admin(actor, task):
        # Hide masters of other orgs entirely.
        if not actor.is_member_of(task.org_id):
            raise NotFound("Master task not found")
        raise Forbidden("Access denied, admin only")


def ensure_org_admin(actor: AuthenticatedUser, org_id: uuid.UUID) -> None:
    if not actor.is_admin_of(org_id):
        raise Forbidden("Access denied. Admins only.")


def ensure_org_member(actor: AuthenticatedUser, org_id: uuid.UUID) -> None:
    if not actor.is_member_of(org_id):
        raise Forbidden("You are not a member of this organization")
