"""
Unit tests for per-operation access rules (no database).
"""

from __future__ import annotations

import uuid

import pytest

from app.core import permissions
from app.core.auth import AuthenticatedUser
from app.core.errors import Forbidden, NotFound, WrongOrganization
from app.models.organization import Organization
from app.models.task import Task
from app.models.user import User
from app.models.user_org import UserOrg


def _actor(memberships: dict | None = None, *, superuser: bool = False, org_id=None):
    user = User(name="Actor", email=f"{uuid.uuid4().hex}@example.com", is_superuser=superuser)
    rows = [UserOrg(user_id=user.id, org_id=oid, role=role) for oid, role in (memberships or {}).items()]
    org = None
    if org_id is not None:
        org = Organization(name="Ctx", owner_id=user.id)
        org.id = org_id
    return AuthenticatedUser(user=user, memberships=rows, org=org)


ORG_A = uuid.uuid4()
ORG_B = uuid.uuid4()


def _task(org_id=ORG_A, created_by=None) -> Task:
    return Task(org_id=org_id, created_by=created_by or uuid.uuid4(), title="t")


class TestCreatorRules:
    def test_creator_in_own_org(self):
        actor = _actor({ORG_A: "member"}, org_id=ORG_A)
        permissions.ensure_creator(actor, _task(created_by=actor.user_id), ORG_A)

    def test_wrong_org_context(self):
        actor = _actor({ORG_A: "member", ORG_B: "member"}, org_id=ORG_B)
        with pytest.raises(WrongOrganization):
            permissions.ensure_creator(actor, _task(created_by=actor.user_id), ORG_B)

    def test_non_creator_admin_cannot_edit(self):
        actor = _actor({ORG_A: "admin"}, org_id=ORG_A)
        with pytest.raises(Forbidden):
            permissions.ensure_creator(actor, _task(), ORG_A)


class TestStatusRules:
    def test_assignee_may_update(self):
        actor = _actor({ORG_A: "member"})
        permissions.ensure_can_update_status(actor, _task(), [actor.user_id])

    def test_creator_may_update(self):
        actor = _actor({ORG_A: "member"})
        permissions.ensure_can_update_status(actor, _task(created_by=actor.user_id), [])

    def test_admin_of_task_org_may_update(self):
        actor = _actor({ORG_A: "admin"})
        permissions.ensure_can_update_status(actor, _task(), [])

    def test_admin_of_other_org_may_not(self):
        actor = _actor({ORG_B: "admin", ORG_A: "member"})
        with pytest.raises(Forbidden):
            permissions.ensure_can_update_status(actor, _task(), [])

    def test_superuser_may_update(self):
        permissions.ensure_can_update_status(_actor(superuser=True), _task(), [])


class TestChecklistRules:
    def test_creator_alone_is_not_enough(self):
        actor = _actor({ORG_A: "member"})
        with pytest.raises(Forbidden):
            permissions.ensure_can_update_checklist(actor, _task(created_by=actor.user_id), [])

    def test_assignee_may_update(self):
        actor = _actor({ORG_A: "member"})
        permissions.ensure_can_update_checklist(actor, _task(), [uuid.uuid4(), actor.user_id])


class TestReviewRules:
    def test_admin_of_task_org_regardless_of_context(self):
        actor = _actor({ORG_A: "admin", ORG_B: "member"}, org_id=ORG_B)
        permissions.ensure_can_review(actor, _task())

    def test_member_cannot_review(self):
        with pytest.raises(Forbidden):
            permissions.ensure_can_review(_actor({ORG_A: "member"}), _task())

    def test_superuser_can_review(self):
        permissions.ensure_can_review(_actor(superuser=True), _task())


class TestMasterRules:
    def test_outsider_sees_not_found(self):
        with pytest.raises(NotFound):
            permissions.ensure_can_manage_master(_actor({ORG_B: "admin"}), _task())

    def test_member_is_forbidden(self):
        with pytest.raises(Forbidden):
            permissions.ensure_can_manage_master(_actor({ORG_A: "member"}), _task())


class TestOrgDirectoryRules:
    def test_superuser_does_not_bypass_org_admin(self):
        with pytest.raises(Forbidden):
            permissions.ensure_org_admin(_actor(superuser=True), ORG_A)

    def test_member_is_not_admin(self):
        with pytest.raises(Forbidden):
            permissions.ensure_org_admin(_actor({ORG_A: "member"}), ORG_A)

    def test_admin_passes(self):
        permissions.ensure_org_admin(_actor({ORG_A: "admin"}), ORG_A)
