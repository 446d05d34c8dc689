"""
Unit tests for the task lifecycle engine (no database).

Tests cover:
- Progress rounding and status derivation from checklist counts
- Checklist merge: identity matching, completer attribution, flip diff
- Direct status set, review approve/reject
- Master/child fan-out and master-edit propagation
"""

from __future__ import annotations

import uuid
from datetime import datetime

import pytest

from app.core.errors import InvalidAction, ValidationError
from app.models.task import Task
from app.services import lifecycle
from app.services.lifecycle import CompletionFlip
from taskmate_shared.schemas.common import TaskStatus
from taskmate_shared.schemas.tasks import ChecklistItemIn


def _item(text: str, completed: bool = False, completed_by=None, item_id=None) -> dict:
    return {
        "id": item_id or uuid.uuid4().hex,
        "text": text,
        "completed": completed,
        "completed_by": completed_by,
    }


def _task(checklist=None, **fields) -> Task:
    return Task(
        org_id=fields.pop("org_id", uuid.uuid4()),
        created_by=fields.pop("created_by", uuid.uuid4()),
        title=fields.pop("title", "Ship release"),
        todo_checklist=checklist or [],
        **fields,
    )


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


class TestDeriveProgress:
    def test_empty_checklist_is_zero(self):
        assert lifecycle.derive_progress([]) == 0

    @pytest.mark.parametrize(
        "done,total,expected",
        [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 2, 50), (1, 8, 13), (3, 8, 38)],
    )
    def test_rounds_half_up(self, done, total, expected):
        items = [_item(str(i), completed=i < done) for i in range(total)]
        assert lifecycle.derive_progress(items) == expected


class TestDeriveStatus:
    def test_empty_is_pending(self):
        assert lifecycle.derive_status([]) == TaskStatus.PENDING

    def test_nothing_done_is_pending(self):
        assert lifecycle.derive_status([_item("a"), _item("b")]) == TaskStatus.PENDING

    def test_partly_done_is_in_progress(self):
        items = [_item("a", True), _item("b")]
        assert lifecycle.derive_status(items) == TaskStatus.IN_PROGRESS

    def test_all_done_is_in_review_not_completed(self):
        items = [_item("a", True), _item("b", True)]
        assert lifecycle.derive_status(items) == TaskStatus.IN_REVIEW

    def test_tiny_fraction_still_in_progress(self):
        # 1 of 300 rounds to 0% but is still progress.
        items = [_item("x", i == 0) for i in range(300)]
        assert lifecycle.derive_progress(items) == 0
        assert lifecycle.derive_status(items) == TaskStatus.IN_PROGRESS


# ---------------------------------------------------------------------------
# Checklist merge
# ---------------------------------------------------------------------------


class TestMergeChecklist:
    def test_false_to_true_stamps_actor(self):
        actor = uuid.uuid4()
        existing = [_item("Design")]
        incoming = [{"id": existing[0]["id"], "text": "Design", "completed": True}]

        merged, flips = lifecycle.merge_checklist(existing, incoming, actor)

        assert merged[0]["completed_by"] == str(actor)
        assert flips == [CompletionFlip(existing[0]["id"], True)]

    def test_true_to_true_preserves_original_completer(self):
        original, other = uuid.uuid4(), uuid.uuid4()
        existing = [_item("Design", True, str(original))]
        incoming = [{"id": existing[0]["id"], "text": "Design (renamed)", "completed": True}]

        merged, flips = lifecycle.merge_checklist(existing, incoming, other)

        assert merged[0]["completed_by"] == str(original)
        assert merged[0]["text"] == "Design (renamed)"
        assert flips == []

    def test_true_to_false_clears_completer(self):
        existing = [_item("Design", True, str(uuid.uuid4()))]
        incoming = [{"id": existing[0]["id"], "text": "Design", "completed": False}]

        merged, flips = lifecycle.merge_checklist(existing, incoming, uuid.uuid4())

        assert merged[0]["completed_by"] is None
        assert flips == [CompletionFlip(existing[0]["id"], False)]

    def test_items_without_id_are_new(self):
        actor = uuid.uuid4()
        merged, flips = lifecycle.merge_checklist(
            [], [{"text": "Write docs", "completed": True}, {"text": "Review"}], actor
        )

        assert all(item["id"] for item in merged)
        assert merged[0]["completed_by"] == str(actor)
        assert merged[1]["completed_by"] is None
        assert [f.completed for f in flips] == [True]

    def test_unknown_id_gets_fresh_id(self):
        merged, _ = lifecycle.merge_checklist(
            [_item("a")], [{"id": "not-a-stored-id", "text": "b"}], uuid.uuid4()
        )
        assert merged[0]["id"] != "not-a-stored-id"

    def test_duplicate_ids_are_split(self):
        existing = [_item("a")]
        same = existing[0]["id"]
        merged, _ = lifecycle.merge_checklist(
            existing, [{"id": same, "text": "a"}, {"id": same, "text": "a copy"}], uuid.uuid4()
        )
        assert merged[0]["id"] == same
        assert merged[1]["id"] != same

    def test_keeps_submitted_order_and_drops_missing(self):
        a, b, c = _item("a"), _item("b"), _item("c")
        incoming = [{"id": c["id"], "text": "c"}, {"id": a["id"], "text": "a"}]

        merged, _ = lifecycle.merge_checklist([a, b, c], incoming, uuid.uuid4())

        assert [m["text"] for m in merged] == ["c", "a"]

    def test_flips_report_exactly_changed_items(self):
        actor = uuid.uuid4()
        done = _item("done", True, str(actor))
        todo = _item("todo")
        undone = _item("undone", True, str(actor))
        incoming = [
            {"id": done["id"], "text": "done", "completed": True},
            {"id": todo["id"], "text": "todo", "completed": True},
            {"id": undone["id"], "text": "undone", "completed": False},
        ]

        _, flips = lifecycle.merge_checklist([done, todo, undone], incoming, actor)

        assert set(flips) == {CompletionFlip(todo["id"], True), CompletionFlip(undone["id"], False)}

    def test_accepts_request_models(self):
        merged, _ = lifecycle.merge_checklist(
            [], [ChecklistItemIn(text="From request", completed=False)], uuid.uuid4()
        )
        assert merged[0]["text"] == "From request"


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class TestApplyChecklistUpdate:
    def test_example_scenario(self):
        """Design then Build completed by u1, then approved by an admin."""
        u1, admin = uuid.uuid4(), uuid.uuid4()
        task = _task([_item("Design"), _item("Build")])
        design, build = (item["id"] for item in task.todo_checklist)

        lifecycle.apply_checklist_update(
            task,
            [{"id": design, "text": "Design", "completed": True}, {"id": build, "text": "Build"}],
            u1,
        )
        assert task.progress == 50
        assert task.status == TaskStatus.IN_PROGRESS.value
        assert task.todo_checklist[0]["completed_by"] == str(u1)

        lifecycle.apply_checklist_update(
            task,
            [
                {"id": design, "text": "Design", "completed": True},
                {"id": build, "text": "Build", "completed": True},
            ],
            u1,
        )
        assert task.progress == 100
        assert task.status == TaskStatus.IN_REVIEW.value

        lifecycle.review(task, "APPROVE", admin)
        assert task.status == TaskStatus.COMPLETED.value
        assert task.progress == 100

    def test_unchecking_from_review_returns_to_in_progress(self):
        actor = uuid.uuid4()
        task = _task([_item("a", True, str(actor)), _item("b", True, str(actor))])
        task.status = TaskStatus.IN_REVIEW.value
        a, b = task.todo_checklist

        lifecycle.apply_checklist_update(
            task, [{"id": a["id"], "text": "a", "completed": True}, {"id": b["id"], "text": "b"}], actor
        )

        assert task.status == TaskStatus.IN_PROGRESS.value
        assert task.progress == 50

    def test_empty_checklist_resets_to_pending(self):
        task = _task([_item("a", True, "x")])
        task.status = TaskStatus.IN_REVIEW.value
        lifecycle.apply_checklist_update(task, [], uuid.uuid4())
        assert task.status == TaskStatus.PENDING.value
        assert task.progress == 0

    def test_completed_task_is_not_locked(self):
        actor = uuid.uuid4()
        task = _task([_item("a", True, str(actor))])
        task.status = TaskStatus.COMPLETED.value
        task.progress = 100

        item = task.todo_checklist[0]
        lifecycle.apply_checklist_update(task, [{"id": item["id"], "text": "a"}], actor)

        assert task.status == TaskStatus.PENDING.value


class TestSetStatus:
    def test_completed_forces_checklist_without_attribution(self):
        earlier = str(uuid.uuid4())
        task = _task([_item("a", True, earlier), _item("b")])

        lifecycle.set_status(task, TaskStatus.COMPLETED)

        assert task.status == TaskStatus.COMPLETED.value
        assert task.progress == 100
        assert all(item["completed"] for item in task.todo_checklist)
        assert task.todo_checklist[0]["completed_by"] == earlier
        assert task.todo_checklist[1]["completed_by"] is None

    def test_other_status_has_no_checklist_side_effects(self):
        task = _task([_item("a"), _item("b")])
        before = [dict(item) for item in task.todo_checklist]

        lifecycle.set_status(task, "In Progress")

        assert task.status == TaskStatus.IN_PROGRESS.value
        assert task.todo_checklist == before
        assert task.progress == 0

    def test_pending_to_completed_skips_review(self):
        task = _task([_item("a")])
        lifecycle.set_status(task, "Completed")
        assert task.status == TaskStatus.COMPLETED.value

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError):
            lifecycle.set_status(_task(), "Done")


class TestReview:
    def test_approve_credits_admin_for_incomplete_items(self):
        member, admin = str(uuid.uuid4()), uuid.uuid4()
        task = _task([_item("a", True, member), _item("b")])
        task.status = TaskStatus.IN_REVIEW.value

        lifecycle.review(task, "APPROVE", admin)

        assert task.todo_checklist[0]["completed_by"] == member
        assert task.todo_checklist[1]["completed"] is True
        assert task.todo_checklist[1]["completed_by"] == str(admin)

    def test_reject_returns_to_in_progress_untouched(self):
        task = _task([_item("a", True, "someone"), _item("b", True, "someone")])
        task.status = TaskStatus.IN_REVIEW.value
        task.progress = 100
        before = [dict(item) for item in task.todo_checklist]

        lifecycle.review(task, "REJECT", uuid.uuid4())

        assert task.status == TaskStatus.IN_PROGRESS.value
        assert task.todo_checklist == before
        assert task.progress == 100

    @pytest.mark.parametrize("action", ["approve", "Reject", "", "DELETE"])
    def test_anything_else_is_invalid(self, action):
        task = _task([_item("a")])
        with pytest.raises(InvalidAction):
            lifecycle.review(task, action, uuid.uuid4())
        assert task.status == TaskStatus.PENDING.value


# ---------------------------------------------------------------------------
# Master / child fan-out
# ---------------------------------------------------------------------------


class TestMasterTasks:
    def _master(self) -> Task:
        return _task(
            [_item("Plan", True, "creator"), _item("Execute")],
            assignment_type="individual",
            description="Quarterly review",
            priority="High",
            due_date=datetime(2030, 1, 15, 9, 0),
        )

    def test_is_master(self):
        master = self._master()
        assert lifecycle.is_master(master)
        assert not lifecycle.is_master(_task(assignment_type="group"))
        child = _task(assignment_type="individual", parent_task_id=master.id)
        assert not lifecycle.is_master(child)

    def test_build_child_tasks_one_per_assignee(self):
        master = self._master()
        assignees = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]

        children = lifecycle.build_child_tasks(master, assignees)

        assert len(children) == 3
        master_ids = {item["id"] for item in master.todo_checklist}
        seen_ids = set()
        for child in children:
            assert child.parent_task_id == master.id
            assert child.org_id == master.org_id
            assert child.title == master.title
            assert child.priority == "High"
            assert child.due_date == master.due_date
            assert child.status == TaskStatus.PENDING.value
            assert child.progress == 0
            assert [i["text"] for i in child.todo_checklist] == ["Plan", "Execute"]
            assert not any(i["completed"] for i in child.todo_checklist)
            ids = {i["id"] for i in child.todo_checklist}
            assert not ids & master_ids
            assert not ids & seen_ids
            seen_ids |= ids

    def test_propagate_master_edit_returns_changed_children(self):
        master = self._master()
        children = lifecycle.build_child_tasks(master, [uuid.uuid4(), uuid.uuid4()])
        children[1].title = "Renamed already"
        master.title = "Renamed already"

        changed = lifecycle.propagate_master_edit(master, children)

        assert changed == [children[0]]
        assert all(c.title == "Renamed already" for c in children)

    def test_propagation_leaves_child_progress_alone(self):
        master = self._master()
        (child,) = lifecycle.build_child_tasks(master, [uuid.uuid4()])
        child.status = TaskStatus.IN_PROGRESS.value
        child.progress = 50
        master.priority = "Low"
        master.description = None

        lifecycle.propagate_master_edit(master, [child])

        assert child.priority == "Low"
        assert child.description is None
        assert child.status == TaskStatus.IN_PROGRESS.value
        assert child.progress == 50
