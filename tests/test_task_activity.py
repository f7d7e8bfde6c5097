"""
Task activity tracking tests.

The diff is exercised directly on snapshots; persistence and the history
listing go through the services against SQLite.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from sqlalchemy import select

from teamspace.models.activity import TaskActivity
from teamspace.models.user import Actor
from teamspace.schemas.task import TaskUpdateRequest
from teamspace.services.activity_service import ActivityService, TaskSnapshot, compute_changes
from teamspace.services.task_service import TaskService
from tests.conftest import make_task

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def snapshot(**overrides) -> TaskSnapshot:
    values = {"title": "Write brief", "status": "todo", "priority": "medium"}
    values.update(overrides)
    return TaskSnapshot(**values)


# ---------------------------------------------------------------------------
# compute_changes
# ---------------------------------------------------------------------------

class TestComputeChanges:
    def test_identical_snapshots_emit_nothing(self):
        assert compute_changes(snapshot(), snapshot(), now=NOW) == []

    def test_one_record_per_changed_field(self):
        before = snapshot()
        after = snapshot(status="done", priority="high")
        records = compute_changes(before, after, now=NOW)

        assert [r.action for r in records] == ["status_changed", "priority_changed"]
        assert records[0].field == "status"
        assert records[0].old_value == "todo"
        assert records[0].new_value == "done"
        assert records[0].details == 'Changed status from "todo" to "done"'

    def test_write_order_is_fixed(self):
        u1, u2, u3 = uuid4(), uuid4(), uuid4()
        before = snapshot(assignees=(u1, u2))
        after = snapshot(
            title="Write final brief",
            description="Two pages",
            status="in_progress",
            priority="urgent",
            due_date=NOW,
            assignees=(u3, u1),
        )
        records = compute_changes(before, after, now=NOW)

        assert [r.action for r in records] == [
            "title_changed",
            "description_changed",
            "status_changed",
            "priority_changed",
            "due_date_changed",
            "assigned",
            "unassigned",
        ]
        assert records[5].new_value == str(u3)
        assert records[6].old_value == str(u2)

    def test_assignees_expand_per_user(self):
        u1, u2, u3, u4 = uuid4(), uuid4(), uuid4(), uuid4()
        before = snapshot(assignees=(u1, u2))
        after = snapshot(assignees=(u4, u3, u1))
        records = compute_changes(before, after, now=NOW)

        assert [(r.action, r.meta["user_id"]) for r in records] == [
            ("assigned", str(u4)),
            ("assigned", str(u3)),
            ("unassigned", str(u2)),
        ]

    def test_reordering_assignees_is_not_a_change(self):
        u1, u2 = uuid4(), uuid4()
        assert compute_changes(snapshot(assignees=(u1, u2)), snapshot(assignees=(u2, u1)), now=NOW) == []

    def test_due_date_compared_by_instant(self):
        aware = datetime(2026, 11, 1, 12, 0, tzinfo=UTC)
        naive = datetime(2026, 11, 1, 12, 0)
        assert compute_changes(snapshot(due_date=aware), snapshot(due_date=naive), now=NOW) == []

    def test_due_date_details(self):
        due = datetime(2026, 11, 1, tzinfo=UTC)
        later = due + timedelta(days=3)

        [added] = compute_changes(snapshot(), snapshot(due_date=due), now=NOW)
        [moved] = compute_changes(snapshot(due_date=due), snapshot(due_date=later), now=NOW)
        [removed] = compute_changes(snapshot(due_date=due), snapshot(), now=NOW)

        assert added.details == "Set due date to 2026-11-01"
        assert added.old_value is None
        assert added.new_value == due.isoformat()
        assert moved.details == "Changed due date from 2026-11-01 to 2026-11-04"
        assert removed.details == "Removed due date (was 2026-11-01)"

    def test_description_details(self):
        [added] = compute_changes(snapshot(), snapshot(description="Notes"), now=NOW)
        [edited] = compute_changes(snapshot(description="Notes"), snapshot(description="More"), now=NOW)
        assert added.details == "Added description"
        assert edited.details == "Updated description"

    def test_timestamps_strictly_increase(self):
        u1 = uuid4()
        records = compute_changes(
            snapshot(), snapshot(title="New", status="done", assignees=(u1,)), now=NOW
        )
        stamps = [r.created_at for r in records]
        assert stamps[0] == NOW
        assert all(a < b for a, b in zip(stamps, stamps[1:]))


# ---------------------------------------------------------------------------
# Persistence and listing
# ---------------------------------------------------------------------------

class TestActivityPersistence:
    async def test_update_writes_one_row_per_change(self, db, alice, bob, project_id):
        task_id = await make_task(db, alice, project_id)
        await TaskService(db).update_task(
            task_id,
            TaskUpdateRequest(title="Write brief v2", status="in_progress", assignee_ids=[bob.id]),
            alice,
        )

        rows = (
            await db.execute(
                select(TaskActivity).where(TaskActivity.task_id == task_id).order_by(TaskActivity.created_at)
            )
        ).scalars().all()
        assert [r.action for r in rows] == ["created", "title_changed", "status_changed", "assigned"]
        assert all(r.performed_by == alice.id for r in rows)
        assert rows[-1].meta == {"user_id": str(bob.id)}

    async def test_update_without_changes_writes_nothing(self, db, alice, project_id):
        task_id = await make_task(db, alice, project_id)
        await TaskService(db).update_task(task_id, TaskUpdateRequest(title="Write brief"), alice)

        count = len(
            (await db.execute(select(TaskActivity).where(TaskActivity.task_id == task_id))).scalars().all()
        )
        assert count == 1

    async def test_list_activities_newest_first_and_paginated(self, db, alice, project_id):
        task_id = await make_task(db, alice, project_id)
        service = TaskService(db)
        await service.update_task(task_id, TaskUpdateRequest(status="in_progress"), alice)
        await service.update_task(task_id, TaskUpdateRequest(status="done"), alice)

        page = await service.list_activities(task_id, alice, page=1, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert [a.new_value for a in page.activities] == ["done", "in_progress"]
        assert page.activities[0].performed_by_name == "Alice"

    async def test_listing_falls_back_to_stamped_name(self, db, alice, project_id):
        task_id = await make_task(db, alice, project_id)
        activity = ActivityService(db)
        [row] = await activity.record(
            task_id,
            Actor(id=alice.id, name="Alice"),
            compute_changes(snapshot(), snapshot(priority="low")),
        )
        row.performed_by = None
        row.performed_by_name = "Former User"
        await db.flush()

        listed = await activity.list_activities(task_id)
        assert listed.activities[0].performed_by is None
        assert listed.activities[0].performed_by_name == "Former User"
