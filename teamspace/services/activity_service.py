"""
Task activity tracking.

Turns task mutations into ordered, append-only TaskActivity rows. The diff
itself (``compute_changes``) is a pure function over two snapshots so it can
be reasoned about and tested without a database.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.models.activity import ActivityAction, TaskActivity
from teamspace.models.base import utcnow
from teamspace.models.task import Task, TaskAssignee
from teamspace.models.user import Actor, User
from teamspace.schemas.task import ActivityListResponse, ActivityResponse

logger = logging.getLogger(__name__)

# Write order for a single update call; assignee records always come last.
TRACKED_FIELDS = ("title", "description", "status", "priority", "due_date")

FIELD_ACTIONS = {
    "title": ActivityAction.title_changed,
    "description": ActivityAction.description_changed,
    "status": ActivityAction.status_changed,
    "priority": ActivityAction.priority_changed,
    "due_date": ActivityAction.due_date_changed,
}


# ---------------------------------------------------------------------------
# Snapshots and pure diff
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskSnapshot:
    """The tracked fields of a task at one point in time."""

    title: str
    description: str | None = None
    status: str = "todo"
    priority: str = "medium"
    due_date: datetime | None = None
    assignees: tuple[UUID, ...] = ()


@dataclass
class ActivityRecord:
    action: str
    details: str
    field: str | None = None
    old_value: Any = None
    new_value: Any = None
    meta: dict[str, Any] = dataclasses.field(default_factory=dict)
    created_at: datetime | None = None


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive timestamps (e.g. read back from SQLite) are taken as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _json_safe(value: Any) -> Any:
    value = _enum_value(value)
    if isinstance(value, datetime):
        return _as_utc(value).isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _format_date(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%d")


def _describe(name: str, old: Any, new: Any) -> str:
    if name == "description":
        return "Updated description" if old else "Added description"
    if name == "due_date":
        if old is None:
            return f"Set due date to {_format_date(new)}"
        if new is None:
            return f"Removed due date (was {_format_date(old)})"
        return f"Changed due date from {_format_date(old)} to {_format_date(new)}"
    if name in ("title", "status", "priority"):
        return f'Changed {name} from "{_enum_value(old)}" to "{_enum_value(new)}"'
    return f"Updated {name}"


def _changed(name: str, old: Any, new: Any) -> bool:
    if name == "due_date":
        return _as_utc(old) != _as_utc(new)
    return _enum_value(old) != _enum_value(new)


def compute_changes(
    before: TaskSnapshot,
    after: TaskSnapshot,
    now: datetime | None = None,
) -> list[ActivityRecord]:
    """
    Diff two snapshots into activity records.

    One record per changed scalar field (in TRACKED_FIELDS order), then one
    ``assigned`` record per added assignee (in the new list's order), then one
    ``unassigned`` record per removed assignee (in the old list's order).
    Assignee order alone is not a change. Timestamps are strictly increasing
    in emission order.
    """
    records: list[ActivityRecord] = []

    for name in TRACKED_FIELDS:
        old = getattr(before, name)
        new = getattr(after, name)
        if not _changed(name, old, new):
            continue
        records.append(
            ActivityRecord(
                action=FIELD_ACTIONS.get(name, ActivityAction.updated).value,
                field=name,
                old_value=_json_safe(old),
                new_value=_json_safe(new),
                details=_describe(name, old, new),
            )
        )

    old_ids = set(before.assignees)
    new_ids = set(after.assignees)
    if old_ids != new_ids:
        for user_id in after.assignees:
            if user_id not in old_ids:
                records.append(
                    ActivityRecord(
                        action=ActivityAction.assigned.value,
                        field="assignees",
                        old_value=None,
                        new_value=str(user_id),
                        details="Assigned user",
                        meta={"user_id": str(user_id)},
                    )
                )
        for user_id in before.assignees:
            if user_id not in new_ids:
                records.append(
                    ActivityRecord(
                        action=ActivityAction.unassigned.value,
                        field="assignees",
                        old_value=str(user_id),
                        new_value=None,
                        details="Unassigned user",
                        meta={"user_id": str(user_id)},
                    )
                )

    base = now or utcnow()
    for offset, record in enumerate(records):
        record.created_at = base + timedelta(microseconds=offset)
    return records


async def snapshot_task(db: AsyncSession, task: Task) -> TaskSnapshot:
    """Capture the tracked fields of ``task``, reading assignees in stored order."""
    result = await db.execute(
        select(TaskAssignee.user_id)
        .where(TaskAssignee.task_id == task.id)
        .order_by(TaskAssignee.position)
    )
    return TaskSnapshot(
        title=task.title,
        description=task.description,
        status=_enum_value(task.status),
        priority=_enum_value(task.priority),
        due_date=task.due_date,
        assignees=tuple(result.scalars().all()),
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ActivityService:
    """Writes and reads TaskActivity rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(
        self, task_id: UUID, actor: Actor, records: Sequence[ActivityRecord]
    ) -> list[TaskActivity]:
        rows = [
            TaskActivity(
                task_id=task_id,
                performed_by=actor.id,
                action=r.action,
                field=r.field,
                old_value=r.old_value,
                new_value=r.new_value,
                details=r.details,
                meta=r.meta,
                created_at=r.created_at or utcnow(),
            )
            for r in records
        ]
        self.db.add_all(rows)
        await self.db.flush()
        return rows

    async def track_creation(self, task_id: UUID, actor: Actor, title: str) -> TaskActivity:
        [row] = await self.record(
            task_id,
            actor,
            [ActivityRecord(action=ActivityAction.created.value, details=f'Created task "{title}"')],
        )
        return row

    async def track_changes(
        self, task_id: UUID, actor: Actor, before: TaskSnapshot, after: TaskSnapshot
    ) -> list[TaskActivity]:
        records = compute_changes(before, after)
        if not records:
            return []
        rows = await self.record(task_id, actor, records)
        logger.debug("Logged %d activity records for task %s", len(rows), task_id)
        return rows

    async def track_comment(self, task_id: UUID, actor: Actor, comment_id: UUID) -> TaskActivity:
        [row] = await self.record(
            task_id,
            actor,
            [
                ActivityRecord(
                    action=ActivityAction.comment_added.value,
                    details="Added a comment",
                    meta={"comment_id": str(comment_id)},
                )
            ],
        )
        return row

    async def track_reaction(
        self, task_id: UUID, actor: Actor, comment_id: UUID, emoji: str, added: bool
    ) -> TaskActivity:
        action = ActivityAction.comment_reaction_added if added else ActivityAction.comment_reaction_removed
        details = f"Reacted with {emoji} to a comment" if added else f"Removed {emoji} reaction from a comment"
        [row] = await self.record(
            task_id,
            actor,
            [ActivityRecord(action=action.value, details=details, meta={"comment_id": str(comment_id), "emoji": emoji})],
        )
        return row

    # -----------------------------------------------------------------------
    # Read side
    # -----------------------------------------------------------------------

    async def list_activities(self, task_id: UUID, page: int = 1, limit: int = 50) -> ActivityListResponse:
        """Newest first. Anonymized actors are shown under their stamped name."""
        total = (
            await self.db.execute(
                select(func.count()).select_from(TaskActivity).where(TaskActivity.task_id == task_id)
            )
        ).scalar_one()

        result = await self.db.execute(
            select(TaskActivity, User.display_name)
            .outerjoin(User, User.id == TaskActivity.performed_by)
            .where(TaskActivity.task_id == task_id)
            .order_by(TaskActivity.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            ActivityResponse(
                id=activity.id,
                task_id=activity.task_id,
                action=activity.action,
                field=activity.field,
                old_value=activity.old_value,
                new_value=activity.new_value,
                details=activity.details,
                metadata=activity.meta or {},
                performed_by=activity.performed_by,
                performed_by_name=display_name or activity.performed_by_name,
                created_at=activity.created_at,
            )
            for activity, display_name in result.all()
        ]
        return ActivityListResponse(
            activities=items,
            total=total,
            page=page,
            total_pages=math.ceil(total / limit) if total else 0,
        )
