"""
TaskActivity ORM model (append-only audit log).
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from teamspace.models.base import Base, JSONType, UUIDMixin, utcnow


class ActivityAction(str, enum.Enum):
    created = "created"
    updated = "updated"
    status_changed = "status_changed"
    assigned = "assigned"
    unassigned = "unassigned"
    priority_changed = "priority_changed"
    due_date_changed = "due_date_changed"
    title_changed = "title_changed"
    description_changed = "description_changed"
    comment_added = "comment_added"
    comment_reaction_added = "comment_reaction_added"
    comment_reaction_removed = "comment_reaction_removed"


class TaskActivity(Base, UUIDMixin):
    """One immutable audit record. Rows are never updated except for actor anonymization."""

    __tablename__ = "task_activities"
    __table_args__ = (Index("ix_task_activities_task_created", "task_id", "created_at"),)

    task_id: Mapped[UUID] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    performed_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    performed_by_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    field: Mapped[str | None] = mapped_column(String(40), nullable=True)
    old_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<TaskActivity id={self.id} task_id={self.task_id} action={self.action}>"
