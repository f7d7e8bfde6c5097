"""
Task schemas.

Request/response models for task CRUD, watchers, comments, reactions and
activity endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

TaskStatusValue = Literal["todo", "in_progress", "done"]
TaskPriorityValue = Literal["low", "medium", "high", "urgent"]


# ---------------------------------------------------------------------------
# Task Create
# ---------------------------------------------------------------------------

class TaskCreateRequest(BaseModel):
    """Request body for POST /tasks."""

    project_id: UUID
    title: str = Field(min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=20000)
    status: TaskStatusValue = "todo"
    priority: TaskPriorityValue = "medium"
    due_date: datetime | None = None
    assignee_ids: list[UUID] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Task Update
# ---------------------------------------------------------------------------

class TaskUpdateRequest(BaseModel):
    """
    Request body for PATCH /tasks/{task_id}.

    Only fields present in the body are applied; an explicit ``null`` clears
    ``description`` or ``due_date``.
    """

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=20000)
    status: TaskStatusValue | None = None
    priority: TaskPriorityValue | None = None
    due_date: datetime | None = None
    assignee_ids: list[UUID] | None = None


# ---------------------------------------------------------------------------
# Task responses
# ---------------------------------------------------------------------------

class TaskResponse(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    created_by: UUID | None
    created_by_name: str | None
    assignee_ids: list[UUID] = Field(default_factory=list)
    watcher_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    total: int


class TaskDetailResponse(TaskResponse):
    comments: list[CommentResponse] = Field(default_factory=list)


class WatcherRequest(BaseModel):
    """Body for POST /tasks/{task_id}/watchers. Defaults to the current user."""

    user_id: UUID | None = None


# ---------------------------------------------------------------------------
# Comments and reactions
# ---------------------------------------------------------------------------

class CommentCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class ReactionRequest(BaseModel):
    emoji: str = Field(min_length=1, max_length=32)


class ReactionGroup(BaseModel):
    emoji: str
    users: list[UUID]
    count: int


class CommentResponse(BaseModel):
    id: UUID
    task_id: UUID
    author_id: UUID | None
    author_name: str | None
    content: str
    mentions: list[UUID] = Field(default_factory=list)
    reactions: list[ReactionGroup] = Field(default_factory=list)
    created_at: datetime


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

class ActivityResponse(BaseModel):
    id: UUID
    task_id: UUID
    action: str
    field: str | None
    old_value: Any = None
    new_value: Any = None
    details: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    performed_by: UUID | None
    performed_by_name: str | None
    created_at: datetime


class ActivityListResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    page: int
    total_pages: int


TaskDetailResponse.model_rebuild()
