"""
Task management endpoints.

CRUD, watchers, comments, reactions and activity history.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user
from teamspace.models.user import User
from teamspace.schemas.task import (
    ActivityListResponse,
    CommentCreateRequest,
    CommentResponse,
    ReactionRequest,
    TaskCreateRequest,
    TaskDetailResponse,
    TaskListResponse,
    TaskResponse,
    TaskUpdateRequest,
    WatcherRequest,
)
from teamspace.services.task_service import TaskService

router = APIRouter()


def get_task_service(db: AsyncSession = Depends(get_db)) -> TaskService:
    return TaskService(db=db)


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@router.get(
    "/tasks/assigned",
    response_model=TaskListResponse,
    summary="Tasks assigned to the current user",
)
async def list_assigned(
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    return await service.list_assigned(current_user)


@router.get(
    "/projects/{project_id}/tasks",
    response_model=TaskListResponse,
    summary="List tasks in a project",
)
async def list_project_tasks(
    project_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    return await service.list_by_project(project_id, current_user)


@router.get(
    "/workspaces/{workspace_id}/tasks",
    response_model=TaskListResponse,
    summary="List tasks across a workspace",
)
async def list_workspace_tasks(
    workspace_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    return await service.list_by_workspace(workspace_id, current_user)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.post(
    "/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new task",
)
async def create_task(
    data: TaskCreateRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    """
    Create a task in a project the caller can access.

    Logs a ``created`` activity, adds assignees to the workspace and
    notifies them.
    """
    return await service.create_task(data, current_user)


@router.get(
    "/tasks/{task_id}",
    response_model=TaskDetailResponse,
    summary="Get task with comments",
)
async def get_task(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskDetailResponse:
    return await service.get_task(task_id, current_user)


@router.patch(
    "/tasks/{task_id}",
    response_model=TaskResponse,
    summary="Update a task",
)
async def update_task(
    task_id: UUID,
    data: TaskUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    """
    Partial update. Only fields present in the body are applied; send
    ``null`` to clear ``description`` or ``due_date``.
    """
    return await service.update_task(task_id, data, current_user)


@router.delete(
    "/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task",
)
async def delete_task(
    task_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> Response:
    await service.delete_task(task_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Watchers
# ---------------------------------------------------------------------------

@router.post(
    "/tasks/{task_id}/watchers",
    response_model=TaskResponse,
    summary="Watch a task",
)
async def add_watcher(
    task_id: UUID,
    data: WatcherRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await service.add_watcher(task_id, current_user, data.user_id)


@router.delete(
    "/tasks/{task_id}/watchers",
    response_model=TaskResponse,
    summary="Stop watching a task",
)
async def remove_watcher(
    task_id: UUID,
    user_id: UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> TaskResponse:
    return await service.remove_watcher(task_id, current_user, user_id)


# ---------------------------------------------------------------------------
# Comments / Reactions
# ---------------------------------------------------------------------------

@router.post(
    "/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task",
)
async def add_comment(
    task_id: UUID,
    data: CommentCreateRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> CommentResponse:
    """``@name`` or ``@email`` mentions notify the matching users; watchers are notified too."""
    return await service.add_comment(task_id, data, current_user)


@router.post(
    "/tasks/{task_id}/comments/{comment_id}/reactions",
    response_model=CommentResponse,
    summary="React to a comment",
)
async def add_reaction(
    task_id: UUID,
    comment_id: UUID,
    data: ReactionRequest,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> CommentResponse:
    return await service.add_reaction(task_id, comment_id, data.emoji, current_user)


@router.delete(
    "/tasks/{task_id}/comments/{comment_id}/reactions",
    response_model=CommentResponse,
    summary="Remove your reaction from a comment",
)
async def remove_reaction(
    task_id: UUID,
    comment_id: UUID,
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> CommentResponse:
    return await service.remove_reaction(task_id, comment_id, current_user)


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

@router.get(
    "/tasks/{task_id}/activities",
    response_model=ActivityListResponse,
    summary="Task activity history, newest first",
)
async def list_activities(
    task_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
) -> ActivityListResponse:
    return await service.list_activities(task_id, current_user, page=page, limit=limit)
