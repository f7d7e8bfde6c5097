"""
Task business logic.

Handles task CRUD, watchers, comments and reactions. Every mutation persists
its primary change first, then runs an ordered PostMutationEffects chain:

    activity log  ->  workspace membership repair  ->  notification fan-out

Each effect is isolated, so a failing effect never undoes the task change or
an earlier effect.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.config import settings
from teamspace.core.database import add_to_set, upsert
from teamspace.core.effects import PostMutationEffects
from teamspace.core.errors import AuthorizationError, NotFoundError, ValidationError
from teamspace.models.base import utcnow
from teamspace.models.comment import Comment, CommentReaction
from teamspace.models.project import Project
from teamspace.models.task import Task, TaskAssignee, TaskPriority, TaskStatus, TaskWatcher
from teamspace.models.user import Actor, User
from teamspace.schemas.task import (
    ActivityListResponse,
    CommentCreateRequest,
    CommentResponse,
    ReactionGroup,
    TaskCreateRequest,
    TaskDetailResponse,
    TaskListResponse,
    TaskResponse,
    TaskUpdateRequest,
)
from teamspace.services.activity_service import ActivityService, snapshot_task
from teamspace.services.notification_service import NotificationService, extract_mentions
from teamspace.services.project_service import ProjectService
from teamspace.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


class TaskService:
    """Handles all task operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.activities = ActivityService(db)
        self.notifications = NotificationService(db)
        self.workspaces = WorkspaceService(db)
        self.projects = ProjectService(db)

    # -----------------------------------------------------------------------
    # Create Task
    # -----------------------------------------------------------------------

    async def create_task(self, data: TaskCreateRequest, user: User) -> TaskResponse:
        """
        Create a task. The creator watches it by default.

        Effects: ``created`` activity, workspace membership for assignees,
        ``task_assigned`` notifications to assignees other than the creator.
        """
        project = await self.projects.get_accessible(data.project_id, user.id)
        assignee_ids = list(dict.fromkeys(data.assignee_ids))
        await self._require_active_users(assignee_ids)

        task = Task(
            project_id=project.id,
            title=data.title.strip(),
            description=data.description,
            status=TaskStatus(data.status),
            priority=TaskPriority(data.priority),
            due_date=data.due_date,
            created_by=user.id,
        )
        self.db.add(task)
        await self.db.flush()

        for position, assignee_id in enumerate(assignee_ids):
            await add_to_set(
                self.db, TaskAssignee, {"task_id": task.id, "user_id": assignee_id, "position": position}
            )
        await add_to_set(self.db, TaskWatcher, {"task_id": task.id, "user_id": user.id})

        actor = Actor.of(user)
        task_id, title = task.id, task.title
        await (
            PostMutationEffects(self.db, label=f"create task {task_id}")
            .add("activity", lambda: self.activities.track_creation(task_id, actor, title))
            .add("workspace_membership", lambda: self.workspaces.ensure_memberships_for_task(assignee_ids, task_id))
            .add("notifications", lambda: self.notifications.notify_task_assigned(task_id, title, assignee_ids, actor))
            .run()
        )
        return await self._to_response(task_id)

    # -----------------------------------------------------------------------
    # Update Task
    # -----------------------------------------------------------------------

    async def update_task(self, task_id: UUID, data: TaskUpdateRequest, user: User) -> TaskResponse:
        """
        Apply the fields present in ``data``.

        Effects: one activity per changed tracked field (assignees expanded
        per user), workspace membership for newly assigned users,
        ``task_assigned`` to newly assigned users and ``task_updated`` to all
        current assignees when status or priority changed. The actor is
        never notified.
        """
        task = await self._get_accessible_task(task_id, user.id)
        before = await snapshot_task(self.db, task)
        fields = data.model_fields_set

        if data.title is not None:
            task.title = data.title.strip()
        if "description" in fields:
            task.description = data.description
        if data.status is not None:
            task.status = TaskStatus(data.status)
        if data.priority is not None:
            task.priority = TaskPriority(data.priority)
        if "due_date" in fields:
            task.due_date = data.due_date
        if data.assignee_ids is not None:
            await self._replace_assignees(task.id, list(dict.fromkeys(data.assignee_ids)))
        task.updated_at = utcnow()
        await self.db.flush()

        after = await snapshot_task(self.db, task)
        newly_assigned = [u for u in after.assignees if u not in before.assignees]
        notify_update = before.status != after.status or before.priority != after.priority

        actor = Actor.of(user)
        title = after.title

        async def notify() -> None:
            await self.notifications.notify_task_assigned(task_id, title, newly_assigned, actor)
            if notify_update:
                await self.notifications.notify_task_updated(task_id, title, after.assignees, actor)

        await (
            PostMutationEffects(self.db, label=f"update task {task_id}")
            .add("activity", lambda: self.activities.track_changes(task_id, actor, before, after))
            .add("workspace_membership", lambda: self.workspaces.ensure_memberships_for_task(newly_assigned, task_id))
            .add("notifications", notify)
            .run()
        )
        return await self._to_response(task_id)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def get_task(self, task_id: UUID, user: User) -> TaskDetailResponse:
        await self._get_accessible_task(task_id, user.id)
        task = await self._to_response(task_id)
        result = await self.db.execute(
            select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at)
        )
        comments = [await self._comment_response(c) for c in result.scalars().all()]
        return TaskDetailResponse(**task.model_dump(), comments=comments)

    async def list_by_project(self, project_id: UUID, user: User) -> TaskListResponse:
        await self.projects.get_accessible(project_id, user.id)
        stmt = select(Task.id).where(Task.project_id == project_id).order_by(Task.created_at.desc())
        return await self._list(stmt)

    async def list_by_workspace(self, workspace_id: UUID, user: User) -> TaskListResponse:
        await self.workspaces.get_accessible(workspace_id, user.id)
        stmt = (
            select(Task.id)
            .join(Project, Project.id == Task.project_id)
            .where(Project.workspace_id == workspace_id)
            .order_by(Task.due_date.is_(None), Task.due_date, Task.created_at.desc())
        )
        return await self._list(stmt)

    async def list_assigned(self, user: User) -> TaskListResponse:
        stmt = (
            select(Task.id)
            .join(TaskAssignee, TaskAssignee.task_id == Task.id)
            .where(TaskAssignee.user_id == user.id)
            .order_by(Task.due_date.is_(None), Task.due_date, Task.created_at.desc())
        )
        return await self._list(stmt)

    # -----------------------------------------------------------------------
    # Delete
    # -----------------------------------------------------------------------

    async def delete_task(self, task_id: UUID, user: User) -> None:
        """
        Task creator or project owner may delete; project members too when
        TASK_DELETE_ALLOWS_PROJECT_MEMBERS is enabled. Comments, activities,
        assignees, watchers and documents go with the task.
        """
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
        project = await self.db.get(Project, task.project_id)

        allowed = task.created_by == user.id or (project is not None and project.owner_id == user.id)
        if not allowed and settings.TASK_DELETE_ALLOWS_PROJECT_MEMBERS and project is not None:
            allowed = await self.projects.is_member(project.id, user.id)
        if not allowed:
            raise AuthorizationError("Permission denied", code="TASK_DELETE_FORBIDDEN")

        title = task.title
        await self.db.delete(task)
        await self.db.flush()
        logger.info(
            "Task %s (%r) deleted by %s from project %s", task_id, title, user.id, task.project_id
        )

    # -----------------------------------------------------------------------
    # Watchers
    # -----------------------------------------------------------------------

    async def add_watcher(self, task_id: UUID, user: User, watcher_id: UUID | None = None) -> TaskResponse:
        await self._get_accessible_task(task_id, user.id)
        watcher_id = watcher_id or user.id
        await self._require_active_users([watcher_id])
        await add_to_set(self.db, TaskWatcher, {"task_id": task_id, "user_id": watcher_id})
        return await self._to_response(task_id)

    async def remove_watcher(self, task_id: UUID, user: User, watcher_id: UUID | None = None) -> TaskResponse:
        await self._get_accessible_task(task_id, user.id)
        await self.db.execute(
            delete(TaskWatcher).where(
                TaskWatcher.task_id == task_id, TaskWatcher.user_id == (watcher_id or user.id)
            )
        )
        return await self._to_response(task_id)

    # -----------------------------------------------------------------------
    # Comments
    # -----------------------------------------------------------------------

    async def add_comment(self, task_id: UUID, data: CommentCreateRequest, user: User) -> CommentResponse:
        """
        Effects: ``comment_added`` activity, ``mentioned`` notifications for
        resolved @mentions, ``comment_added`` notifications for watchers.
        The author receives neither.
        """
        task = await self._get_accessible_task(task_id, user.id)
        content = data.content.strip()
        if not content:
            raise ValidationError("Content is required")

        mentioned_ids = await self.notifications.resolve_mentions(extract_mentions(content))
        comment = Comment(
            task_id=task.id,
            author_id=user.id,
            content=content,
            mentions=[str(m) for m in mentioned_ids],
        )
        self.db.add(comment)
        await self.db.flush()

        watcher_ids = await self._watcher_ids(task.id)
        actor = Actor.of(user)
        comment_id, title = comment.id, task.title

        async def notify() -> None:
            await self.notifications.notify_mention(task_id, title, comment_id, mentioned_ids, actor)
            await self.notifications.notify_comment_added(task_id, title, watcher_ids, actor)

        await (
            PostMutationEffects(self.db, label=f"comment {comment_id} on task {task_id}")
            .add("activity", lambda: self.activities.track_comment(task_id, actor, comment_id))
            .add("notifications", notify)
            .run()
        )
        comment = await self.db.get(Comment, comment_id, populate_existing=True)
        return await self._comment_response(comment)

    # -----------------------------------------------------------------------
    # Reactions
    # -----------------------------------------------------------------------

    async def add_reaction(self, task_id: UUID, comment_id: UUID, emoji: str, user: User) -> CommentResponse:
        """One reaction per user per comment; a new emoji replaces the previous one."""
        comment = await self._get_comment(task_id, comment_id, user.id)
        await upsert(
            self.db,
            CommentReaction,
            {"comment_id": comment.id, "user_id": user.id, "emoji": emoji, "reacted_at": utcnow()},
            index_elements=["comment_id", "user_id"],
            update_fields=["emoji", "reacted_at"],
        )
        actor = Actor.of(user)
        await (
            PostMutationEffects(self.db, label=f"reaction on comment {comment_id}")
            .add("activity", lambda: self.activities.track_reaction(task_id, actor, comment_id, emoji, added=True))
            .run()
        )
        return await self._comment_response(await self.db.get(Comment, comment_id, populate_existing=True))

    async def remove_reaction(self, task_id: UUID, comment_id: UUID, user: User) -> CommentResponse:
        comment = await self._get_comment(task_id, comment_id, user.id)
        existing = (
            await self.db.execute(
                select(CommentReaction.emoji).where(
                    CommentReaction.comment_id == comment.id, CommentReaction.user_id == user.id
                )
            )
        ).scalar_one_or_none()
        if existing is not None:
            await self.db.execute(
                delete(CommentReaction).where(
                    CommentReaction.comment_id == comment.id, CommentReaction.user_id == user.id
                )
            )
            actor = Actor.of(user)
            await (
                PostMutationEffects(self.db, label=f"reaction on comment {comment_id}")
                .add("activity", lambda: self.activities.track_reaction(task_id, actor, comment_id, existing, added=False))
                .run()
            )
        return await self._comment_response(await self.db.get(Comment, comment_id, populate_existing=True))

    async def list_activities(self, task_id: UUID, user: User, page: int = 1, limit: int = 50) -> ActivityListResponse:
        await self._get_accessible_task(task_id, user.id)
        return await self.activities.list_activities(task_id, page=page, limit=limit)

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _get_accessible_task(self, task_id: UUID, user_id: UUID) -> Task:
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
        await self.projects.get_accessible(task.project_id, user_id)
        return task

    async def _get_comment(self, task_id: UUID, comment_id: UUID, user_id: UUID) -> Comment:
        await self._get_accessible_task(task_id, user_id)
        comment = await self.db.get(Comment, comment_id)
        if comment is None or comment.task_id != task_id:
            raise NotFoundError("Comment not found", code="COMMENT_NOT_FOUND")
        return comment

    async def _replace_assignees(self, task_id: UUID, assignee_ids: list[UUID]) -> None:
        """Targeted set update: drop removed users, upsert the rest with their new position."""
        await self._require_active_users(assignee_ids)
        await self.db.execute(
            delete(TaskAssignee).where(
                TaskAssignee.task_id == task_id, TaskAssignee.user_id.not_in(assignee_ids)
            )
        )
        for position, assignee_id in enumerate(assignee_ids):
            await upsert(
                self.db,
                TaskAssignee,
                {"task_id": task_id, "user_id": assignee_id, "position": position},
                index_elements=["task_id", "user_id"],
                update_fields=["position"],
            )

    async def _require_active_users(self, user_ids: list[UUID]) -> None:
        if not user_ids:
            return
        found = (
            await self.db.execute(
                select(func.count()).select_from(User).where(User.id.in_(user_ids), User.deleted.is_(False))
            )
        ).scalar_one()
        if found != len(set(user_ids)):
            raise ValidationError("Assignee not found", code="INVALID_ASSIGNEE")

    async def _assignee_ids(self, task_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id).order_by(TaskAssignee.position)
        )
        return list(result.scalars().all())

    async def _watcher_ids(self, task_id: UUID) -> list[UUID]:
        result = await self.db.execute(select(TaskWatcher.user_id).where(TaskWatcher.task_id == task_id))
        return list(result.scalars().all())

    async def _list(self, id_stmt) -> TaskListResponse:
        task_ids = list((await self.db.execute(id_stmt)).scalars().all())
        tasks = [await self._to_response(task_id) for task_id in task_ids]
        return TaskListResponse(tasks=tasks, total=len(tasks))

    async def _to_response(self, task_id: UUID) -> TaskResponse:
        task = await self.db.get(Task, task_id, populate_existing=True)
        return TaskResponse(
            id=task.id,
            project_id=task.project_id,
            title=task.title,
            description=task.description,
            status=task.status.value,
            priority=task.priority.value,
            due_date=task.due_date,
            created_by=task.created_by,
            created_by_name=task.created_by_name,
            assignee_ids=await self._assignee_ids(task.id),
            watcher_ids=await self._watcher_ids(task.id),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    async def _comment_response(self, comment: Comment) -> CommentResponse:
        result = await self.db.execute(
            select(CommentReaction.emoji, CommentReaction.user_id)
            .where(CommentReaction.comment_id == comment.id)
            .order_by(CommentReaction.reacted_at)
        )
        groups: dict[str, list[UUID]] = {}
        for emoji, user_id in result.all():
            groups.setdefault(emoji, []).append(user_id)

        author_name = comment.author_name
        if comment.author_id is not None:
            author_name = (
                await self.db.execute(select(User.display_name).where(User.id == comment.author_id))
            ).scalar_one_or_none() or author_name

        return CommentResponse(
            id=comment.id,
            task_id=comment.task_id,
            author_id=comment.author_id,
            author_name=author_name,
            content=comment.content,
            mentions=[UUID(m) for m in comment.mentions or []],
            reactions=[ReactionGroup(emoji=e, users=u, count=len(u)) for e, u in groups.items()],
            created_at=comment.created_at,
        )
