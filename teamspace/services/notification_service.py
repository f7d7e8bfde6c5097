"""
Notification fan-out and read-state management.

Every fan-out operation takes a canonical recipient collection and the
acting user. Recipients equal to the actor are skipped silently, and each
remaining recipient is written in its own SAVEPOINT so one failure cannot
stop the rest. Notifications are polled; there is no push delivery.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.errors import NotFoundError
from teamspace.models.notification import Notification, NotificationType
from teamspace.models.user import Actor, User
from teamspace.schemas.notification import NotificationListResponse, NotificationResponse

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"@(\w+)")


def extract_mentions(text: str) -> list[str]:
    """Return every ``@word`` token in order of appearance, duplicates included."""
    return MENTION_PATTERN.findall(text)


def _unique(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


class NotificationService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Core write path
    # ------------------------------------------------------------------

    async def _fan_out(
        self,
        recipients: Iterable[uuid.UUID],
        sender: Actor,
        type: NotificationType,
        title: str,
        message: str,
        **related: Any,
    ) -> list[Notification]:
        created: list[Notification] = []
        for recipient_id in _unique(recipients):
            if recipient_id == sender.id:
                continue
            try:
                async with self.db.begin_nested():
                    notification = Notification(
                        recipient_id=recipient_id,
                        sender_id=sender.id,
                        type=type,
                        title=title,
                        message=message,
                        read=False,
                        **related,
                    )
                    self.db.add(notification)
                    await self.db.flush()
            except Exception:
                logger.exception(
                    "Failed to create %s notification for recipient %s", type.value, recipient_id
                )
                continue
            created.append(notification)
        return created

    # ------------------------------------------------------------------
    # Task events
    # ------------------------------------------------------------------

    async def notify_task_assigned(
        self, task_id: uuid.UUID, task_title: str, assignee_ids: Iterable[uuid.UUID], sender: Actor
    ) -> list[Notification]:
        return await self._fan_out(
            assignee_ids,
            sender,
            NotificationType.task_assigned,
            "New Task Assigned",
            f"You have been assigned to task: {task_title}",
            related_task_id=task_id,
        )

    async def notify_task_updated(
        self, task_id: uuid.UUID, task_title: str, assignee_ids: Iterable[uuid.UUID], sender: Actor
    ) -> list[Notification]:
        return await self._fan_out(
            assignee_ids,
            sender,
            NotificationType.task_updated,
            "Task Updated",
            f'Task "{task_title}" has been updated',
            related_task_id=task_id,
        )

    async def notify_comment_added(
        self, task_id: uuid.UUID, task_title: str, watcher_ids: Iterable[uuid.UUID], sender: Actor
    ) -> list[Notification]:
        return await self._fan_out(
            watcher_ids,
            sender,
            NotificationType.comment_added,
            "New Comment",
            f"A new comment was added to task: {task_title}",
            related_task_id=task_id,
        )

    async def notify_mention(
        self,
        task_id: uuid.UUID,
        task_title: str,
        comment_id: uuid.UUID,
        mentioned_ids: Iterable[uuid.UUID],
        sender: Actor,
    ) -> list[Notification]:
        return await self._fan_out(
            mentioned_ids,
            sender,
            NotificationType.mentioned,
            "You were mentioned",
            f"You were mentioned in a comment on task: {task_title}",
            related_task_id=task_id,
            related_comment_id=comment_id,
        )

    # ------------------------------------------------------------------
    # Organization and project events
    # ------------------------------------------------------------------

    async def notify_org_member_added(
        self, org_id: uuid.UUID, org_name: str, role: str, user_id: uuid.UUID, sender: Actor
    ) -> list[Notification]:
        return await self._fan_out(
            [user_id],
            sender,
            NotificationType.org_member_added,
            "Added to Organization",
            f'You have been added to the organization "{org_name}" as a {role}',
            related_organization_id=org_id,
        )

    async def notify_org_role_updated(
        self,
        org_id: uuid.UUID,
        org_name: str,
        old_role: str,
        new_role: str,
        user_id: uuid.UUID,
        sender: Actor,
    ) -> list[Notification]:
        return await self._fan_out(
            [user_id],
            sender,
            NotificationType.org_role_updated,
            "Role Updated",
            f'Your role in "{org_name}" has been updated from {old_role} to {new_role}',
            related_organization_id=org_id,
        )

    async def notify_project_member_added(
        self,
        project_id: uuid.UUID,
        project_name: str,
        workspace_name: str,
        org_name: str | None,
        user_ids: Iterable[uuid.UUID],
        sender: Actor,
    ) -> list[Notification]:
        message = f'You have been added to the project "{project_name}" in workspace "{workspace_name}"'
        if org_name:
            message += f' in "{org_name}"'
        return await self._fan_out(
            user_ids,
            sender,
            NotificationType.project_member_added,
            "Added to Project",
            message,
            related_project_id=project_id,
        )

    # ------------------------------------------------------------------
    # Mentions
    # ------------------------------------------------------------------

    async def resolve_mentions(self, tokens: list[str]) -> list[uuid.UUID]:
        """
        Match tokens against active users by exact, case-sensitive email or
        display name. Unmatched tokens are dropped; the result is distinct
        users in first-mention order.
        """
        if not tokens:
            return []
        wanted = _unique_str(tokens)
        result = await self.db.execute(
            select(User.id, User.email, User.display_name)
            .where(
                User.deleted.is_(False),
                or_(User.email.in_(wanted), User.display_name.in_(wanted)),
            )
            .order_by(User.created_at)
        )
        rows = result.all()
        resolved: list[uuid.UUID] = []
        for token in wanted:
            for user_id, email, display_name in rows:
                if token in (email, display_name):
                    resolved.append(user_id)
        return _unique(resolved)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: uuid.UUID,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> NotificationListResponse:
        """Newest first. A deleted sender is shown by its stored fallback name."""
        base_stmt = select(Notification).where(Notification.recipient_id == user_id)
        if unread_only:
            base_stmt = base_stmt.where(Notification.read.is_(False))

        total = (await self.db.execute(select(func.count()).select_from(base_stmt.subquery()))).scalar_one()

        stmt = (
            select(Notification, User.display_name)
            .outerjoin(User, (User.id == Notification.sender_id) & User.deleted.is_(False))
            .where(Notification.recipient_id == user_id)
        )
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).offset(skip).limit(limit)

        rows = (await self.db.execute(stmt)).all()
        return NotificationListResponse(
            notifications=[self._to_response(n, name) for n, name in rows],
            total=total,
            unread_count=await self.unread_count(user_id),
        )

    async def unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Notification).where(
                Notification.recipient_id == user_id,
                Notification.read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> NotificationResponse:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.recipient_id == user_id)
            .values(read=True)
        )
        if result.rowcount == 0:
            raise NotFoundError("Notification not found", code="NOTIFICATION_NOT_FOUND")

        row = (
            await self.db.execute(
                select(Notification, User.display_name)
                .outerjoin(User, (User.id == Notification.sender_id) & User.deleted.is_(False))
                .where(Notification.id == notification_id)
                .execution_options(populate_existing=True)
            )
        ).one()
        return self._to_response(*row)

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        return result.rowcount

    @staticmethod
    def _to_response(notification: Notification, sender_display_name: str | None) -> NotificationResponse:
        return NotificationResponse(
            id=notification.id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            sender_id=notification.sender_id,
            sender_name=sender_display_name or notification.sender_name,
            related_task_id=notification.related_task_id,
            related_comment_id=notification.related_comment_id,
            related_organization_id=notification.related_organization_id,
            related_project_id=notification.related_project_id,
            read=notification.read,
            created_at=notification.created_at,
        )


def _unique_str(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))
