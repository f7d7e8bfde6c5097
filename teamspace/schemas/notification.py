"""
Pydantic schemas for notification endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    sender_id: uuid.UUID | None
    sender_name: str | None
    related_task_id: uuid.UUID | None
    related_comment_id: uuid.UUID | None
    related_organization_id: uuid.UUID | None
    related_project_id: uuid.UUID | None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int
