"""
Project schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

ProjectStatusValue = Literal["planning", "active", "on_hold", "completed", "cancelled"]


class ProjectCreateRequest(BaseModel):
    workspace_id: UUID
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    status: ProjectStatusValue = "planning"
    start_date: datetime | None = None
    end_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    member_ids: list[UUID] = Field(default_factory=list)


class ProjectUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    status: ProjectStatusValue | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    tags: list[str] | None = None


class ProjectMemberRequest(BaseModel):
    user_id: UUID


class ProjectResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    name: str
    description: str | None
    status: str
    start_date: datetime | None
    end_date: datetime | None
    tags: list[str]
    owner_id: UUID | None
    owner_name: str | None
    is_legacy: bool
    member_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]
    total: int
