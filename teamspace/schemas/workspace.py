"""
Context (personal space / organization) and workspace schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class WorkspaceCreateRequest(BaseModel):
    """``context_id`` is required for organization workspaces, ignored for personal ones."""

    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    color: str = Field(default="#3B82F6", pattern="^#[0-9A-Fa-f]{6}$")
    context_type: Literal["personal", "organization"] = "personal"
    context_id: UUID | None = None

    @model_validator(mode="after")
    def _organization_needs_id(self) -> WorkspaceCreateRequest:
        if self.context_type == "organization" and self.context_id is None:
            raise ValueError("context_id is required for organization workspaces")
        return self


class WorkspaceUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    color: str | None = Field(default=None, pattern="^#[0-9A-Fa-f]{6}$")


class WorkspaceMemberRequest(BaseModel):
    user_id: UUID


class WorkspaceResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    color: str
    owner_id: UUID
    context_type: str
    context_id: UUID
    member_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime


class WorkspaceListResponse(BaseModel):
    workspaces: list[WorkspaceResponse]


class PersonalSpaceResponse(BaseModel):
    id: UUID
    user_id: UUID
    theme: str
    default_view: str
    workspaces: list[WorkspaceResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Context switching, members and user search
# ---------------------------------------------------------------------------

class UserSummary(BaseModel):
    id: UUID
    email: str
    display_name: str

    model_config = {"from_attributes": True}


class UserSearchResponse(BaseModel):
    users: list[UserSummary]


class ContextMember(UserSummary):
    """``joined_at`` is None in a personal context."""

    role: str
    joined_at: datetime | None = None


class ContextMembersResponse(BaseModel):
    context_type: str
    context_id: UUID
    name: str
    members: list[ContextMember]


class SetContextRequest(BaseModel):
    context_type: Literal["personal", "organization"]
    context_id: UUID


class CurrentContextResponse(BaseModel):
    context_type: str
    context_id: UUID
    message: str = "Context updated"
