"""
Organization schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class OrganizationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)


class OrganizationResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    description: str | None
    owner_id: UUID
    role: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationListResponse(BaseModel):
    organizations: list[OrganizationResponse]


class MemberResponse(BaseModel):
    user_id: UUID
    display_name: str
    email: str
    role: str
    joined_at: datetime


class MemberListResponse(BaseModel):
    members: list[MemberResponse]
    total: int


class AddMemberRequest(BaseModel):
    email: EmailStr
    role: Literal["member", "admin"] = "member"


class UpdateRoleRequest(BaseModel):
    role: Literal["member", "admin"]
