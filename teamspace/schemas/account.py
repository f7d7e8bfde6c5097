"""
Account deletion and ownership transfer schemas.
"""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, EmailStr


class OwnedOrganization(BaseModel):
    id: UUID
    name: str
    slug: str
    member_count: int


class DataImpact(BaseModel):
    active_tasks: int
    comments: int
    created_projects: int
    task_activities: int
    owned_workspaces: int


class DeletionAssessment(BaseModel):
    can_delete: bool
    owned_organizations: list[OwnedOrganization]
    data_impact: DataImpact
    blocking_factors: list[str]


class TransferOwnershipRequest(BaseModel):
    organization_id: UUID
    new_owner_id: UUID


class DeleteAccountResponse(BaseModel):
    success: bool
    message: str


class EmailAvailabilityRequest(BaseModel):
    email: EmailStr


class EmailAvailability(BaseModel):
    available: bool
    reason: str
    previously_deleted: bool = False
