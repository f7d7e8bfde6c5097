"""
Organization management endpoints.

Create, list, members, roles.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user, get_org_member
from teamspace.models.member import OrgMember
from teamspace.models.organization import Organization
from teamspace.models.user import User
from teamspace.schemas.organization import (
    AddMemberRequest,
    MemberListResponse,
    MemberResponse,
    OrganizationCreateRequest,
    OrganizationListResponse,
    OrganizationResponse,
    UpdateRoleRequest,
)
from teamspace.services.organization_service import OrganizationService

router = APIRouter()


def get_org_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    return OrganizationService(db=db)


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=OrganizationListResponse,
    summary="List organizations the current user belongs to",
)
async def list_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationListResponse:
    return await service.list_mine(current_user)


@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create an organization.

    The slug is derived from the name. The creator becomes owner and a
    default "General" workspace is created.
    """
    return await service.create_organization(data, current_user)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=MemberListResponse,
    summary="List organization members",
)
async def list_members(
    org_and_member: tuple[Organization, OrgMember] = Depends(get_org_member),
    service: OrganizationService = Depends(get_org_service),
) -> MemberListResponse:
    org, _ = org_and_member
    return await service.list_members(org.id)


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member by email",
)
async def add_member(
    data: AddMemberRequest,
    org_and_member: tuple[Organization, OrgMember] = Depends(get_org_member),
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    org, member = org_and_member
    return await service.add_member(org, data, member, current_user)


@router.patch(
    "/{org_id}/members/{user_id}",
    response_model=MemberResponse,
    summary="Change a member's role",
)
async def update_member_role(
    user_id: UUID,
    data: UpdateRoleRequest,
    org_and_member: tuple[Organization, OrgMember] = Depends(get_org_member),
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    org, member = org_and_member
    return await service.update_member_role(org, user_id, data.role, member, current_user)


@router.delete(
    "/{org_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
)
async def remove_member(
    user_id: UUID,
    org_and_member: tuple[Organization, OrgMember] = Depends(get_org_member),
    service: OrganizationService = Depends(get_org_service),
) -> Response:
    org, member = org_and_member
    await service.remove_member(org, user_id, member)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{org_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave an organization",
)
async def leave_organization(
    org_and_member: tuple[Organization, OrgMember] = Depends(get_org_member),
    service: OrganizationService = Depends(get_org_service),
) -> Response:
    org, member = org_and_member
    await service.leave(org, member)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
