"""
Context and workspace endpoints.

Personal space bootstrap, context switching, context members, user search,
workspace CRUD and explicit workspace membership.
"""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user
from teamspace.core.errors import ValidationError
from teamspace.models.user import User
from teamspace.models.workspace import WorkspaceContext, context_of
from teamspace.schemas.workspace import (
    ContextMembersResponse,
    CurrentContextResponse,
    PersonalSpaceResponse,
    SetContextRequest,
    UserSearchResponse,
    WorkspaceCreateRequest,
    WorkspaceListResponse,
    WorkspaceMemberRequest,
    WorkspaceResponse,
    WorkspaceUpdateRequest,
)
from teamspace.services.workspace_service import WorkspaceService

router = APIRouter()


def get_workspace_service(db: AsyncSession = Depends(get_db)) -> WorkspaceService:
    return WorkspaceService(db=db)


@router.get(
    "/personal-space",
    response_model=PersonalSpaceResponse,
    summary="Get (or create) the current user's personal space",
)
async def personal_space(
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> PersonalSpaceResponse:
    return await service.get_or_create_personal_space(current_user)


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------

ContextType = Literal["personal", "organization"]


@router.put(
    "/contexts/current",
    response_model=CurrentContextResponse,
    summary="Switch the current user's active context",
)
async def set_current_context(
    data: SetContextRequest,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> CurrentContextResponse:
    """The context must be the caller's own personal space or an organization they belong to."""
    return await service.set_current_context(current_user, context_of(data.context_type, data.context_id))


@router.get(
    "/contexts/members",
    response_model=ContextMembersResponse,
    summary="List the members of a context",
)
async def context_members(
    context_type: ContextType = Query(...),
    context_id: UUID = Query(...),
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> ContextMembersResponse:
    return await service.context_members(current_user, context_of(context_type, context_id))


@router.get(
    "/contexts/users/search",
    response_model=UserSearchResponse,
    summary="Search users within a context",
)
async def search_context_users(
    context_type: ContextType = Query(...),
    context_id: UUID = Query(...),
    q: str = Query(default=""),
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> UserSearchResponse:
    """At most ten members of the context whose name or email contains ``q``."""
    users = await service.search_context_users(current_user, context_of(context_type, context_id), q)
    return UserSearchResponse(users=users)


@router.get(
    "/users/search",
    response_model=UserSearchResponse,
    summary="Search active users by name or email",
)
async def search_users(
    q: str = Query(default=""),
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> UserSearchResponse:
    return UserSearchResponse(users=await service.search_users(q))


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------

@router.get(
    "/workspaces",
    response_model=WorkspaceListResponse,
    summary="List workspaces the current user owns or belongs to",
)
async def list_workspaces(
    context_type: Literal["personal", "organization"] | None = Query(default=None),
    context_id: UUID | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceListResponse:
    context: WorkspaceContext | None = None
    if context_type is not None:
        if context_id is None:
            raise ValidationError("context_id is required when context_type is given")
        context = context_of(context_type, context_id)
    return WorkspaceListResponse(workspaces=await service.list_workspaces(current_user, context))


@router.post(
    "/workspaces",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workspace",
)
async def create_workspace(
    data: WorkspaceCreateRequest,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceResponse:
    """Personal workspaces go in the caller's personal space; organization workspaces need membership."""
    return await service.create_workspace(data, current_user)


@router.get(
    "/workspaces/{workspace_id}",
    response_model=WorkspaceResponse,
    summary="Get a workspace",
)
async def get_workspace(
    workspace_id: UUID,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceResponse:
    return await service.get_workspace(workspace_id, current_user)


@router.patch(
    "/workspaces/{workspace_id}",
    response_model=WorkspaceResponse,
    summary="Update a workspace (owner only)",
)
async def update_workspace(
    workspace_id: UUID,
    data: WorkspaceUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceResponse:
    return await service.update_workspace(workspace_id, data, current_user)


@router.post(
    "/workspaces/{workspace_id}/members",
    response_model=WorkspaceResponse,
    summary="Add a workspace member (owner only)",
)
async def add_workspace_member(
    workspace_id: UUID,
    data: WorkspaceMemberRequest,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceResponse:
    return await service.add_member(workspace_id, data.user_id, current_user)


@router.delete(
    "/workspaces/{workspace_id}/members/{user_id}",
    response_model=WorkspaceResponse,
    summary="Remove a workspace member (owner only)",
)
async def remove_workspace_member(
    workspace_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceResponse:
    return await service.remove_member(workspace_id, user_id, current_user)
