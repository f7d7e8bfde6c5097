"""
Project management endpoints.

CRUD operations for projects and project membership.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user
from teamspace.models.user import User
from teamspace.schemas.project import (
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectMemberRequest,
    ProjectResponse,
    ProjectUpdateRequest,
)
from teamspace.services.project_service import ProjectService

router = APIRouter()


def get_project_service(db: AsyncSession = Depends(get_db)) -> ProjectService:
    return ProjectService(db=db)


@router.get(
    "/workspaces/{workspace_id}/projects",
    response_model=ProjectListResponse,
    summary="List all projects in a workspace",
)
async def list_workspace_projects(
    workspace_id: UUID,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectListResponse:
    return await service.list_by_workspace(workspace_id, current_user)


@router.get(
    "/projects",
    response_model=ProjectListResponse,
    summary="List projects the current user owns or is a member of",
)
async def list_my_projects(
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectListResponse:
    return await service.list_mine(current_user)


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new project",
)
async def create_project(
    data: ProjectCreateRequest,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    """
    Create a project in a workspace the caller can access.

    Initial members are added to the owning workspace and notified.
    """
    return await service.create_project(data, current_user)


@router.get(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    summary="Get project by ID",
)
async def get_project(
    project_id: UUID,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return await service.get_project(project_id, current_user)


@router.patch(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    summary="Update project (owner only)",
)
async def update_project(
    project_id: UUID,
    data: ProjectUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return await service.update_project(project_id, data, current_user)


@router.post(
    "/projects/{project_id}/members",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a project member (owner only)",
)
async def add_project_member(
    project_id: UUID,
    data: ProjectMemberRequest,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return await service.add_member(project_id, data.user_id, current_user)
