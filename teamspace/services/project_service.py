"""
Project business logic.

Project CRUD and project membership. Adding members repairs workspace
membership and notifies the new members through the post-mutation effect
pipeline.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import add_to_set
from teamspace.core.effects import PostMutationEffects
from teamspace.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from teamspace.models.organization import Organization
from teamspace.models.project import Project, ProjectMember, ProjectStatus
from teamspace.models.user import Actor, User
from teamspace.models.workspace import Workspace
from teamspace.schemas.project import (
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdateRequest,
)
from teamspace.services.notification_service import NotificationService
from teamspace.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


class ProjectService:
    """Handles all project operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.workspaces = WorkspaceService(db)
        self.notifications = NotificationService(db)

    # -----------------------------------------------------------------------
    # Create Project
    # -----------------------------------------------------------------------

    async def create_project(self, data: ProjectCreateRequest, user: User) -> ProjectResponse:
        """
        Create a project in a workspace the user can access.

        Initial members are added to the project, then (best effort) to the
        workspace, then notified.
        """
        workspace = await self.workspaces.get_accessible(data.workspace_id, user.id)
        if data.start_date and data.end_date and data.end_date < data.start_date:
            raise ValidationError("end_date must not be before start_date")

        member_ids = [m for m in dict.fromkeys(data.member_ids) if m != user.id]
        await self._require_active_users(member_ids)

        project = Project(
            workspace_id=workspace.id,
            name=data.name.strip(),
            description=data.description,
            status=ProjectStatus(data.status),
            start_date=data.start_date,
            end_date=data.end_date,
            tags=data.tags,
            owner_id=user.id,
        )
        self.db.add(project)
        await self.db.flush()

        for member_id in member_ids:
            await add_to_set(self.db, ProjectMember, {"project_id": project.id, "user_id": member_id})

        await self._member_effects(project, workspace, member_ids, Actor.of(user)).run()
        await self.db.refresh(project)
        return await self._to_response(project)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def list_by_workspace(self, workspace_id: UUID, user: User) -> ProjectListResponse:
        await self.workspaces.get_accessible(workspace_id, user.id)
        result = await self.db.execute(
            select(Project).where(Project.workspace_id == workspace_id).order_by(Project.created_at.desc())
        )
        projects = result.scalars().all()
        return ProjectListResponse(
            projects=[await self._to_response(p) for p in projects], total=len(projects)
        )

    async def list_mine(self, user: User) -> ProjectListResponse:
        """Projects the user owns or is a member of."""
        stmt = (
            select(Project)
            .outerjoin(
                ProjectMember,
                (ProjectMember.project_id == Project.id) & (ProjectMember.user_id == user.id),
            )
            .where(or_(Project.owner_id == user.id, ProjectMember.user_id.is_not(None)))
            .order_by(Project.created_at.desc())
        )
        projects = (await self.db.execute(stmt)).scalars().all()
        return ProjectListResponse(
            projects=[await self._to_response(p) for p in projects], total=len(projects)
        )

    async def get_project(self, project_id: UUID, user: User) -> ProjectResponse:
        project = await self.get_accessible(project_id, user.id)
        return await self._to_response(project)

    async def get_accessible(self, project_id: UUID, user_id: UUID) -> Project:
        """Owner, project member, or anyone with access to the owning workspace."""
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found", code="PROJECT_NOT_FOUND")
        if project.owner_id == user_id or await self.is_member(project.id, user_id):
            return project
        await self.workspaces.get_accessible(project.workspace_id, user_id)
        return project

    async def is_member(self, project_id: UUID, user_id: UUID) -> bool:
        result = await self.db.execute(
            select(ProjectMember.user_id).where(
                ProjectMember.project_id == project_id, ProjectMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none() is not None

    # -----------------------------------------------------------------------
    # Update
    # -----------------------------------------------------------------------

    async def update_project(self, project_id: UUID, data: ProjectUpdateRequest, user: User) -> ProjectResponse:
        project = await self._get_owned(project_id, user.id)

        if data.name is not None:
            project.name = data.name.strip()
        if "description" in data.model_fields_set:
            project.description = data.description
        if data.status is not None:
            project.status = ProjectStatus(data.status)
        if "start_date" in data.model_fields_set:
            project.start_date = data.start_date
        if "end_date" in data.model_fields_set:
            project.end_date = data.end_date
        if data.tags is not None:
            project.tags = data.tags

        await self.db.flush()
        await self.db.refresh(project)
        return await self._to_response(project)

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def add_member(self, project_id: UUID, member_id: UUID, user: User) -> ProjectResponse:
        """Owner-only. Duplicate membership is a conflict; the owner cannot be added."""
        project = await self._get_owned(project_id, user.id)
        if member_id == project.owner_id:
            raise ValidationError("User is already the project owner", code="ALREADY_OWNER")
        await self._require_active_users([member_id])

        added = await add_to_set(self.db, ProjectMember, {"project_id": project.id, "user_id": member_id})
        if not added:
            raise ConflictError("User is already a member of this project", code="ALREADY_MEMBER")

        workspace = await self.db.get(Workspace, project.workspace_id)
        await self._member_effects(project, workspace, [member_id], Actor.of(user)).run()
        await self.db.refresh(project)
        return await self._to_response(project)

    async def member_ids(self, project_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.added_at)
        )
        return list(result.scalars().all())

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    def _member_effects(
        self, project: Project, workspace: Workspace, member_ids: list[UUID], actor: Actor
    ) -> PostMutationEffects:
        project_id = project.id
        project_name = project.name
        workspace_name = workspace.name
        organization_id = workspace.organization_id

        async def notify() -> None:
            org_name = None
            if organization_id is not None:
                org_name = (
                    await self.db.execute(select(Organization.name).where(Organization.id == organization_id))
                ).scalar_one_or_none()
            await self.notifications.notify_project_member_added(
                project_id, project_name, workspace_name, org_name, member_ids, actor
            )

        return (
            PostMutationEffects(self.db, label=f"project {project_id} members")
            .add("workspace_membership", lambda: self.workspaces.ensure_memberships_for_project(member_ids, project_id))
            .add("notifications", notify)
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
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

    async def _get_owned(self, project_id: UUID, user_id: UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found", code="PROJECT_NOT_FOUND")
        if project.owner_id != user_id:
            raise AuthorizationError("Only the project owner can do this", code="NOT_PROJECT_OWNER")
        return project

    async def _to_response(self, project: Project) -> ProjectResponse:
        return ProjectResponse(
            id=project.id,
            workspace_id=project.workspace_id,
            name=project.name,
            description=project.description,
            status=project.status.value,
            start_date=project.start_date,
            end_date=project.end_date,
            tags=list(project.tags or []),
            owner_id=project.owner_id,
            owner_name=project.owner_name,
            is_legacy=project.is_legacy,
            member_ids=await self.member_ids(project.id),
            created_at=project.created_at,
            updated_at=project.updated_at,
        )
