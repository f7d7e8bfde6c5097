"""
Workspace business logic.

Two concerns live here:

- the membership resolver, a best-effort consistency repair that makes every
  task assignee and project member a member of the owning workspace;
- context and workspace management (personal space bootstrap, workspace
  CRUD and explicit member management, context switching and user
  search).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import add_to_set
from teamspace.core.errors import AuthorizationError, NotFoundError
from teamspace.models.member import OrgMember, OrgRole
from teamspace.models.organization import Organization
from teamspace.models.personal_space import PersonalSpace
from teamspace.models.project import Project
from teamspace.models.task import Task
from teamspace.models.user import User
from teamspace.models.workspace import (
    OrganizationContext,
    PersonalContext,
    Workspace,
    WorkspaceContext,
    WorkspaceMember,
)
from teamspace.schemas.workspace import (
    ContextMember,
    ContextMembersResponse,
    CurrentContextResponse,
    PersonalSpaceResponse,
    UserSummary,
    WorkspaceCreateRequest,
    WorkspaceResponse,
    WorkspaceUpdateRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_PERSONAL_WORKSPACE = "My Tasks"
DEFAULT_ORGANIZATION_WORKSPACE = "General"
PERSONAL_CONTEXT_NAME = "Personal Space"
USER_SEARCH_LIMIT = 10


def _name_or_email_contains(query: str):
    return or_(
        User.display_name.icontains(query, autoescape=True),
        User.email.icontains(query, autoescape=True),
    )


class WorkspaceService:
    """Resolves and repairs workspace membership; manages contexts and workspaces."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Membership resolver
    # -----------------------------------------------------------------------

    async def resolve_workspace_id(
        self, *, project_id: UUID | None = None, task_id: UUID | None = None
    ) -> UUID | None:
        """Follow task -> project -> workspace. Returns None on any dangling link."""
        if task_id is not None:
            stmt = (
                select(Workspace.id)
                .join(Project, Project.workspace_id == Workspace.id)
                .join(Task, Task.project_id == Project.id)
                .where(Task.id == task_id)
            )
        else:
            stmt = (
                select(Workspace.id)
                .join(Project, Project.workspace_id == Workspace.id)
                .where(Project.id == project_id)
            )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def ensure_membership(
        self,
        user_id: UUID,
        *,
        project_id: UUID | None = None,
        task_id: UUID | None = None,
    ) -> bool:
        """
        Make ``user_id`` a member of the workspace owning the project or task.

        Returns True only when a membership row was added. Never raises for
        data problems: unresolvable references and unexpected errors are
        logged and reported as False, so callers' primary mutations survive.
        """
        if (project_id is None) == (task_id is None):
            raise TypeError("ensure_membership takes exactly one of project_id or task_id")

        try:
            async with self.db.begin_nested():
                return await self._ensure_membership(user_id, project_id, task_id)
        except Exception:
            logger.exception(
                "Error ensuring user in workspace (user=%s project=%s task=%s)",
                user_id, project_id, task_id,
            )
            return False

    async def _ensure_membership(
        self, user_id: UUID, project_id: UUID | None, task_id: UUID | None
    ) -> bool:
        workspace_id = await self.resolve_workspace_id(project_id=project_id, task_id=task_id)
        if workspace_id is None:
            logger.error(
                "Could not determine workspace for user assignment "
                "(user=%s project=%s task=%s)",
                user_id, project_id, task_id,
            )
            return False

        owner_id = (
            await self.db.execute(select(Workspace.owner_id).where(Workspace.id == workspace_id))
        ).scalar_one()
        if owner_id == user_id:
            return False

        added = await add_to_set(
            self.db, WorkspaceMember, {"workspace_id": workspace_id, "user_id": user_id}
        )
        if added:
            logger.info("Added user %s to workspace %s (auto_assignment)", user_id, workspace_id)
        return added

    async def ensure_memberships_for_task(self, user_ids: Iterable[UUID], task_id: UUID) -> int:
        added = 0
        for user_id in user_ids:
            if await self.ensure_membership(user_id, task_id=task_id):
                added += 1
        return added

    async def ensure_memberships_for_project(self, user_ids: Iterable[UUID], project_id: UUID) -> int:
        added = 0
        for user_id in user_ids:
            if await self.ensure_membership(user_id, project_id=project_id):
                added += 1
        return added

    async def member_ids(self, workspace_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(WorkspaceMember.user_id)
            .where(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.added_at)
        )
        return list(result.scalars().all())

    # -----------------------------------------------------------------------
    # Context accessors
    # -----------------------------------------------------------------------

    async def personal_space_of(self, user_id: UUID) -> PersonalSpace | None:
        result = await self.db.execute(select(PersonalSpace).where(PersonalSpace.user_id == user_id))
        return result.scalar_one_or_none()

    async def organization_member(self, org_id: UUID, user_id: UUID) -> OrgMember | None:
        result = await self.db.execute(
            select(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def can_use_context(self, user_id: UUID, context: WorkspaceContext) -> bool:
        match context:
            case PersonalContext(personal_space_id=space_id):
                space = await self.personal_space_of(user_id)
                return space is not None and space.id == space_id
            case OrganizationContext(organization_id=org_id):
                return await self.organization_member(org_id, user_id) is not None
        return False

    async def require_context(self, user_id: UUID, context: WorkspaceContext) -> None:
        if not await self.can_use_context(user_id, context):
            raise AuthorizationError("You do not have access to this context", code="CONTEXT_FORBIDDEN")

    # -----------------------------------------------------------------------
    # Current context, members and user search
    # -----------------------------------------------------------------------

    async def set_current_context(self, user: User, context: WorkspaceContext) -> CurrentContextResponse:
        """Remember the context the user switched to. Only accessible contexts are accepted."""
        await self.require_context(user.id, context)
        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(last_context_type=context.kind, last_context_id=context.id)
        )
        logger.info("User %s switched to %s context %s", user.id, context.kind, context.id)
        return CurrentContextResponse(context_type=context.kind, context_id=context.id)

    async def context_members(self, user: User, context: WorkspaceContext) -> ContextMembersResponse:
        """
        Everyone who works in a context.

        A personal context has a single member, its owner, reported with the
        plain ``member`` role and no join date. Organization members carry
        their organization role and join date.
        """
        await self.require_context(user.id, context)
        match context:
            case PersonalContext():
                name = PERSONAL_CONTEXT_NAME
                members = [
                    ContextMember(
                        id=user.id, email=user.email, display_name=user.display_name, role=OrgRole.member.value
                    )
                ]
            case OrganizationContext(organization_id=org_id):
                org = await self.db.get(Organization, org_id)
                name = org.name
                result = await self.db.execute(
                    select(User, OrgMember.role, OrgMember.joined_at)
                    .join(OrgMember, OrgMember.user_id == User.id)
                    .where(OrgMember.org_id == org_id)
                    .order_by(OrgMember.joined_at)
                )
                members = [
                    ContextMember(
                        id=member.id,
                        email=member.email,
                        display_name=member.display_name,
                        role=role.value,
                        joined_at=joined_at,
                    )
                    for member, role, joined_at in result.all()
                ]
        return ContextMembersResponse(context_type=context.kind, context_id=context.id, name=name, members=members)

    async def search_users(self, query: str) -> list[UserSummary]:
        """Active users whose name or email contains ``query``, ignoring case."""
        query = query.strip()
        if not query:
            return []
        stmt = select(User).where(User.deleted.is_(False), _name_or_email_contains(query))
        return await self._user_summaries(stmt)

    async def search_context_users(self, user: User, context: WorkspaceContext, query: str) -> list[UserSummary]:
        """Like ``search_users`` but limited to the people of one context (assignee pickers)."""
        query = query.strip()
        if not query:
            return []
        await self.require_context(user.id, context)
        stmt = select(User).where(User.deleted.is_(False), _name_or_email_contains(query))
        match context:
            case PersonalContext():
                stmt = stmt.where(User.id == user.id)
            case OrganizationContext(organization_id=org_id):
                stmt = stmt.join(OrgMember, OrgMember.user_id == User.id).where(OrgMember.org_id == org_id)
        return await self._user_summaries(stmt)

    async def _user_summaries(self, stmt) -> list[UserSummary]:
        result = await self.db.execute(stmt.order_by(User.display_name).limit(USER_SEARCH_LIMIT))
        return [UserSummary.model_validate(u) for u in result.scalars().all()]

    # -----------------------------------------------------------------------
    # Personal space
    # -----------------------------------------------------------------------

    async def get_or_create_personal_space(self, user: User) -> PersonalSpaceResponse:
        """Lazily create the personal space and its default workspace on first access."""
        space = await self.personal_space_of(user.id)
        if space is None:
            space = PersonalSpace(user_id=user.id)
            self.db.add(space)
            await self.db.flush()
            self.db.add(
                Workspace.in_context(
                    PersonalContext(space.id),
                    name=DEFAULT_PERSONAL_WORKSPACE,
                    description="Your personal workspace",
                    owner_id=user.id,
                )
            )
            await self.db.flush()
            logger.info("Created personal space %s for user %s", space.id, user.id)

        workspaces = await self._workspaces_in(PersonalContext(space.id), user.id)
        return PersonalSpaceResponse(
            id=space.id,
            user_id=space.user_id,
            theme=space.theme.value,
            default_view=space.default_view,
            workspaces=workspaces,
        )

    # -----------------------------------------------------------------------
    # Workspace CRUD
    # -----------------------------------------------------------------------

    async def create_workspace(self, data: WorkspaceCreateRequest, user: User) -> WorkspaceResponse:
        if data.context_type == "organization":
            context: WorkspaceContext = OrganizationContext(data.context_id)
        else:
            space = await self.personal_space_of(user.id)
            if space is None:
                await self.get_or_create_personal_space(user)
                space = await self.personal_space_of(user.id)
            context = PersonalContext(space.id)

        await self.require_context(user.id, context)

        workspace = Workspace.in_context(
            context,
            name=data.name.strip(),
            description=data.description,
            color=data.color,
            owner_id=user.id,
        )
        self.db.add(workspace)
        await self.db.flush()
        return await self._to_response(workspace)

    async def list_workspaces(self, user: User, context: WorkspaceContext | None = None) -> list[WorkspaceResponse]:
        """Workspaces the user owns or belongs to, optionally narrowed to one context."""
        if context is not None:
            return await self._workspaces_in(context, user.id)
        stmt = (
            select(Workspace)
            .outerjoin(
                WorkspaceMember,
                (WorkspaceMember.workspace_id == Workspace.id) & (WorkspaceMember.user_id == user.id),
            )
            .where(or_(Workspace.owner_id == user.id, WorkspaceMember.user_id.is_not(None)))
            .order_by(Workspace.created_at)
        )
        workspaces = (await self.db.execute(stmt)).scalars().all()
        return [await self._to_response(w) for w in workspaces]

    async def get_workspace(self, workspace_id: UUID, user: User) -> WorkspaceResponse:
        workspace = await self.get_accessible(workspace_id, user.id)
        return await self._to_response(workspace)

    async def get_accessible(self, workspace_id: UUID, user_id: UUID) -> Workspace:
        """Workspace the user owns, belongs to, or can reach through its organization."""
        workspace = await self.db.get(Workspace, workspace_id)
        if workspace is None:
            raise NotFoundError("Workspace not found", code="WORKSPACE_NOT_FOUND")
        if workspace.owner_id == user_id:
            return workspace
        is_member = (
            await self.db.execute(
                select(WorkspaceMember.user_id).where(
                    WorkspaceMember.workspace_id == workspace_id,
                    WorkspaceMember.user_id == user_id,
                )
            )
        ).scalar_one_or_none()
        if is_member is None:
            context = workspace.context
            if not (isinstance(context, OrganizationContext) and await self.can_use_context(user_id, context)):
                raise AuthorizationError("You do not have access to this workspace", code="WORKSPACE_FORBIDDEN")
        return workspace

    async def update_workspace(
        self, workspace_id: UUID, data: WorkspaceUpdateRequest, user: User
    ) -> WorkspaceResponse:
        workspace = await self._get_owned(workspace_id, user.id)
        if data.name is not None:
            workspace.name = data.name.strip()
        if "description" in data.model_fields_set:
            workspace.description = data.description
        if data.color is not None:
            workspace.color = data.color
        await self.db.flush()
        return await self._to_response(workspace)

    async def add_member(self, workspace_id: UUID, member_id: UUID, user: User) -> WorkspaceResponse:
        workspace = await self._get_owned(workspace_id, user.id)
        active = await self.db.execute(select(User.id).where(User.id == member_id, User.deleted.is_(False)))
        if active.scalar_one_or_none() is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        if member_id != workspace.owner_id:
            await add_to_set(self.db, WorkspaceMember, {"workspace_id": workspace.id, "user_id": member_id})
        return await self._to_response(workspace)

    async def remove_member(self, workspace_id: UUID, member_id: UUID, user: User) -> WorkspaceResponse:
        workspace = await self._get_owned(workspace_id, user.id)
        await self.db.execute(
            delete(WorkspaceMember).where(
                WorkspaceMember.workspace_id == workspace.id,
                WorkspaceMember.user_id == member_id,
            )
        )
        return await self._to_response(workspace)

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _get_owned(self, workspace_id: UUID, user_id: UUID) -> Workspace:
        workspace = await self.db.get(Workspace, workspace_id)
        if workspace is None or workspace.owner_id != user_id:
            raise NotFoundError("Workspace not found", code="WORKSPACE_NOT_FOUND")
        return workspace

    async def _workspaces_in(self, context: WorkspaceContext, user_id: UUID) -> list[WorkspaceResponse]:
        match context:
            case PersonalContext(personal_space_id=space_id):
                stmt = select(Workspace).where(Workspace.personal_space_id == space_id)
            case OrganizationContext(organization_id=org_id):
                stmt = select(Workspace).where(Workspace.organization_id == org_id)
        stmt = (
            stmt.outerjoin(
                WorkspaceMember,
                (WorkspaceMember.workspace_id == Workspace.id) & (WorkspaceMember.user_id == user_id),
            )
            .where(or_(Workspace.owner_id == user_id, WorkspaceMember.user_id.is_not(None)))
            .order_by(Workspace.created_at)
        )
        workspaces = (await self.db.execute(stmt)).scalars().all()
        return [await self._to_response(w) for w in workspaces]

    async def _to_response(self, workspace: Workspace) -> WorkspaceResponse:
        context = workspace.context
        return WorkspaceResponse(
            id=workspace.id,
            name=workspace.name,
            description=workspace.description,
            color=workspace.color,
            owner_id=workspace.owner_id,
            context_type=context.kind,
            context_id=context.id,
            member_ids=await self.member_ids(workspace.id),
            created_at=workspace.created_at,
        )
