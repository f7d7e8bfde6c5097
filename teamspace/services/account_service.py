"""
Account deletion and organization ownership transfer.

Deletion is a sequence of individually idempotent statements rather than one
transaction: every step matches on the user's id, and the step that clears
the id is the step that stamps the anonymized name, so a re-run after a
partial failure finds nothing left to stamp.

Order matters:

1. re-verify no organization is still owned
2. soft-delete the user row
3. anonymize actor references
4. remove the user from member sets
5. hard-delete data scoped solely to the user
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.errors import (
    AuthorizationError,
    ConflictError,
    DeletionBlockedError,
    NotFoundError,
    ValidationError,
)
from teamspace.models.activity import TaskActivity
from teamspace.models.base import utcnow
from teamspace.models.comment import Comment
from teamspace.models.member import OrgMember, OrgRole
from teamspace.models.notification import Notification
from teamspace.models.organization import Organization
from teamspace.models.personal_space import PersonalSpace
from teamspace.models.project import Project, ProjectMember
from teamspace.models.task import Task, TaskAssignee, TaskWatcher
from teamspace.models.user import DELETED_USER_NAME, FORMER_USER_NAME, User
from teamspace.models.workspace import Workspace, WorkspaceMember
from teamspace.schemas.account import (
    DataImpact,
    DeleteAccountResponse,
    DeletionAssessment,
    EmailAvailability,
    OwnedOrganization,
)

logger = logging.getLogger(__name__)


def blocking_factors_for(owned_count: int) -> list[str]:
    if owned_count > 0:
        return [f"Must transfer ownership of {owned_count} organization(s)"]
    return []


class AccountService:
    """Assessment, ownership transfer and soft deletion of user accounts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Assess
    # -----------------------------------------------------------------------

    async def owned_organizations(self, user_id: UUID) -> list[OwnedOrganization]:
        member_count = (
            select(func.count())
            .select_from(OrgMember)
            .where(OrgMember.org_id == Organization.id)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(Organization, member_count)
            .where(Organization.owner_id == user_id)
            .order_by(Organization.created_at)
        )
        return [
            OwnedOrganization(id=org.id, name=org.name, slug=org.slug, member_count=count)
            for org, count in result.all()
        ]

    async def assess_deletion(self, user_id: UUID) -> DeletionAssessment:
        """
        Report what deleting the account would touch.

        Owning an organization is the only blocker; every other number is
        informational.
        """
        owned = await self.owned_organizations(user_id)
        impact = DataImpact(
            active_tasks=await self._count(TaskAssignee, TaskAssignee.user_id == user_id),
            comments=await self._count(Comment, Comment.author_id == user_id),
            created_projects=await self._count(Project, Project.owner_id == user_id),
            task_activities=await self._count(TaskActivity, TaskActivity.performed_by == user_id),
            owned_workspaces=await self._count(Workspace, Workspace.owner_id == user_id),
        )
        blocking = blocking_factors_for(len(owned))
        return DeletionAssessment(
            can_delete=not blocking,
            owned_organizations=owned,
            data_impact=impact,
            blocking_factors=blocking,
        )

    # -----------------------------------------------------------------------
    # Transfer
    # -----------------------------------------------------------------------

    async def transfer_ownership(self, organization_id: UUID, from_user_id: UUID, to_user_id: UUID) -> None:
        """
        Move ownership to an existing member.

        The owner column is updated conditionally on the current owner; the
        new owner's role becomes ``owner`` and the previous owner's ``admin``.
        """
        org = await self.db.get(Organization, organization_id)
        if org is None:
            raise NotFoundError("Organization not found", code="ORG_NOT_FOUND")
        if org.owner_id != from_user_id:
            raise AuthorizationError("You are not the owner of this organization", code="NOT_ORG_OWNER")
        if to_user_id == from_user_id:
            raise ValidationError("New owner must be a different user", code="SAME_OWNER")

        is_member = (
            await self.db.execute(
                select(OrgMember.id).where(OrgMember.org_id == organization_id, OrgMember.user_id == to_user_id)
            )
        ).scalar_one_or_none()
        if is_member is None:
            raise ValidationError("New owner must be a member of the organization", code="NOT_A_MEMBER")

        result = await self.db.execute(
            update(Organization)
            .where(Organization.id == organization_id, Organization.owner_id == from_user_id)
            .values(owner_id=to_user_id, updated_at=utcnow())
        )
        if result.rowcount != 1:
            raise ConflictError("Organization ownership changed concurrently", code="OWNERSHIP_CHANGED")

        await self.db.execute(
            update(OrgMember)
            .where(OrgMember.org_id == organization_id, OrgMember.user_id == to_user_id)
            .values(role=OrgRole.owner)
        )
        await self.db.execute(
            update(OrgMember)
            .where(OrgMember.org_id == organization_id, OrgMember.user_id == from_user_id)
            .values(role=OrgRole.admin)
        )
        await self.db.execute(
            update(Workspace)
            .where(Workspace.organization_id == organization_id, Workspace.owner_id == from_user_id)
            .values(owner_id=to_user_id, updated_at=utcnow())
        )
        await self.db.refresh(org)
        logger.info(
            "Ownership of organization %s transferred from %s to %s", organization_id, from_user_id, to_user_id
        )

    # -----------------------------------------------------------------------
    # Soft delete
    # -----------------------------------------------------------------------

    async def soft_delete_user(self, user_id: UUID) -> DeleteAccountResponse:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        owned = await self._count(Organization, Organization.owner_id == user_id)
        if owned:
            raise DeletionBlockedError(blocking_factors_for(owned))

        if not user.deleted:
            original_email = user.email
            timestamp = int(utcnow().timestamp() * 1000)
            await self.db.execute(
                update(User)
                .where(User.id == user_id, User.deleted.is_(False))
                .values(
                    email=f"deleted_{timestamp}_{original_email}",
                    original_email=original_email,
                    display_name=DELETED_USER_NAME,
                    password_hash=None,
                    phone=None,
                    avatar_url=None,
                    email_verified=False,
                    deleted=True,
                    deleted_at=utcnow(),
                    updated_at=utcnow(),
                )
            )

        await self._anonymize_references(user_id)
        await self._remove_memberships(user_id)
        await self._delete_personal_data(user_id)
        await self.db.refresh(user)

        logger.info("User %s soft deleted", user_id)
        return DeleteAccountResponse(success=True, message="Account deleted successfully")

    async def _anonymize_references(self, user_id: UUID) -> None:
        await self.db.execute(
            update(Task).where(Task.created_by == user_id).values(created_by=None, created_by_name=FORMER_USER_NAME)
        )
        await self.db.execute(
            update(Comment).where(Comment.author_id == user_id).values(author_id=None, author_name=FORMER_USER_NAME)
        )
        await self.db.execute(
            update(TaskActivity)
            .where(TaskActivity.performed_by == user_id)
            .values(performed_by=None, performed_by_name=FORMER_USER_NAME)
        )
        await self.db.execute(
            update(Project)
            .where(Project.owner_id == user_id)
            .values(owner_id=None, owner_name=FORMER_USER_NAME, is_legacy=True)
        )
        await self.db.execute(
            update(Notification)
            .where(Notification.sender_id == user_id)
            .values(sender_id=None, sender_name=FORMER_USER_NAME)
        )

    async def _remove_memberships(self, user_id: UUID) -> None:
        for model in (OrgMember, WorkspaceMember, ProjectMember, TaskAssignee, TaskWatcher):
            await self.db.execute(delete(model).where(model.user_id == user_id))

    async def _delete_personal_data(self, user_id: UUID) -> None:
        """
        Personal workspaces cascade to their projects, tasks and task-scoped
        rows. Organization workspaces stay with the organization: any the
        user still owns pass to the organization's owner.
        """
        org_owner = (
            select(Organization.owner_id)
            .where(Organization.id == Workspace.organization_id)
            .scalar_subquery()
        )
        await self.db.execute(
            update(Workspace)
            .where(Workspace.owner_id == user_id, Workspace.organization_id.is_not(None))
            .values(owner_id=org_owner, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Workspace).where(Workspace.owner_id == user_id, Workspace.personal_space_id.is_not(None))
        )
        await self.db.execute(delete(PersonalSpace).where(PersonalSpace.user_id == user_id))
        await self.db.execute(delete(Notification).where(Notification.recipient_id == user_id))

    # -----------------------------------------------------------------------
    # Email availability
    # -----------------------------------------------------------------------

    async def check_email_availability(self, email: str) -> EmailAvailability:
        email = email.lower()
        active = await self._count(User, User.email == email, User.deleted.is_(False))
        if active:
            return EmailAvailability(available=False, reason="Email already registered")

        previously_deleted = await self._count(User, User.original_email == email, User.deleted.is_(True))
        if previously_deleted:
            return EmailAvailability(
                available=True, reason="Email available for re-registration", previously_deleted=True
            )
        return EmailAvailability(available=True, reason="Email available")

    async def _count(self, model: type, *criteria) -> int:
        result = await self.db.execute(select(func.count()).select_from(model).where(*criteria))
        return result.scalar_one()
