"""
Organization business logic.

Handles org creation and member management.
All queries scoped by org_id.
"""

from __future__ import annotations

import logging
import re
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import add_to_set
from teamspace.core.effects import PostMutationEffects
from teamspace.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from teamspace.models.member import OrgMember, OrgRole
from teamspace.models.organization import Organization
from teamspace.models.user import Actor, User
from teamspace.models.workspace import OrganizationContext, Workspace
from teamspace.schemas.organization import (
    AddMemberRequest,
    MemberListResponse,
    MemberResponse,
    OrganizationCreateRequest,
    OrganizationListResponse,
    OrganizationResponse,
)
from teamspace.services.notification_service import NotificationService
from teamspace.services.workspace_service import DEFAULT_ORGANIZATION_WORKSPACE

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"-+")


def slugify(name: str) -> str:
    """Lowercase, keep ``[a-z0-9-]``, collapse whitespace and dashes."""
    slug = _SLUG_STRIP.sub("", name.lower())
    slug = _SLUG_SPACES.sub("-", slug)
    slug = _SLUG_DASHES.sub("-", slug).strip("-")
    return slug or "organization"


class OrganizationService:
    """Handles all organization operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.notifications = NotificationService(db)

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(self, data: OrganizationCreateRequest, owner: User) -> OrganizationResponse:
        """
        Create a new organization.

        - Generates a unique slug from the name (``name``, ``name-1``, ...)
        - Assigns creator as Owner
        - Creates the default "General" workspace
        """
        name = data.name.strip()
        if not name:
            raise ValidationError("Name is required")

        base_slug = slugify(name)
        slug, counter = base_slug, 1
        while await self._slug_taken(slug):
            slug = f"{base_slug}-{counter}"
            counter += 1

        org = Organization(
            name=name,
            slug=slug,
            description=data.description.strip() if data.description else None,
            owner_id=owner.id,
        )
        self.db.add(org)
        await self.db.flush()

        self.db.add(OrgMember(org_id=org.id, user_id=owner.id, role=OrgRole.owner))
        self.db.add(
            Workspace.in_context(
                OrganizationContext(org.id),
                name=DEFAULT_ORGANIZATION_WORKSPACE,
                description="Default workspace for the organization",
                color="#10b981",
                owner_id=owner.id,
            )
        )
        await self.db.flush()

        logger.info("Organization %s (%s) created by %s", org.id, slug, owner.id)
        return self._to_response(org, OrgRole.owner)

    # -----------------------------------------------------------------------
    # List
    # -----------------------------------------------------------------------

    async def list_mine(self, user: User) -> OrganizationListResponse:
        result = await self.db.execute(
            select(Organization, OrgMember.role)
            .join(OrgMember, OrgMember.org_id == Organization.id)
            .where(OrgMember.user_id == user.id)
            .order_by(Organization.created_at)
        )
        return OrganizationListResponse(
            organizations=[self._to_response(org, role) for org, role in result.all()]
        )

    async def list_members(self, org_id: UUID) -> MemberListResponse:
        """List all members of an organization with user details."""
        result = await self.db.execute(
            select(OrgMember, User)
            .join(User, OrgMember.user_id == User.id)
            .where(OrgMember.org_id == org_id)
            .order_by(OrgMember.joined_at)
        )
        members = [self._member_response(member, user) for member, user in result.all()]
        return MemberListResponse(members=members, total=len(members))

    # -----------------------------------------------------------------------
    # Add Member
    # -----------------------------------------------------------------------

    async def add_member(
        self, org: Organization, data: AddMemberRequest, acting_member: OrgMember, actor: User
    ) -> MemberResponse:
        """
        Add an existing user by email.

        - Owner or admin only
        - Role is member or admin
        - The new member is notified (best effort)
        """
        self._require_role(acting_member, OrgRole.owner, OrgRole.admin)

        result = await self.db.execute(
            select(User).where(User.email == data.email.lower(), User.deleted.is_(False))
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        added = await add_to_set(
            self.db, OrgMember, {"org_id": org.id, "user_id": user.id, "role": OrgRole(data.role)}
        )
        if not added:
            raise ConflictError("User is already a member of this organization", code="ALREADY_MEMBER")

        org_id, org_name, role, user_id = org.id, org.name, data.role, user.id
        sender = Actor.of(actor)
        await (
            PostMutationEffects(self.db, label=f"org {org_id} add member {user_id}")
            .add("notifications", lambda: self.notifications.notify_org_member_added(org_id, org_name, role, user_id, sender))
            .run()
        )
        return await self._get_member_response(org_id, user_id)

    # -----------------------------------------------------------------------
    # Update Member Role
    # -----------------------------------------------------------------------

    async def update_member_role(
        self, org: Organization, target_user_id: UUID, new_role: str, acting_member: OrgMember, actor: User
    ) -> MemberResponse:
        """
        Change a member's role.

        - Owner only
        - Cannot change the owner's role (ownership moves via transfer)
        - The member is notified of the change
        """
        self._require_role(acting_member, OrgRole.owner)
        target = await self._get_member(org.id, target_user_id)
        if target.role == OrgRole.owner:
            raise AuthorizationError("Cannot change the owner's role", code="CANNOT_CHANGE_OWNER")

        old_role = target.role.value
        target.role = OrgRole(new_role)
        await self.db.flush()

        if old_role != new_role:
            org_id, org_name = org.id, org.name
            sender = Actor.of(actor)
            await (
                PostMutationEffects(self.db, label=f"org {org_id} role {target_user_id}")
                .add(
                    "notifications",
                    lambda: self.notifications.notify_org_role_updated(
                        org_id, org_name, old_role, new_role, target_user_id, sender
                    ),
                )
                .run()
            )
        return await self._get_member_response(org.id, target_user_id)

    # -----------------------------------------------------------------------
    # Remove Member / Leave
    # -----------------------------------------------------------------------

    async def remove_member(self, org: Organization, target_user_id: UUID, acting_member: OrgMember) -> None:
        """Owner or admin removes a member. The owner can never be removed."""
        self._require_role(acting_member, OrgRole.owner, OrgRole.admin)
        target = await self._get_member(org.id, target_user_id)
        if target.role == OrgRole.owner or target_user_id == org.owner_id:
            raise AuthorizationError("Cannot remove the organization owner", code="CANNOT_REMOVE_OWNER")
        await self._delete_member(org.id, target_user_id)
        logger.info("User %s removed from organization %s", target_user_id, org.id)

    async def leave(self, org: Organization, member: OrgMember) -> None:
        if member.role == OrgRole.owner or member.user_id == org.owner_id:
            raise ValidationError(
                "Organization owner cannot leave. Transfer ownership first.", code="OWNER_CANNOT_LEAVE"
            )
        await self._delete_member(org.id, member.user_id)
        logger.info("User %s left organization %s", member.user_id, org.id)

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _slug_taken(self, slug: str) -> bool:
        count = (
            await self.db.execute(
                select(func.count()).select_from(Organization).where(Organization.slug == slug)
            )
        ).scalar_one()
        return count > 0

    @staticmethod
    def _require_role(member: OrgMember, *roles: OrgRole) -> None:
        if member.role not in roles:
            raise AuthorizationError("Insufficient permissions", code="INSUFFICIENT_ROLE")

    async def _get_member(self, org_id: UUID, user_id: UUID) -> OrgMember:
        result = await self.db.execute(
            select(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Member not found", code="MEMBER_NOT_FOUND")
        return member

    async def _delete_member(self, org_id: UUID, user_id: UUID) -> None:
        await self.db.execute(
            delete(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
        )

    async def _get_member_response(self, org_id: UUID, user_id: UUID) -> MemberResponse:
        row = (
            await self.db.execute(
                select(OrgMember, User)
                .join(User, OrgMember.user_id == User.id)
                .where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
                .execution_options(populate_existing=True)
            )
        ).one()
        return self._member_response(*row)

    @staticmethod
    def _member_response(member: OrgMember, user: User) -> MemberResponse:
        return MemberResponse(
            user_id=member.user_id,
            display_name=user.display_name,
            email=user.email,
            role=member.role.value,
            joined_at=member.joined_at,
        )

    @staticmethod
    def _to_response(org: Organization, role: OrgRole | None = None) -> OrganizationResponse:
        return OrganizationResponse(
            id=org.id,
            name=org.name,
            slug=org.slug,
            description=org.description,
            owner_id=org.owner_id,
            role=role.value if role is not None else None,
            created_at=org.created_at,
        )
