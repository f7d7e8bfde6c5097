"""
Account deletion, ownership transfer and email availability tests.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from teamspace.core.errors import (
    AuthorizationError,
    ConflictError,
    DeletionBlockedError,
    NotFoundError,
    ValidationError,
)
from teamspace.models.activity import TaskActivity
from teamspace.models.comment import Comment
from teamspace.models.member import OrgMember, OrgRole
from teamspace.models.notification import Notification
from teamspace.models.organization import Organization
from teamspace.models.personal_space import PersonalSpace
from teamspace.models.project import Project, ProjectMember
from teamspace.models.task import Task, TaskAssignee
from teamspace.models.user import User
from teamspace.models.workspace import Workspace, WorkspaceMember
from teamspace.schemas.organization import AddMemberRequest, OrganizationCreateRequest
from teamspace.schemas.task import CommentCreateRequest
from teamspace.schemas.workspace import WorkspaceCreateRequest
from teamspace.services.account_service import AccountService, blocking_factors_for
from teamspace.services.organization_service import OrganizationService
from teamspace.services.task_service import TaskService
from teamspace.services.workspace_service import WorkspaceService
from tests.conftest import make_personal_workspace, make_project, make_task


async def create_org_with_member(db, owner, member, name="Acme"):
    service = OrganizationService(db)
    created = await service.create_organization(OrganizationCreateRequest(name=name), owner)
    org = await db.get(Organization, created.id)
    acting = (
        await db.execute(select(OrgMember).where(OrgMember.org_id == org.id, OrgMember.user_id == owner.id))
    ).scalar_one()
    await service.add_member(org, AddMemberRequest(email=member.email), acting, owner)
    return org.id


async def roles(db, org_id):
    result = await db.execute(select(OrgMember.user_id, OrgMember.role).where(OrgMember.org_id == org_id))
    return dict(result.all())


async def count(db, model, *criteria):
    return (await db.execute(select(func.count()).select_from(model).where(*criteria))).scalar_one()


# ---------------------------------------------------------------------------
# Assess / Transfer
# ---------------------------------------------------------------------------

class TestAssessAndTransfer:
    def test_blocking_factor_wording(self):
        assert blocking_factors_for(0) == []
        assert blocking_factors_for(2) == ["Must transfer ownership of 2 organization(s)"]

    async def test_owner_is_blocked_until_transfer(self, db, alice, bob):
        org_id = await create_org_with_member(db, alice, bob)
        service = AccountService(db)

        assessment = await service.assess_deletion(alice.id)
        assert assessment.can_delete is False
        assert assessment.blocking_factors == ["Must transfer ownership of 1 organization(s)"]
        assert [(o.id, o.member_count) for o in assessment.owned_organizations] == [(org_id, 2)]

        await service.transfer_ownership(org_id, alice.id, bob.id)

        reassessed = await service.assess_deletion(alice.id)
        assert reassessed.can_delete is True
        assert reassessed.blocking_factors == []
        assert reassessed.owned_organizations == []

    async def test_transfer_swaps_roles(self, db, alice, bob):
        org_id = await create_org_with_member(db, alice, bob)
        await AccountService(db).transfer_ownership(org_id, alice.id, bob.id)

        org = await db.get(Organization, org_id)
        assert org.owner_id == bob.id
        member_roles = await roles(db, org_id)
        assert member_roles == {bob.id: OrgRole.owner, alice.id: OrgRole.admin}
        assert list(member_roles.values()).count(OrgRole.owner) == 1

    async def test_transfer_rejections_change_nothing(self, db, alice, bob, carol):
        org_id = await create_org_with_member(db, alice, bob)
        service = AccountService(db)

        with pytest.raises(NotFoundError):
            await service.transfer_ownership(uuid4(), alice.id, bob.id)
        with pytest.raises(AuthorizationError):
            await service.transfer_ownership(org_id, bob.id, alice.id)
        with pytest.raises(ValidationError):
            await service.transfer_ownership(org_id, alice.id, carol.id)
        with pytest.raises(ValidationError):
            await service.transfer_ownership(org_id, alice.id, alice.id)

        assert (await db.get(Organization, org_id)).owner_id == alice.id
        assert await roles(db, org_id) == {alice.id: OrgRole.owner, bob.id: OrgRole.member}

    async def test_data_impact(self, db, alice, bob):
        bob_workspace = await make_personal_workspace(db, bob)
        bob_project = await make_project(db, bob, bob_workspace, member_ids=[alice.id])
        await make_personal_workspace(db, alice)

        task_id = await make_task(db, alice, bob_project, assignee_ids=[alice.id])
        await TaskService(db).add_comment(task_id, CommentCreateRequest(content="On it"), alice)

        impact = (await AccountService(db).assess_deletion(alice.id)).data_impact
        assert impact.active_tasks == 1
        assert impact.comments == 1
        assert impact.created_projects == 0
        assert impact.task_activities == 2
        assert impact.owned_workspaces == 1


# ---------------------------------------------------------------------------
# Soft delete
# ---------------------------------------------------------------------------

class TestSoftDelete:
    async def test_blocked_deletion_changes_nothing(self, db, alice, bob):
        await create_org_with_member(db, alice, bob)

        with pytest.raises(DeletionBlockedError) as excinfo:
            await AccountService(db).soft_delete_user(alice.id)

        assert isinstance(excinfo.value, ConflictError)
        assert excinfo.value.blocking_factors == ["Must transfer ownership of 1 organization(s)"]
        await db.refresh(alice)
        assert alice.deleted is False
        assert alice.email == "alice@acme.io"

    async def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            await AccountService(db).soft_delete_user(uuid4())

    async def _shared_history(self, db, alice, bob):
        """Alice works inside Bob's workspace and keeps her own personal space."""
        bob_workspace = await make_personal_workspace(db, bob)
        bob_project = await make_project(db, bob, bob_workspace, member_ids=[alice.id])
        alice_project = await make_project(db, alice, bob_workspace, name="Alice's side project")
        alice_workspace = await make_personal_workspace(db, alice)

        task_id = await make_task(db, alice, bob_project, assignee_ids=[alice.id, bob.id])
        await TaskService(db).add_comment(task_id, CommentCreateRequest(content="Starting now"), alice)
        await make_task(db, bob, bob_project, title="Bob's own", assignee_ids=[alice.id])
        return {
            "bob_workspace": bob_workspace,
            "bob_project": bob_project,
            "alice_project": alice_project,
            "alice_workspace": alice_workspace,
            "task_id": task_id,
        }

    async def test_soft_delete_anonymizes_and_detaches(self, db, alice, bob):
        ids = await self._shared_history(db, alice, bob)

        response = await AccountService(db).soft_delete_user(alice.id)
        assert response.success is True

        user = await db.get(User, alice.id, populate_existing=True)
        assert user.deleted is True
        assert user.deleted_at is not None
        assert user.original_email == "alice@acme.io"
        assert user.email.startswith("deleted_") and user.email.endswith("_alice@acme.io")
        assert user.display_name == "Deleted User"
        assert user.password_hash is None
        assert user.email_verified is False

        task = await db.get(Task, ids["task_id"], populate_existing=True)
        assert task.created_by is None
        assert task.created_by_name == "Former User"

        comment = (await db.execute(select(Comment).where(Comment.task_id == ids["task_id"]))).scalar_one()
        assert comment.author_id is None
        assert comment.author_name == "Former User"

        assert await count(db, TaskActivity, TaskActivity.performed_by == alice.id) == 0
        assert await count(db, TaskActivity, TaskActivity.performed_by_name == "Former User") > 0

        legacy = await db.get(Project, ids["alice_project"], populate_existing=True)
        assert legacy.owner_id is None
        assert legacy.owner_name == "Former User"
        assert legacy.is_legacy is True

        sent = (await db.execute(select(Notification).where(Notification.recipient_id == bob.id))).scalars().all()
        assert sent
        assert all(n.sender_id is None and n.sender_name == "Former User" for n in sent)

        assert await count(db, Notification, Notification.recipient_id == alice.id) == 0
        assert await count(db, WorkspaceMember, WorkspaceMember.user_id == alice.id) == 0
        assert await count(db, ProjectMember, ProjectMember.user_id == alice.id) == 0
        assert await count(db, TaskAssignee, TaskAssignee.user_id == alice.id) == 0
        assert await count(db, PersonalSpace, PersonalSpace.user_id == alice.id) == 0
        assert await db.get(Workspace, ids["alice_workspace"], populate_existing=True) is None

        # Bob's data survives.
        assert await db.get(Workspace, ids["bob_workspace"]) is not None
        assert await db.get(Project, ids["bob_project"]) is not None
        assert await count(db, TaskAssignee, TaskAssignee.user_id == bob.id) == 1

    async def test_rerun_is_idempotent(self, db, alice, bob):
        await self._shared_history(db, alice, bob)
        service = AccountService(db)

        await service.soft_delete_user(alice.id)
        first_email = (await db.get(User, alice.id, populate_existing=True)).email
        stamps = await count(db, TaskActivity, TaskActivity.performed_by_name == "Former User")

        await service.soft_delete_user(alice.id)

        user = await db.get(User, alice.id, populate_existing=True)
        assert user.email == first_email
        assert await count(db, TaskActivity, TaskActivity.performed_by_name == "Former User") == stamps

    async def test_deleted_member_leaves_organizations(self, db, alice, bob):
        org_id = await create_org_with_member(db, alice, bob)
        await AccountService(db).soft_delete_user(bob.id)
        assert await roles(db, org_id) == {alice.id: OrgRole.owner}

    async def test_organization_workspaces_survive_former_owner(self, db, alice, bob):
        org_id = await create_org_with_member(db, alice, bob)
        general_id = (
            await db.execute(select(Workspace.id).where(Workspace.organization_id == org_id))
        ).scalar_one()
        bob_project = await make_project(db, bob, general_id, name="Roadmap")
        bob_task = await make_task(db, bob, bob_project, title="Plan Q3")
        service = AccountService(db)

        await service.transfer_ownership(org_id, alice.id, bob.id)
        assert (await db.get(Workspace, general_id, populate_existing=True)).owner_id == bob.id

        await service.soft_delete_user(alice.id)

        assert await count(db, Workspace, Workspace.organization_id == org_id) == 1
        assert await db.get(Project, bob_project, populate_existing=True) is not None
        assert await db.get(Task, bob_task, populate_existing=True) is not None

    async def test_member_owned_organization_workspace_passes_to_org_owner(self, db, alice, carol):
        org_id = await create_org_with_member(db, alice, carol)
        design = await WorkspaceService(db).create_workspace(
            WorkspaceCreateRequest(name="Design", context_type="organization", context_id=org_id), carol
        )
        project_id = await make_project(db, carol, design.id, name="Brand refresh")

        await AccountService(db).soft_delete_user(carol.id)

        workspace = await db.get(Workspace, design.id, populate_existing=True)
        assert workspace is not None
        assert workspace.owner_id == alice.id
        project = await db.get(Project, project_id, populate_existing=True)
        assert project.is_legacy is True
        assert project.owner_name == "Former User"


# ---------------------------------------------------------------------------
# Email availability
# ---------------------------------------------------------------------------

class TestEmailAvailability:
    async def test_active_email_is_taken(self, db, alice):
        result = await AccountService(db).check_email_availability("Alice@Acme.io")
        assert result.available is False
        assert result.reason == "Email already registered"

    async def test_unknown_email_is_available(self, db):
        result = await AccountService(db).check_email_availability("new@acme.io")
        assert result.available is True
        assert result.previously_deleted is False

    async def test_deleted_email_can_be_reused(self, db, alice):
        await AccountService(db).soft_delete_user(alice.id)
        result = await AccountService(db).check_email_availability("alice@acme.io")
        assert result.available is True
        assert result.previously_deleted is True
        assert result.reason == "Email available for re-registration"

