"""
Workspace membership resolver, workspace management and context directory tests.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from teamspace.core.errors import AuthorizationError, NotFoundError
from teamspace.models.organization import Organization
from teamspace.models.user import User
from teamspace.models.workspace import OrganizationContext, PersonalContext, Workspace, WorkspaceMember
from teamspace.schemas.organization import AddMemberRequest, OrganizationCreateRequest
from teamspace.schemas.workspace import WorkspaceCreateRequest, WorkspaceUpdateRequest
from teamspace.services.account_service import AccountService
from teamspace.services.organization_service import OrganizationService
from teamspace.services.workspace_service import WorkspaceService
from tests.conftest import make_task, make_user


async def members_of(db, workspace_id):
    result = await db.execute(select(WorkspaceMember.user_id).where(WorkspaceMember.workspace_id == workspace_id))
    return set(result.scalars().all())


class TestEnsureMembership:
    async def test_adds_absent_user_once(self, db, alice, bob, workspace_id, project_id):
        service = WorkspaceService(db)

        assert await service.ensure_membership(bob.id, project_id=project_id) is True
        assert await service.ensure_membership(bob.id, project_id=project_id) is False
        assert await members_of(db, workspace_id) == {bob.id}

    async def test_resolves_through_task(self, db, alice, bob, workspace_id, project_id):
        task_id = await make_task(db, alice, project_id)
        assert await WorkspaceService(db).ensure_membership(bob.id, task_id=task_id) is True
        assert bob.id in await members_of(db, workspace_id)

    async def test_owner_is_never_added(self, db, alice, workspace_id, project_id):
        assert await WorkspaceService(db).ensure_membership(alice.id, project_id=project_id) is False
        assert await members_of(db, workspace_id) == set()

    async def test_never_removes_existing_members(self, db, alice, bob, carol, workspace_id, project_id):
        service = WorkspaceService(db)
        await service.ensure_membership(bob.id, project_id=project_id)
        await service.ensure_membership(carol.id, project_id=project_id)
        await service.ensure_membership(bob.id, project_id=project_id)
        assert await members_of(db, workspace_id) == {bob.id, carol.id}

    async def test_dangling_reference_is_logged_not_raised(self, db, bob, caplog):
        assert await WorkspaceService(db).ensure_membership(bob.id, task_id=uuid4()) is False
        assert "Could not determine workspace" in caplog.text

    async def test_unknown_user_is_swallowed(self, db, project_id, caplog):
        assert await WorkspaceService(db).ensure_membership(uuid4(), project_id=project_id) is False
        assert "Error ensuring user in workspace" in caplog.text

    async def test_exactly_one_reference_required(self, db, bob):
        with pytest.raises(TypeError):
            await WorkspaceService(db).ensure_membership(bob.id)

    async def test_batch_counts_additions(self, db, alice, bob, carol, project_id):
        service = WorkspaceService(db)
        added = await service.ensure_memberships_for_project([alice.id, bob.id, carol.id, bob.id], project_id)
        assert added == 2


class TestContexts:
    async def test_personal_space_is_created_once(self, db, alice):
        service = WorkspaceService(db)
        first = await service.get_or_create_personal_space(alice)
        second = await service.get_or_create_personal_space(alice)

        assert first.id == second.id
        assert [w.name for w in second.workspaces] == ["My Tasks"]
        assert second.workspaces[0].context_type == "personal"
        assert second.workspaces[0].context_id == first.id

    def test_context_variants(self):
        space_id, org_id = uuid4(), uuid4()
        personal = Workspace.in_context(PersonalContext(space_id), name="Mine", owner_id=uuid4())
        shared = Workspace.in_context(OrganizationContext(org_id), name="Ours", owner_id=uuid4())

        assert personal.context == PersonalContext(space_id)
        assert personal.organization_id is None
        assert shared.context == OrganizationContext(org_id)
        assert shared.context.kind == "organization"

    async def test_organization_workspace_requires_membership(self, db, alice, bob):
        org = await OrganizationService(db).create_organization(OrganizationCreateRequest(name="Acme"), alice)
        request = WorkspaceCreateRequest(name="Design", context_type="organization", context_id=org.id)

        with pytest.raises(AuthorizationError):
            await WorkspaceService(db).create_workspace(request, bob)

        created = await WorkspaceService(db).create_workspace(request, alice)
        assert created.context_type == "organization"
        assert created.context_id == org.id

    async def test_list_narrowed_to_context(self, db, alice):
        service = WorkspaceService(db)
        space = await service.get_or_create_personal_space(alice)
        org = await OrganizationService(db).create_organization(OrganizationCreateRequest(name="Acme"), alice)

        everything = await service.list_workspaces(alice)
        personal = await service.list_workspaces(alice, PersonalContext(space.id))
        shared = await service.list_workspaces(alice, OrganizationContext(org.id))

        assert {w.name for w in everything} == {"My Tasks", "General"}
        assert [w.name for w in personal] == ["My Tasks"]
        assert [w.name for w in shared] == ["General"]


class TestWorkspaceManagement:
    async def test_auto_added_member_gains_access(self, db, alice, bob, workspace_id, project_id):
        service = WorkspaceService(db)
        with pytest.raises(AuthorizationError):
            await service.get_workspace(workspace_id, bob)

        await service.ensure_membership(bob.id, project_id=project_id)
        fetched = await service.get_workspace(workspace_id, bob)
        assert fetched.member_ids == [bob.id]

    async def test_owner_manages_members(self, db, alice, bob, workspace_id):
        service = WorkspaceService(db)
        added = await service.add_member(workspace_id, bob.id, alice)
        assert added.member_ids == [bob.id]

        removed = await service.remove_member(workspace_id, bob.id, alice)
        assert removed.member_ids == []

    async def test_deleted_user_cannot_be_added(self, db, alice, bob, workspace_id):
        await AccountService(db).soft_delete_user(bob.id)

        with pytest.raises(NotFoundError):
            await WorkspaceService(db).add_member(workspace_id, bob.id, alice)
        assert await members_of(db, workspace_id) == set()

    async def test_only_owner_updates(self, db, alice, bob, workspace_id):
        service = WorkspaceService(db)
        with pytest.raises(NotFoundError):
            await service.update_workspace(workspace_id, WorkspaceUpdateRequest(name="Theirs"), bob)

        updated = await service.update_workspace(
            workspace_id, WorkspaceUpdateRequest(name="Inbox", description=None), alice
        )
        assert updated.name == "Inbox"
        assert updated.description is None


# ---------------------------------------------------------------------------
# Current context, members and user search
# ---------------------------------------------------------------------------

async def organization_with(db, owner, *members, name="Acme"):
    service = OrganizationService(db)
    created = await service.create_organization(OrganizationCreateRequest(name=name), owner)
    org = await db.get(Organization, created.id)
    acting = await WorkspaceService(db).organization_member(org.id, owner.id)
    for member in members:
        await service.add_member(org, AddMemberRequest(email=member.email), acting, owner)
    return org.id


class TestContextDirectory:
    async def test_switching_requires_access(self, db, alice, bob):
        service = WorkspaceService(db)
        space = await service.get_or_create_personal_space(alice)
        org_id = await organization_with(db, bob)

        with pytest.raises(AuthorizationError):
            await service.set_current_context(alice, OrganizationContext(org_id))
        with pytest.raises(AuthorizationError):
            await service.set_current_context(bob, PersonalContext(space.id))

        switched = await service.set_current_context(alice, PersonalContext(space.id))
        assert (switched.context_type, switched.context_id) == ("personal", space.id)
        user = await db.get(User, alice.id, populate_existing=True)
        assert (user.last_context_type, user.last_context_id) == ("personal", space.id)

        await service.set_current_context(bob, OrganizationContext(org_id))
        user = await db.get(User, bob.id, populate_existing=True)
        assert (user.last_context_type, user.last_context_id) == ("organization", org_id)

    async def test_personal_context_has_only_its_owner(self, db, alice, bob):
        service = WorkspaceService(db)
        space = await service.get_or_create_personal_space(alice)

        members = await service.context_members(alice, PersonalContext(space.id))

        assert members.name == "Personal Space"
        assert members.context_type == "personal"
        assert [(m.id, m.role, m.joined_at) for m in members.members] == [(alice.id, "member", None)]
        with pytest.raises(AuthorizationError):
            await service.context_members(bob, PersonalContext(space.id))

    async def test_organization_members_carry_roles(self, db, alice, bob, carol):
        org_id = await organization_with(db, alice, bob)
        service = WorkspaceService(db)

        members = await service.context_members(bob, OrganizationContext(org_id))

        assert members.name == "Acme"
        assert {m.id: m.role for m in members.members} == {alice.id: "owner", bob.id: "member"}
        assert all(m.joined_at is not None for m in members.members)
        with pytest.raises(AuthorizationError):
            await service.context_members(carol, OrganizationContext(org_id))

    async def test_user_search_matches_name_or_email(self, db, alice, bob, carol):
        service = WorkspaceService(db)

        assert [u.id for u in await service.search_users("BO")] == [bob.id]
        assert [u.id for u in await service.search_users("acme.io")] == [alice.id, bob.id, carol.id]
        assert await service.search_users("   ") == []

        await AccountService(db).soft_delete_user(carol.id)
        assert await service.search_users("carol") == []

    async def test_user_search_is_capped(self, db):
        for n in range(12):
            await make_user(db, f"Tester{n:02d}")
        assert len(await WorkspaceService(db).search_users("tester")) == 10

    async def test_context_search_stays_inside_context(self, db, alice, bob, carol):
        org_id = await organization_with(db, alice, bob)
        service = WorkspaceService(db)
        space = await service.get_or_create_personal_space(alice)
        shared, personal = OrganizationContext(org_id), PersonalContext(space.id)

        assert [u.id for u in await service.search_context_users(alice, shared, "acme")] == [alice.id, bob.id]
        assert await service.search_context_users(alice, shared, "carol") == []
        assert [u.id for u in await service.search_context_users(alice, personal, "acme")] == [alice.id]
        assert await service.search_context_users(alice, personal, "bob") == []

        assert await service.search_context_users(carol, shared, " ") == []
        with pytest.raises(AuthorizationError):
            await service.search_context_users(carol, shared, "bob")
