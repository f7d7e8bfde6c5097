"""
Notification fan-out and read-side tests.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import select

from teamspace.core.errors import NotFoundError
from teamspace.models.notification import Notification, NotificationType
from teamspace.models.user import Actor
from teamspace.services.notification_service import NotificationService, extract_mentions
from tests.conftest import make_task, make_user


async def notifications_for(db, user_id):
    result = await db.execute(
        select(Notification).where(Notification.recipient_id == user_id).order_by(Notification.created_at)
    )
    return result.scalars().all()


class TestExtractMentions:
    def test_order_and_duplicates_are_kept(self):
        assert extract_mentions("@alice and @bob, see @alice") == ["alice", "bob", "alice"]

    def test_extraction_is_idempotent(self):
        text = "ping @carol @dave"
        assert extract_mentions(text) == extract_mentions(text)

    def test_no_mentions(self):
        assert extract_mentions("nothing to see here") == []


class TestResolveMentions:
    async def test_matches_display_name_and_email_and_dedupes(self, db, alice, bob):
        service = NotificationService(db)
        resolved = await service.resolve_mentions(["Bob", "nobody", "Alice", "Bob"])
        assert resolved == [bob.id, alice.id]

    async def test_match_is_case_sensitive(self, db, bob):
        assert await NotificationService(db).resolve_mentions(["bob"]) == []

    async def test_email_token(self, db):
        user = await make_user(db, "Dana Smith", email="dana@acme.io")
        assert await NotificationService(db).resolve_mentions(["dana@acme.io"]) == [user.id]

    async def test_deleted_users_never_resolve(self, db, bob):
        bob.deleted = True
        await db.flush()
        assert await NotificationService(db).resolve_mentions(["Bob"]) == []


class TestFanOut:
    async def test_sender_is_skipped(self, db, alice, project_id):
        task_id = await make_task(db, alice, project_id)
        created = await NotificationService(db).notify_task_assigned(
            task_id, "Write brief", [alice.id], Actor.of(alice)
        )
        assert created == []
        assert await notifications_for(db, alice.id) == []

    async def test_one_per_distinct_recipient(self, db, alice, bob, carol, project_id):
        task_id = await make_task(db, alice, project_id)
        created = await NotificationService(db).notify_task_updated(
            task_id, "Write brief", [bob.id, carol.id, bob.id, alice.id], Actor.of(alice)
        )

        assert [n.recipient_id for n in created] == [bob.id, carol.id]
        [note] = await notifications_for(db, bob.id)
        assert note.type == NotificationType.task_updated
        assert note.sender_id == alice.id
        assert note.related_task_id == task_id
        assert note.read is False

    async def test_failed_recipient_does_not_stop_the_rest(self, db, alice, bob, carol, project_id):
        task_id = await make_task(db, alice, project_id)
        missing = uuid4()

        created = await NotificationService(db).notify_task_assigned(
            task_id, "Write brief", [bob.id, missing, carol.id], Actor.of(alice)
        )

        assert [n.recipient_id for n in created] == [bob.id, carol.id]
        assert len(await notifications_for(db, carol.id)) == 1

    async def test_mention_links_task_and_comment(self, db, alice, bob, project_id):
        task_id = await make_task(db, alice, project_id)
        [note] = await NotificationService(db).notify_mention(
            task_id, "Write brief", None, [bob.id], Actor.of(alice)
        )
        assert note.type == NotificationType.mentioned
        assert note.related_task_id == task_id
        assert note.message == "You were mentioned in a comment on task: Write brief"

    async def test_project_member_message_names_organization(self, db, alice, bob, project_id):
        [note] = await NotificationService(db).notify_project_member_added(
            project_id, "Launch", "General", "Acme", [bob.id], Actor.of(alice)
        )
        assert note.message == 'You have been added to the project "Launch" in workspace "General" in "Acme"'
        assert note.related_project_id == project_id

    async def test_org_role_message(self, db, alice, bob):
        [note] = await NotificationService(db).notify_org_role_updated(
            None, "Acme", "member", "admin", bob.id, Actor.of(alice)
        )
        assert note.type == NotificationType.org_role_updated
        assert note.message == 'Your role in "Acme" has been updated from member to admin'


class TestReadSide:
    async def _seed(self, db, alice, bob, project_id, count=3):
        task_id = await make_task(db, alice, project_id)
        service = NotificationService(db)
        for _ in range(count):
            await service.notify_task_updated(task_id, "Write brief", [bob.id], Actor.of(alice))
        return service

    async def test_list_newest_first_with_unread_count(self, db, alice, bob, project_id):
        service = await self._seed(db, alice, bob, project_id)
        listed = await service.list_notifications(bob.id)

        assert listed.total == 3
        assert listed.unread_count == 3
        stamps = [n.created_at for n in listed.notifications]
        assert stamps == sorted(stamps, reverse=True)
        assert listed.notifications[0].sender_name == "Alice"

    async def test_mark_read_is_scoped_to_recipient(self, db, alice, bob, project_id):
        service = await self._seed(db, alice, bob, project_id, count=1)
        [note] = await notifications_for(db, bob.id)

        with pytest.raises(NotFoundError):
            await service.mark_read(note.id, alice.id)

        updated = await service.mark_read(note.id, bob.id)
        assert updated.read is True
        assert await service.unread_count(bob.id) == 0

    async def test_mark_all_read(self, db, alice, bob, project_id):
        service = await self._seed(db, alice, bob, project_id)
        assert await service.mark_all_read(bob.id) == 3
        assert await service.mark_all_read(bob.id) == 0

        listed = await service.list_notifications(bob.id, unread_only=True)
        assert listed.total == 0

    async def test_deleted_sender_shown_by_stored_name(self, db, alice, bob, project_id):
        service = await self._seed(db, alice, bob, project_id, count=1)
        [note] = await notifications_for(db, bob.id)
        note.sender_id = None
        note.sender_name = "Former User"
        await db.flush()

        listed = await service.list_notifications(bob.id)
        assert listed.notifications[0].sender_id is None
        assert listed.notifications[0].sender_name == "Former User"

    async def test_fan_out_failure_is_logged(self, db, alice, bob, project_id, caplog):
        task_id = await make_task(db, alice, project_id)
        service = NotificationService(db)
        with patch.object(db, "flush", side_effect=RuntimeError("boom")):
            created = await service.notify_task_assigned(task_id, "Write brief", [bob.id], Actor.of(alice))
        assert created == []
        assert "Failed to create task_assigned notification" in caplog.text
