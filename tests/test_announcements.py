"""
Tests for announcements, pinned messages and the group action log.
"""

import uuid

import pytest

from groupchat.core.exceptions import MessageNotFoundError, PermissionDeniedError, ValidationError
from groupchat.schemas.messages import AuditAction, MessageType

from factories import store_message


class TestCreateAnnouncement:
    async def test_admin_posts_announcement(self, service, repository, group, owner):
        message = await service.create_announcement(group.group.id, "  Meeting moved to Friday  ", owner)

        assert message.message_type == MessageType.ANNOUNCEMENT
        assert message.content == "Meeting moved to Friday"
        assert message.sender_id == owner
        assert await repository.count_messages(group.group.id) == 1

    async def test_announcement_is_not_an_audit_entry(self, service, group, owner):
        await service.create_announcement(group.group.id, "Hello all", owner)

        actions = await service.get_group_actions(group.group.id, owner)
        assert [a.action for a in actions] == [AuditAction.GROUP_CREATED]

    async def test_member_denied(self, service, repository, group, alice):
        with pytest.raises(PermissionDeniedError):
            await service.create_announcement(group.group.id, "Hi", alice)

        assert await repository.count_messages(group.group.id) == 0

    @pytest.mark.parametrize("content", ["", "   ", "a" * 4097])
    async def test_content_bounds(self, service, group, owner, content):
        with pytest.raises(ValidationError):
            await service.create_announcement(group.group.id, content, owner)

    async def test_archived_group(self, service, group, owner):
        await service.archive_group(group.group.id, owner)

        with pytest.raises(ValidationError):
            await service.create_announcement(group.group.id, "Hi", owner)


class TestPinning:
    async def test_pin_and_unpin(self, service, repository, group, owner, alice):
        message = await store_message(repository, group.group.id, alice)

        detail = await service.pin_message(group.group.id, message.id, owner)
        assert detail.group.pinned_message_ids == [message.id]

        detail = await service.unpin_message(group.group.id, message.id, owner)
        assert detail.group.pinned_message_ids == []

        actions = [a.action for a in await service.get_group_actions(group.group.id, owner)]
        assert actions[:2] == [AuditAction.MESSAGE_UNPINNED, AuditAction.MESSAGE_PINNED]

    async def test_pinning_twice_is_a_no_op(self, service, repository, group, owner, alice):
        message = await store_message(repository, group.group.id, alice)

        await service.pin_message(group.group.id, message.id, owner)
        detail = await service.pin_message(group.group.id, message.id, owner)

        assert detail.group.pinned_message_ids == [message.id]
        actions = [a.action for a in await service.get_group_actions(group.group.id, owner)]
        assert actions.count(AuditAction.MESSAGE_PINNED) == 1

    async def test_pin_unknown_message(self, service, group, owner):
        with pytest.raises(MessageNotFoundError):
            await service.pin_message(group.group.id, uuid.uuid4(), owner)

    async def test_pin_message_from_another_group(self, service, repository, group, owner):
        other = await service.create_group(name="Elsewhere", creator_id=owner)
        message = await store_message(repository, other.group.id, owner)

        with pytest.raises(MessageNotFoundError):
            await service.pin_message(group.group.id, message.id, owner)

    async def test_unpin_message_that_is_not_pinned(self, service, repository, group, owner, alice):
        message = await store_message(repository, group.group.id, alice)

        with pytest.raises(MessageNotFoundError):
            await service.unpin_message(group.group.id, message.id, owner)

    async def test_member_cannot_pin(self, service, repository, group, alice):
        message = await store_message(repository, group.group.id, alice)

        with pytest.raises(PermissionDeniedError):
            await service.pin_message(group.group.id, message.id, alice)


class TestGroupActions:
    async def test_newest_first(self, service, group, owner, bob):
        await service.add_member(group.group.id, bob, owner)
        await service.promote_to_admin(group.group.id, bob, owner)

        actions = await service.get_group_actions(group.group.id, owner)

        assert [a.action for a in actions] == [
            AuditAction.MEMBER_PROMOTED,
            AuditAction.MEMBER_ADDED,
            AuditAction.GROUP_CREATED,
        ]

    async def test_limit(self, service, group, owner, bob):
        await service.add_member(group.group.id, bob, owner)

        actions = await service.get_group_actions(group.group.id, owner, limit=1)

        assert [a.action for a in actions] == [AuditAction.MEMBER_ADDED]

    async def test_members_can_read(self, service, group, alice):
        assert len(await service.get_group_actions(group.group.id, alice)) == 1

    async def test_outsider_denied(self, service, group, outsider):
        with pytest.raises(PermissionDeniedError):
            await service.get_group_actions(group.group.id, outsider)

    @pytest.mark.parametrize("limit", [0, 201])
    async def test_limit_bounds(self, service, group, owner, limit):
        with pytest.raises(ValidationError):
            await service.get_group_actions(group.group.id, owner, limit=limit)
