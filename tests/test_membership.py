"""
Tests for adding, removing and leaving, role changes and custom titles.
"""

import asyncio
import uuid

import pytest

from groupchat.core.exceptions import (
    AlreadyMemberError,
    CapacityExceededError,
    GroupNotFoundError,
    LastAdminViolationError,
    ParticipantNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from groupchat.schemas.groups import ParticipantRole
from groupchat.schemas.messages import AuditAction
from groupchat.services.group_service import GroupService


# =============================================================================
# Adding members
# =============================================================================


class TestAddMember:
    async def test_admin_adds_member(self, service, group, owner, bob):
        participant = await service.add_member(group.group.id, bob, owner)

        assert participant.role == ParticipantRole.MEMBER
        assert participant.added_by == owner
        assert (await service.get_group_by_id(group.group.id)).member_count == 3

    async def test_member_denied_by_default(self, service, group, alice, bob):
        with pytest.raises(PermissionDeniedError):
            await service.add_member(group.group.id, bob, alice)

        assert (await service.get_group_by_id(group.group.id)).participant(bob) is None

    async def test_member_allowed_when_open(self, service, group, owner, alice, bob):
        await service.update_group_settings(group.group.id, {"who_can_add_members": "everyone"}, owner)

        participant = await service.add_member(group.group.id, bob, alice)

        assert participant.added_by == alice

    async def test_outsider_denied(self, service, group, outsider, bob):
        with pytest.raises(PermissionDeniedError):
            await service.add_member(group.group.id, bob, outsider)

    async def test_already_member(self, service, group, owner, alice):
        with pytest.raises(AlreadyMemberError):
            await service.add_member(group.group.id, alice, owner)

    async def test_capacity_is_enforced(self, service, owner, alice, bob):
        detail = await service.create_group(
            name="Pair", creator_id=owner, participant_ids=[alice], max_participants=2
        )

        with pytest.raises(CapacityExceededError):
            await service.add_member(detail.group.id, bob, owner)

    async def test_full_default_group_rejects_the_next_member(self, service, repository, owner, bob):
        """256 participants fit; the 257th add fails and leaves no row behind."""
        detail = await service.create_group(
            name="Crowd", creator_id=owner, participant_ids=[uuid.uuid4() for _ in range(255)]
        )
        assert detail.member_count == 256

        with pytest.raises(CapacityExceededError):
            await service.add_member(detail.group.id, bob, owner)

        assert await repository.get_participant(detail.group.id, bob) is None
        assert (await service.get_group_by_id(detail.group.id)).member_count == 256

    async def test_unique_row_conflict_reads_as_already_member(
        self, service, repository, group, owner, alice, monkeypatch
    ):
        """A (group, user) row the lookup missed still surfaces as AlreadyMemberError."""
        await service.remove_member(group.group.id, alice, owner)

        async def stale_lookup(group_id, user_id):
            return None

        monkeypatch.setattr(repository, "get_participant", stale_lookup)

        with pytest.raises(AlreadyMemberError):
            await service.add_member(group.group.id, alice, owner)

        monkeypatch.undo()
        rows = await repository.get_participants(group.group.id, active_only=False)
        assert [r.user_id for r in rows].count(alice) == 1
        assert (await repository.get_participant(group.group.id, alice)).is_active is False

    async def test_unknown_group(self, service, owner, bob):
        with pytest.raises(GroupNotFoundError):
            await service.add_member(uuid.uuid4(), bob, owner)

    async def test_audit_entry(self, service, group, owner, bob):
        await service.add_member(group.group.id, bob, owner)

        latest = (await service.get_group_actions(group.group.id, owner))[0]
        assert latest.action == AuditAction.MEMBER_ADDED
        assert latest.actor_id == owner
        assert latest.target_user_ids == [bob]


class TestAddMembers:
    async def test_bulk_add_is_one_audit_entry(self, service, group, owner):
        new_ids = [uuid.uuid4() for _ in range(3)]

        added = await service.add_members(group.group.id, new_ids, owner)

        assert [p.user_id for p in added] == new_ids
        actions = await service.get_group_actions(group.group.id, owner)
        assert [a.action for a in actions] == [AuditAction.MEMBER_ADDED, AuditAction.GROUP_CREATED]
        assert actions[0].target_user_ids == new_ids

    async def test_bulk_add_is_all_or_nothing(self, service, group, owner, alice, bob):
        with pytest.raises(AlreadyMemberError):
            await service.add_members(group.group.id, [bob, alice], owner)

        assert (await service.get_group_by_id(group.group.id)).participant(bob) is None

    async def test_bulk_add_respects_capacity(self, service, owner):
        detail = await service.create_group(name="Small", creator_id=owner, max_participants=3)

        with pytest.raises(CapacityExceededError):
            await service.add_members(detail.group.id, [uuid.uuid4() for _ in range(3)], owner)

        assert (await service.get_group_by_id(detail.group.id)).member_count == 1

    async def test_empty_batch_is_rejected(self, service, group, owner):
        with pytest.raises(ValidationError):
            await service.add_members(group.group.id, [], owner)


# =============================================================================
# Removing and leaving
# =============================================================================


class TestRemoveMember:
    async def test_admin_removes_member(self, service, repository, group, owner, alice):
        await service.remove_member(group.group.id, alice, owner)

        assert (await service.get_group_by_id(group.group.id)).participant(alice) is None
        row = await repository.get_participant(group.group.id, alice)
        assert row.is_active is False
        assert row.removed_by == owner
        assert row.removed_at is not None

    async def test_member_cannot_remove(self, service, group, owner, alice):
        with pytest.raises(PermissionDeniedError):
            await service.remove_member(group.group.id, owner, alice)

    async def test_remove_non_member(self, service, group, owner, bob):
        with pytest.raises(ParticipantNotFoundError):
            await service.remove_member(group.group.id, bob, owner)

    async def test_sole_admin_cannot_be_removed(self, service, group, owner):
        with pytest.raises(LastAdminViolationError):
            await service.remove_member(group.group.id, owner, owner)

    async def test_readding_reopens_the_same_row(self, service, repository, group, owner, alice):
        await service.remove_member(group.group.id, alice, owner)
        participant = await service.add_member(group.group.id, alice, owner)

        assert participant.role == ParticipantRole.MEMBER
        rows = await repository.get_participants(group.group.id, active_only=False)
        assert [r.user_id for r in rows].count(alice) == 1
        reopened = await repository.get_participant(group.group.id, alice)
        assert reopened.is_active is True
        assert reopened.removed_by is None


class TestLeaveGroup:
    async def test_member_leaves(self, service, repository, group, alice):
        await service.leave_group(group.group.id, alice)

        row = await repository.get_participant(group.group.id, alice)
        assert row.is_active is False
        assert row.left_at is not None

    async def test_sole_admin_cannot_leave(self, service, group, owner):
        with pytest.raises(LastAdminViolationError):
            await service.leave_group(group.group.id, owner)

    async def test_admin_leaves_when_another_admin_remains(self, service, group, owner, alice):
        await service.promote_to_admin(group.group.id, alice, owner)

        await service.leave_group(group.group.id, owner)

        detail = await service.get_group_by_id(group.group.id)
        assert [p.user_id for p in detail.participants] == [alice]

    async def test_non_member_cannot_leave(self, service, group, outsider):
        with pytest.raises(ParticipantNotFoundError):
            await service.leave_group(group.group.id, outsider)

    async def test_departed_member_loses_permissions(self, service, group, alice):
        await service.leave_group(group.group.id, alice)

        assert not await service.has_permission(group.group.id, alice, "send_messages")


# =============================================================================
# Roles and titles
# =============================================================================


class TestRoleChanges:
    async def test_promote_and_demote(self, service, group, owner, alice):
        promoted = await service.promote_to_admin(group.group.id, alice, owner)
        assert promoted.role == ParticipantRole.ADMIN
        assert await service.has_permission(group.group.id, alice, "manage_admins")

        demoted = await service.demote_from_admin(group.group.id, alice, owner)
        assert demoted.role == ParticipantRole.MEMBER
        assert not await service.has_permission(group.group.id, alice, "manage_admins")

    async def test_member_cannot_promote(self, service, group, alice, owner):
        with pytest.raises(PermissionDeniedError):
            await service.promote_to_admin(group.group.id, alice, alice)

    async def test_promote_existing_admin(self, service, group, owner):
        with pytest.raises(ValidationError):
            await service.promote_to_admin(group.group.id, owner, owner)

    async def test_sole_admin_cannot_step_down(self, service, group, owner):
        with pytest.raises(LastAdminViolationError):
            await service.demote_from_admin(group.group.id, owner, owner)

    async def test_promote_non_member(self, service, group, owner, bob):
        with pytest.raises(ParticipantNotFoundError):
            await service.promote_to_admin(group.group.id, bob, owner)

    async def test_at_least_one_admin_after_any_sequence(self, service, group, owner, alice):
        await service.promote_to_admin(group.group.id, alice, owner)
        await service.demote_from_admin(group.group.id, owner, alice)

        with pytest.raises(LastAdminViolationError):
            await service.leave_group(group.group.id, alice)

        admins = [p for p in (await service.get_group_by_id(group.group.id)).participants if p.role == "admin"]
        assert [p.user_id for p in admins] == [alice]


class TestCustomTitle:
    async def test_member_sets_own_title(self, service, group, alice):
        participant = await service.set_custom_title(group.group.id, alice, "  Reader  ", alice)

        assert participant.custom_title == "Reader"
        assert (await service.get_group_by_id(group.group.id)).participant(alice).custom_title == "Reader"

    async def test_admin_sets_member_title(self, service, group, owner, alice):
        participant = await service.set_custom_title(group.group.id, alice, "Moderator", owner)

        assert participant.custom_title == "Moderator"

    async def test_member_cannot_title_others(self, service, group, owner, alice):
        with pytest.raises(PermissionDeniedError):
            await service.set_custom_title(group.group.id, owner, "Boss", alice)

    async def test_blank_title_clears(self, service, group, alice):
        await service.set_custom_title(group.group.id, alice, "Reader", alice)

        participant = await service.set_custom_title(group.group.id, alice, "   ", alice)

        assert participant.custom_title is None

    async def test_title_too_long(self, service, group, alice):
        with pytest.raises(ValidationError):
            await service.set_custom_title(group.group.id, alice, "t" * 26, alice)


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentAdds:
    async def test_same_user_added_twice_concurrently(self, memory_repository, owner, bob):
        service = GroupService(memory_repository)
        detail = await service.create_group(name="Race", creator_id=owner)

        results = await asyncio.gather(
            service.add_member(detail.group.id, bob, owner),
            service.add_member(detail.group.id, bob, owner),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyMemberError)
        rows = await memory_repository.get_participants(detail.group.id, active_only=False)
        assert [r.user_id for r in rows].count(bob) == 1

    async def test_last_slot_race(self, memory_repository, owner):
        service = GroupService(memory_repository)
        detail = await service.create_group(name="Race", creator_id=owner, max_participants=2)

        results = await asyncio.gather(
            service.add_member(detail.group.id, uuid.uuid4(), owner),
            service.add_member(detail.group.id, uuid.uuid4(), owner),
            return_exceptions=True,
        )

        assert sum(isinstance(r, CapacityExceededError) for r in results) == 1
        assert (await service.get_group_by_id(detail.group.id)).member_count == 2


class TestHasPermission:
    async def test_unknown_group(self, service, owner):
        assert not await service.has_permission(uuid.uuid4(), owner, "send_messages")

    async def test_deleted_group(self, service, group, owner):
        await service.delete_group(group.group.id, owner)

        assert not await service.has_permission(group.group.id, owner, "send_messages")

    async def test_unknown_capability(self, service, group, owner):
        with pytest.raises(ValidationError):
            await service.has_permission(group.group.id, owner, "fly")

    async def test_settings_change_applies_immediately(self, service, group, owner, alice):
        assert await service.has_permission(group.group.id, alice, "send_messages")

        await service.update_group_settings(group.group.id, {"who_can_send_messages": "admins_only"}, owner)

        assert not await service.has_permission(group.group.id, alice, "send_messages")
