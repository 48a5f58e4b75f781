import logging
import uuid
from collections.abc import Iterable

from groupchat.core.exceptions import (
    AlreadyMemberError,
    CapacityExceededError,
    DuplicateParticipantError,
    InviteExpiredError,
    InviteInvalidError,
    LastAdminViolationError,
    ParticipantNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from groupchat.core.utils import clean_text, coerce_uuid, utcnow
from groupchat.schemas.groups import (
    CUSTOM_TITLE_MAX_LENGTH,
    Group,
    GroupDetail,
    Participant,
    ParticipantRole,
)
from groupchat.schemas.messages import AuditAction
from groupchat.services.base import GroupManager
from groupchat.services.invites import resolve_invite
from groupchat.services.permissions import Capability, find_active_participant, require_permission

logger = logging.getLogger(__name__)


def _ensure_admin_remains(participants: list[Participant], target: Participant) -> None:
    if not target.is_admin:
        return
    admins = [p for p in participants if p.is_active and p.is_admin]
    if len(admins) <= 1:
        raise LastAdminViolationError()


class MembershipManager(GroupManager):
    async def _admit(
        self,
        group: Group,
        participants: list[Participant],
        user_ids: list[uuid.UUID],
        added_by: uuid.UUID,
    ) -> list[Participant]:
        """Create or re-open participant rows; must run inside a transaction."""
        active_ids = {p.user_id for p in participants if p.is_active}
        if any(user_id in active_ids for user_id in user_ids):
            raise AlreadyMemberError()
        if len(active_ids) + len(user_ids) > group.max_participants:
            raise CapacityExceededError(group.max_participants)

        now = utcnow()
        admitted, new_rows = [], []
        for user_id in user_ids:
            row = Participant(group_id=group.id, user_id=user_id, joined_at=now, added_by=added_by)
            existing = await self.repository.get_participant(group.id, user_id)
            if existing is None:
                new_rows.append(row)
            else:
                # rows are re-opened, never duplicated
                await self.repository.upsert_participant(
                    group.id,
                    user_id,
                    {
                        "role": ParticipantRole.MEMBER,
                        "is_active": True,
                        "joined_at": now,
                        "added_by": added_by,
                        "left_at": None,
                        "removed_by": None,
                        "removed_at": None,
                        "custom_title": None,
                    },
                )
            admitted.append(row)

        if new_rows:
            try:
                await self.repository.insert_participants(group.id, new_rows)
            except DuplicateParticipantError:
                raise AlreadyMemberError()

        await self.repository.update_group(group.id, {"last_activity_at": now})
        return admitted

    async def add_member(
        self, group_id: uuid.UUID, user_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> Participant:
        user_id = coerce_uuid(user_id, "user id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.ADD_MEMBERS)
            (participant,) = await self._admit(group, participants, [user_id], added_by=acting_user_id)

        logger.info(f"User {user_id} added to group {group.id} by {acting_user_id}")
        await self.recorder.record(group.id, AuditAction.MEMBER_ADDED, acting_user_id, target_user_ids=[user_id])
        return participant

    async def add_members(
        self, group_id: uuid.UUID, user_ids: Iterable[uuid.UUID], acting_user_id: uuid.UUID
    ) -> list[Participant]:
        """Add several users at once: all of them join or none does.

        The whole batch is recorded as a single ``member_added`` entry.
        """
        ids: list[uuid.UUID] = []
        for raw in user_ids:
            user_id = coerce_uuid(raw, "user id")
            if user_id not in ids:
                ids.append(user_id)
        if not ids:
            raise ValidationError("No users to add")

        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.ADD_MEMBERS)
            admitted = await self._admit(group, participants, ids, added_by=acting_user_id)

        logger.info(f"{len(ids)} users added to group {group.id} by {acting_user_id}")
        await self.recorder.record(group.id, AuditAction.MEMBER_ADDED, acting_user_id, target_user_ids=ids)
        return admitted

    async def remove_member(
        self, group_id: uuid.UUID, user_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> None:
        user_id = coerce_uuid(user_id, "user id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.REMOVE_MEMBERS)
            target = find_active_participant(participants, user_id)
            if target is None:
                raise ParticipantNotFoundError()
            _ensure_admin_remains(participants, target)

            now = utcnow()
            await self.repository.upsert_participant(
                group.id, user_id, {"is_active": False, "removed_by": acting_user_id, "removed_at": now}
            )
            await self.repository.update_group(group.id, {"last_activity_at": now})

        logger.info(f"User {user_id} removed from group {group.id} by {acting_user_id}")
        await self.recorder.record(group.id, AuditAction.MEMBER_REMOVED, acting_user_id, target_user_ids=[user_id])

    async def leave_group(self, group_id: uuid.UUID, user_id: uuid.UUID) -> None:
        user_id = coerce_uuid(user_id, "user id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            target = find_active_participant(participants, user_id)
            if target is None:
                raise ParticipantNotFoundError()
            _ensure_admin_remains(participants, target)

            now = utcnow()
            await self.repository.upsert_participant(group.id, user_id, {"is_active": False, "left_at": now})
            await self.repository.update_group(group.id, {"last_activity_at": now})

        await self.recorder.record(group.id, AuditAction.MEMBER_LEFT, user_id, target_user_ids=[user_id])

    async def _change_role(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        acting_user_id: uuid.UUID,
        role: ParticipantRole,
    ) -> Participant:
        user_id = coerce_uuid(user_id, "user id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.MANAGE_ADMINS)
            target = find_active_participant(participants, user_id)
            if target is None:
                raise ParticipantNotFoundError()
            if target.role == role:
                raise ValidationError(f"User is already {'an admin' if role == ParticipantRole.ADMIN else 'a member'}")
            if role == ParticipantRole.MEMBER:
                _ensure_admin_remains(participants, target)
            await self.repository.upsert_participant(group.id, user_id, {"role": role})

        action = AuditAction.MEMBER_PROMOTED if role == ParticipantRole.ADMIN else AuditAction.MEMBER_DEMOTED
        await self.recorder.record(group.id, action, acting_user_id, target_user_ids=[user_id])
        return target.model_copy(update={"role": role})

    async def promote_to_admin(
        self, group_id: uuid.UUID, user_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> Participant:
        return await self._change_role(group_id, user_id, acting_user_id, ParticipantRole.ADMIN)

    async def demote_from_admin(
        self, group_id: uuid.UUID, user_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> Participant:
        return await self._change_role(group_id, user_id, acting_user_id, ParticipantRole.MEMBER)

    async def set_custom_title(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        title: str | None,
        acting_user_id: uuid.UUID,
    ) -> Participant:
        user_id = coerce_uuid(user_id, "user id")
        title = clean_text(title, "custom_title", CUSTOM_TITLE_MAX_LENGTH)
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            if acting_user_id == user_id:
                if find_active_participant(participants, acting_user_id) is None:
                    raise PermissionDeniedError()
            else:
                require_permission(group, participants, acting_user_id, Capability.MANAGE_ADMINS)
            target = find_active_participant(participants, user_id)
            if target is None:
                raise ParticipantNotFoundError()
            await self.repository.upsert_participant(group.id, user_id, {"custom_title": title})

        await self.recorder.record(
            group.id,
            AuditAction.MEMBER_TITLE_CHANGED,
            acting_user_id,
            target_user_ids=[user_id],
            details={"custom_title": title},
        )
        return target.model_copy(update={"custom_title": title})

    async def join_via_invite(self, code: str, user_id: uuid.UUID) -> GroupDetail:
        """Redeem an invite code for ``user_id``.

        The usage bump and the membership row are written in one
        transaction; the usage bump is a compare-and-swap, so when two
        users race for the last use exactly one of them gets in.
        """
        user_id = coerce_uuid(user_id, "user id")
        async with self.repository.transaction():
            link = await resolve_invite(self.repository, code, utcnow())
            group = await self.repository.get_group(link.group_id, for_update=True)
            if group is None or group.is_deleted:
                raise InviteInvalidError()
            self._ensure_not_archived(group)
            participants = await self.repository.get_participants(group.id)
            if find_active_participant(participants, user_id) is not None:
                raise AlreadyMemberError()
            if not await self.repository.increment_invite_usage(link.id):
                raise InviteExpiredError()
            await self._admit(group, participants, [user_id], added_by=link.created_by)

        logger.info(f"User {user_id} joined group {group.id} via invite {link.id}")
        await self.recorder.record(
            group.id,
            AuditAction.MEMBER_JOINED,
            user_id,
            target_user_ids=[user_id],
            details={"invite_id": str(link.id), "added_by": str(link.created_by)},
        )
        return await self._detail(group.id)
