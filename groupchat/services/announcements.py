import uuid

from groupchat.core.exceptions import MessageNotFoundError, PermissionDeniedError, ValidationError
from groupchat.core.utils import clean_text, coerce_uuid, utcnow
from groupchat.schemas.groups import GroupDetail
from groupchat.schemas.messages import ANNOUNCEMENT_MAX_LENGTH, AuditAction, AuditEntry, GroupMessage, MessageType
from groupchat.services.base import GroupManager
from groupchat.services.permissions import Capability, find_active_participant, require_permission

MAX_ACTIONS_PAGE = 200


class AnnouncementManager(GroupManager):
    """Announcements, pinned messages and the readable side of the audit trail."""

    async def create_announcement(
        self, group_id: uuid.UUID, content: str, acting_user_id: uuid.UUID
    ) -> GroupMessage:
        content = clean_text(content, "content", ANNOUNCEMENT_MAX_LENGTH, required=True)
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.SEND_ANNOUNCEMENTS)
            now = utcnow()
            message = await self.repository.insert_message(
                GroupMessage(
                    group_id=group.id,
                    sender_id=acting_user_id,
                    content=content,
                    message_type=MessageType.ANNOUNCEMENT,
                    created_at=now,
                )
            )
            await self.repository.update_group(group.id, {"last_activity_at": now})
        return message

    async def pin_message(
        self, group_id: uuid.UUID, message_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> GroupDetail:
        message_id = coerce_uuid(message_id, "message id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.PIN_MESSAGES)
            if await self.repository.get_message(group.id, message_id) is None:
                raise MessageNotFoundError()
            if message_id in group.pinned_message_ids:
                return await self._detail(group.id)
            await self.repository.update_group(
                group.id, {"pinned_message_ids": [*group.pinned_message_ids, message_id]}
            )

        await self.recorder.record(
            group.id, AuditAction.MESSAGE_PINNED, acting_user_id, details={"message_id": str(message_id)}
        )
        return await self._detail(group.id)

    async def unpin_message(
        self, group_id: uuid.UUID, message_id: uuid.UUID, acting_user_id: uuid.UUID
    ) -> GroupDetail:
        message_id = coerce_uuid(message_id, "message id")
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.PIN_MESSAGES)
            if message_id not in group.pinned_message_ids:
                raise MessageNotFoundError()
            await self.repository.update_group(
                group.id,
                {"pinned_message_ids": [m for m in group.pinned_message_ids if m != message_id]},
            )

        await self.recorder.record(
            group.id, AuditAction.MESSAGE_UNPINNED, acting_user_id, details={"message_id": str(message_id)}
        )
        return await self._detail(group.id)

    async def get_group_actions(
        self, group_id: uuid.UUID, acting_user_id: uuid.UUID, limit: int = 50
    ) -> list[AuditEntry]:
        if not 1 <= limit <= MAX_ACTIONS_PAGE:
            raise ValidationError(f"limit must be between 1 and {MAX_ACTIONS_PAGE}")
        group, participants = await self._load_state(group_id)
        if find_active_participant(participants, acting_user_id) is None:
            raise PermissionDeniedError()
        return await self.recorder.list_entries(group.id, limit)
