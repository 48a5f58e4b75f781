import logging
import uuid
from collections.abc import Iterable

from pydantic import ValidationError as PydanticValidationError

from groupchat.core.config import settings as app_settings
from groupchat.core.exceptions import CapacityExceededError, ValidationError
from groupchat.core.utils import clean_text, coerce_uuid, utcnow
from groupchat.schemas.groups import (
    DEFAULT_DISAPPEARING_DURATION_HOURS,
    DESCRIPTION_MAX_LENGTH,
    DISAPPEARING_DURATIONS_HOURS,
    NAME_MAX_LENGTH,
    Group,
    GroupCategory,
    GroupDetail,
    GroupInfoUpdate,
    GroupSettings,
    GroupSettingsUpdate,
    GroupType,
    Participant,
    ParticipantRole,
    Policy,
)
from groupchat.schemas.messages import AuditAction
from groupchat.services.base import GroupManager, build_detail
from groupchat.services.permissions import Capability, require_permission

logger = logging.getLogger(__name__)


def _errors_text(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'value'}: {err['msg']}" for err in exc.errors()
    )


def merge_settings(
    existing: GroupSettings, update: GroupSettingsUpdate | dict | None
) -> GroupSettings:
    """Apply a partial settings update on top of ``existing``.

    Keys the update does not mention keep their current value, so the
    result is always a complete ``GroupSettings``.
    """
    if update is None:
        return existing
    try:
        if isinstance(update, dict):
            update = GroupSettingsUpdate.model_validate(update)
        changes = {
            key: value
            for key, value in update.model_dump(exclude_unset=True).items()
            if value is not None or key == "disappearing_messages_duration"
        }
        merged = GroupSettings.model_validate({**existing.model_dump(), **changes})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid settings: {_errors_text(e)}")

    if merged.who_can_remove_members != Policy.ADMINS_ONLY:
        raise ValidationError("Only admins can remove members")

    if merged.disappearing_messages:
        duration = merged.disappearing_messages_duration
        if duration is None:
            merged = merged.model_copy(update={"disappearing_messages_duration": DEFAULT_DISAPPEARING_DURATION_HOURS})
        elif duration not in DISAPPEARING_DURATIONS_HOURS:
            raise ValidationError(
                f"disappearing_messages_duration must be one of {', '.join(map(str, DISAPPEARING_DURATIONS_HOURS))} hours"
            )
    elif merged.disappearing_messages_duration is not None:
        merged = merged.model_copy(update={"disappearing_messages_duration": None})

    return merged


def changed_keys(before: GroupSettings, after: GroupSettings) -> list[str]:
    old, new = before.model_dump(), after.model_dump()
    return [key for key in new if old[key] != new[key]]


class GroupLifecycleManager(GroupManager):
    async def create_group(
        self,
        name: str,
        creator_id: uuid.UUID,
        participant_ids: Iterable[uuid.UUID] = (),
        description: str | None = None,
        avatar_url: str | None = None,
        settings: GroupSettingsUpdate | dict | None = None,
        group_type: GroupType | str = GroupType.PRIVATE,
        category: GroupCategory | str = GroupCategory.OTHER,
        max_participants: int | None = None,
    ) -> GroupDetail:
        name = clean_text(name, "name", NAME_MAX_LENGTH, required=True)
        description = clean_text(description, "description", DESCRIPTION_MAX_LENGTH)
        creator_id = coerce_uuid(creator_id, "creator id")

        member_ids: list[uuid.UUID] = []
        for raw in participant_ids:
            user_id = coerce_uuid(raw, "participant id")
            if user_id != creator_id and user_id not in member_ids:
                member_ids.append(user_id)

        limit = app_settings.DEFAULT_MAX_PARTICIPANTS if max_participants is None else max_participants
        if limit < 1:
            raise ValidationError("max_participants must be at least 1")
        if len(member_ids) + 1 > limit:
            raise CapacityExceededError(limit)

        now = utcnow()
        try:
            group = Group(
                name=name,
                description=description,
                avatar_url=avatar_url,
                created_by=creator_id,
                created_at=now,
                last_activity_at=now,
                settings=merge_settings(GroupSettings(), settings),
                group_type=group_type,
                category=category,
                max_participants=limit,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid group: {_errors_text(e)}")

        rows = [
            Participant(
                group_id=group.id,
                user_id=creator_id,
                role=ParticipantRole.ADMIN,
                joined_at=now,
                added_by=creator_id,
            )
        ] + [
            Participant(group_id=group.id, user_id=user_id, joined_at=now, added_by=creator_id)
            for user_id in member_ids
        ]

        async with self.repository.transaction():
            group = await self.repository.insert_group(group)
            await self.repository.insert_participants(group.id, rows)

        logger.info(f"Group {group.id} created by {creator_id} with {len(rows)} participants")
        await self.recorder.record(
            group.id,
            AuditAction.GROUP_CREATED,
            creator_id,
            target_user_ids=member_ids,
            details={"name": group.name},
        )
        return build_detail(group, rows)

    async def get_group_by_id(self, group_id: uuid.UUID) -> GroupDetail:
        return await self._detail(group_id)

    async def get_user_groups(self, user_id: uuid.UUID) -> list[GroupDetail]:
        user_id = coerce_uuid(user_id, "user id")
        details = []
        for group in await self.repository.list_groups_for_user(user_id):
            if group.is_deleted:
                continue
            participants = await self.repository.get_participants(group.id)
            details.append(build_detail(group, participants))
        return details

    async def update_group_info(
        self,
        group_id: uuid.UUID,
        update: GroupInfoUpdate | dict,
        acting_user_id: uuid.UUID,
    ) -> GroupDetail:
        try:
            if isinstance(update, dict):
                update = GroupInfoUpdate.model_validate(update)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid group info: {_errors_text(e)}")

        changes = update.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = clean_text(changes["name"], "name", NAME_MAX_LENGTH, required=True)
        if "description" in changes:
            changes["description"] = clean_text(changes["description"], "description", DESCRIPTION_MAX_LENGTH)
        if "avatar_url" in changes:
            changes["avatar_url"] = changes["avatar_url"] or None

        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.EDIT_GROUP_INFO)

            patch = {key: value for key, value in changes.items() if getattr(group, key) != value}
            changed = list(patch)
            patch["last_activity_at"] = utcnow()
            await self.repository.update_group(group.id, patch)

        await self.recorder.record(
            group.id,
            AuditAction.GROUP_INFO_UPDATED,
            acting_user_id,
            details={"fields": changed},
        )
        return await self._detail(group.id)

    async def update_group_settings(
        self,
        group_id: uuid.UUID,
        update: GroupSettingsUpdate | dict,
        acting_user_id: uuid.UUID,
    ) -> GroupDetail:
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.EDIT_SETTINGS)

            merged = merge_settings(group.settings, update)
            changed = changed_keys(group.settings, merged)
            await self.repository.update_group(group.id, {"settings": merged, "last_activity_at": utcnow()})

        await self.recorder.record(
            group.id,
            AuditAction.SETTINGS_UPDATED,
            acting_user_id,
            details={"changed": changed},
        )
        return await self._detail(group.id)

    async def archive_group(
        self, group_id: uuid.UUID, acting_user_id: uuid.UUID, archived: bool = True
    ) -> GroupDetail:
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            require_permission(group, participants, acting_user_id, Capability.EDIT_SETTINGS)
            if group.is_archived == archived:
                return build_detail(group, participants)
            await self.repository.update_group(group.id, {"is_archived": archived, "last_activity_at": utcnow()})

        action = AuditAction.GROUP_ARCHIVED if archived else AuditAction.GROUP_UNARCHIVED
        await self.recorder.record(group.id, action, acting_user_id)
        return await self._detail(group.id)

    async def delete_group(self, group_id: uuid.UUID, acting_user_id: uuid.UUID) -> None:
        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            require_permission(group, participants, acting_user_id, Capability.EDIT_SETTINGS)
            await self.repository.update_group(group.id, {"is_deleted": True})

        logger.info(f"Group {group.id} deleted by {acting_user_id}")
        await self.recorder.record(group.id, AuditAction.GROUP_DELETED, acting_user_id)
