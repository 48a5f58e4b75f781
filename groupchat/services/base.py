import uuid

from groupchat.core.exceptions import GroupNotFoundError, ValidationError
from groupchat.core.utils import coerce_uuid
from groupchat.repositories.base import GroupRepository
from groupchat.schemas.groups import Group, GroupDetail, Participant, ParticipantView
from groupchat.services.audit import AuditRecorder
from groupchat.services.permissions import permissions_for


def build_detail(group: Group, participants: list[Participant]) -> GroupDetail:
    return GroupDetail(
        group=group,
        participants=[
            ParticipantView(
                user_id=p.user_id,
                role=p.role,
                joined_at=p.joined_at,
                added_by=p.added_by,
                custom_title=p.custom_title,
                permissions=[c.value for c in permissions_for(group, p.role)],
            )
            for p in participants
            if p.is_active
        ],
    )


class GroupManager:
    """Shared lookups for the managers that work on a single group."""

    def __init__(self, repository: GroupRepository, recorder: AuditRecorder):
        self.repository = repository
        self.recorder = recorder

    async def _load_group(self, group_id: uuid.UUID, *, for_update: bool = False) -> Group:
        group_id = coerce_uuid(group_id, "group id")
        group = await self.repository.get_group(group_id, for_update=for_update)
        if group is None or group.is_deleted:
            raise GroupNotFoundError()
        return group

    async def _load_state(
        self, group_id: uuid.UUID, *, for_update: bool = False
    ) -> tuple[Group, list[Participant]]:
        group = await self._load_group(group_id, for_update=for_update)
        participants = await self.repository.get_participants(group.id)
        return group, participants

    async def _detail(self, group_id: uuid.UUID) -> GroupDetail:
        group, participants = await self._load_state(group_id)
        return build_detail(group, participants)

    @staticmethod
    def _ensure_not_archived(group: Group) -> None:
        if group.is_archived:
            raise ValidationError("Group is archived")
