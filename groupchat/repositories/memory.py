import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from groupchat.core.exceptions import DuplicateParticipantError, RepositoryError
from groupchat.schemas.groups import Group, Participant
from groupchat.schemas.invites import InviteLink
from groupchat.schemas.messages import AuditEntry, GroupMessage, MessageType


class InMemoryGroupRepository:
    """Dict-backed repository for local runs and tests.

    Transactions are serialised by a lock; a failed transaction restores
    the state captured when it started.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._groups: dict[uuid.UUID, Group] = {}
        self._participants: dict[tuple[uuid.UUID, uuid.UUID], Participant] = {}
        self._invites: dict[uuid.UUID, InviteLink] = {}
        self._audit: list[AuditEntry] = []
        self._messages: dict[uuid.UUID, GroupMessage] = {}

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            snapshot = copy.deepcopy(
                (self._groups, self._participants, self._invites, self._audit, self._messages)
            )
            try:
                yield
            except BaseException:
                (
                    self._groups,
                    self._participants,
                    self._invites,
                    self._audit,
                    self._messages,
                ) = snapshot
                raise

    # Groups

    async def insert_group(self, group: Group) -> Group:
        self._groups[group.id] = group.model_copy(deep=True)
        return group.model_copy(deep=True)

    async def get_group(self, group_id: uuid.UUID, *, for_update: bool = False) -> Group | None:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def update_group(self, group_id: uuid.UUID, patch: dict) -> None:
        group = self._groups[group_id]
        self._groups[group_id] = group.model_copy(update=copy.deepcopy(patch))

    async def list_groups_for_user(self, user_id: uuid.UUID) -> list[Group]:
        group_ids = {
            p.group_id for p in self._participants.values() if p.user_id == user_id and p.is_active
        }
        groups = [self._groups[gid].model_copy(deep=True) for gid in group_ids if gid in self._groups]
        return sorted(groups, key=lambda g: g.last_activity_at, reverse=True)

    # Participants

    async def insert_participants(self, group_id: uuid.UUID, rows: list[Participant]) -> None:
        keys = [(group_id, row.user_id) for row in rows]
        if len(set(keys)) != len(keys) or any(key in self._participants for key in keys):
            raise DuplicateParticipantError()
        for key, row in zip(keys, rows):
            self._participants[key] = row.model_copy(deep=True)

    async def get_participants(self, group_id: uuid.UUID, *, active_only: bool = True) -> list[Participant]:
        rows = [
            p.model_copy(deep=True)
            for (gid, _), p in self._participants.items()
            if gid == group_id and (p.is_active or not active_only)
        ]
        return sorted(rows, key=lambda p: p.joined_at)

    async def get_participant(self, group_id: uuid.UUID, user_id: uuid.UUID) -> Participant | None:
        row = self._participants.get((group_id, user_id))
        return row.model_copy(deep=True) if row else None

    async def upsert_participant(self, group_id: uuid.UUID, user_id: uuid.UUID, patch: dict) -> None:
        key = (group_id, user_id)
        existing = self._participants.get(key)
        if existing is None:
            self._participants[key] = Participant(group_id=group_id, user_id=user_id, **patch)
        else:
            self._participants[key] = existing.model_copy(update=copy.deepcopy(patch))

    # Invite links

    async def insert_invite_link(self, link: InviteLink) -> InviteLink:
        if any(existing.code == link.code for existing in self._invites.values()):
            raise RepositoryError("Duplicate invite code")
        self._invites[link.id] = link.model_copy(deep=True)
        return link.model_copy(deep=True)

    async def get_invite_link(self, link_id: uuid.UUID) -> InviteLink | None:
        link = self._invites.get(link_id)
        return link.model_copy(deep=True) if link else None

    async def get_invite_link_by_code(self, code: str) -> InviteLink | None:
        for link in self._invites.values():
            if link.code == code:
                return link.model_copy(deep=True)
        return None

    async def list_invite_links(self, group_id: uuid.UUID) -> list[InviteLink]:
        links = [link.model_copy(deep=True) for link in self._invites.values() if link.group_id == group_id]
        return sorted(links, key=lambda link: link.created_at, reverse=True)

    async def update_invite_link(self, link_id: uuid.UUID, patch: dict) -> None:
        self._invites[link_id] = self._invites[link_id].model_copy(update=copy.deepcopy(patch))

    async def increment_invite_usage(self, link_id: uuid.UUID) -> bool:
        link = self._invites.get(link_id)
        if link is None or not link.is_active or link.is_exhausted():
            return False
        self._invites[link_id] = link.model_copy(update={"usage_count": link.usage_count + 1})
        return True

    # Audit trail and messages

    async def append_audit_entry(self, entry: AuditEntry) -> None:
        self._audit.append(entry.model_copy(deep=True))

    async def list_audit_entries(self, group_id: uuid.UUID, limit: int = 50) -> list[AuditEntry]:
        entries = [(e.created_at, i, e) for i, e in enumerate(self._audit) if e.group_id == group_id]
        entries.sort(key=lambda item: item[:2], reverse=True)
        return [e.model_copy(deep=True) for _, _, e in entries[:limit]]

    async def insert_message(self, message: GroupMessage) -> GroupMessage:
        self._messages[message.id] = message.model_copy(deep=True)
        return message.model_copy(deep=True)

    async def get_message(self, group_id: uuid.UUID, message_id: uuid.UUID) -> GroupMessage | None:
        message = self._messages.get(message_id)
        if message is None or message.group_id != group_id or message.is_deleted:
            return None
        return message.model_copy(deep=True)

    async def count_messages(self, group_id: uuid.UUID, since: datetime | None = None) -> int:
        return sum(
            1
            for m in self._messages.values()
            if m.group_id == group_id
            and not m.is_deleted
            and m.message_type != MessageType.SYSTEM
            and (since is None or m.created_at >= since)
        )
