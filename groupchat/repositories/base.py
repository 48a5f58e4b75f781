"""Persistence interface for groups, participants, invite links and the audit trail."""

import uuid
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, Protocol

from groupchat.schemas.groups import Group, Participant
from groupchat.schemas.invites import InviteLink
from groupchat.schemas.messages import AuditEntry, GroupMessage


class GroupRepository(Protocol):
    """Storage seam used by the managers.

    Lookups return ``None`` for missing rows. Writes made inside
    ``transaction()`` are applied together or not at all.
    """

    def transaction(self) -> AbstractAsyncContextManager[None]:
        ...

    async def insert_group(self, group: Group) -> Group:
        ...

    async def get_group(self, group_id: uuid.UUID, *, for_update: bool = False) -> Group | None:
        """Fetch a group; ``for_update`` locks the row until the transaction ends."""
        ...

    async def update_group(self, group_id: uuid.UUID, patch: dict[str, Any]) -> None:
        ...

    async def list_groups_for_user(self, user_id: uuid.UUID) -> list[Group]:
        """Groups with an active participant row for ``user_id``, most recently active first."""
        ...

    async def insert_participants(self, group_id: uuid.UUID, rows: list[Participant]) -> None:
        """Raises ``DuplicateParticipantError`` if a (group, user) row already exists."""
        ...

    async def get_participants(self, group_id: uuid.UUID, *, active_only: bool = True) -> list[Participant]:
        ...

    async def get_participant(self, group_id: uuid.UUID, user_id: uuid.UUID) -> Participant | None:
        ...

    async def upsert_participant(self, group_id: uuid.UUID, user_id: uuid.UUID, patch: dict[str, Any]) -> None:
        ...

    async def insert_invite_link(self, link: InviteLink) -> InviteLink:
        ...

    async def get_invite_link(self, link_id: uuid.UUID) -> InviteLink | None:
        ...

    async def get_invite_link_by_code(self, code: str) -> InviteLink | None:
        ...

    async def list_invite_links(self, group_id: uuid.UUID) -> list[InviteLink]:
        ...

    async def update_invite_link(self, link_id: uuid.UUID, patch: dict[str, Any]) -> None:
        ...

    async def increment_invite_usage(self, link_id: uuid.UUID) -> bool:
        """Bump ``usage_count`` if the link is active and not exhausted.

        Returns False when the link could not be used, so two callers
        racing for the last use cannot both succeed.
        """
        ...

    async def append_audit_entry(self, entry: AuditEntry) -> None:
        ...

    async def list_audit_entries(self, group_id: uuid.UUID, limit: int = 50) -> list[AuditEntry]:
        ...

    async def insert_message(self, message: GroupMessage) -> GroupMessage:
        ...

    async def get_message(self, group_id: uuid.UUID, message_id: uuid.UUID) -> GroupMessage | None:
        ...

    async def count_messages(self, group_id: uuid.UUID, since: datetime | None = None) -> int:
        """Count non-deleted, non-system messages, optionally from ``since`` on."""
        ...
