import enum
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from groupchat.core.exceptions import DuplicateParticipantError, RepositoryError
from groupchat.models.audit_entry import GroupAuditEntry
from groupchat.models.chat_group import ChatGroup
from groupchat.models.group_invite import GroupInvite
from groupchat.models.group_member import GroupMember
from groupchat.models.message import Message
from groupchat.schemas.groups import Group, Participant
from groupchat.schemas.invites import InviteLink
from groupchat.schemas.messages import AuditEntry, GroupMessage, MessageType

logger = logging.getLogger(__name__)


def _json_value(value):
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _json_value(v) for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    return value


def _column_value(value):
    # JSON columns get plain JSON; scalar columns keep native types
    if isinstance(value, (BaseModel, dict, list, tuple)):
        return _json_value(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _columns(patch: dict) -> dict:
    return {key: _column_value(value) for key, value in patch.items()}


class SqlGroupRepository:
    """Repository backed by the PostgreSQL tables through an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Transaction rolled back: {e}")
            raise RepositoryError() from e
        except BaseException:
            await self.db.rollback()
            raise

    async def _execute(self, statement):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Query failed: {e}")
            raise RepositoryError() from e

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise RepositoryError() from e

    # Groups

    async def insert_group(self, group: Group) -> Group:
        row = ChatGroup(**_columns(group.model_dump()))
        self.db.add(row)
        await self._flush()
        return Group.model_validate(row)

    async def get_group(self, group_id: uuid.UUID, *, for_update: bool = False) -> Group | None:
        query = select(ChatGroup).where(ChatGroup.id == group_id)
        if for_update:
            query = query.with_for_update()
        result = await self._execute(query)
        row = result.scalar_one_or_none()
        return Group.model_validate(row) if row else None

    async def update_group(self, group_id: uuid.UUID, patch: dict) -> None:
        await self._execute(
            update(ChatGroup).where(ChatGroup.id == group_id).values(**_columns(patch))
        )

    async def list_groups_for_user(self, user_id: uuid.UUID) -> list[Group]:
        member_group_ids = select(GroupMember.group_id).where(
            GroupMember.user_id == user_id,
            GroupMember.is_active.is_(True),
        )
        result = await self._execute(
            select(ChatGroup)
            .where(ChatGroup.id.in_(member_group_ids))
            .order_by(ChatGroup.last_activity_at.desc())
        )
        return [Group.model_validate(row) for row in result.scalars().all()]

    # Participants

    async def insert_participants(self, group_id: uuid.UUID, rows: list[Participant]) -> None:
        for row in rows:
            data = _columns(row.model_dump())
            data["group_id"] = group_id
            self.db.add(GroupMember(**data))
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateParticipantError() from e
        except SQLAlchemyError as e:
            raise RepositoryError() from e

    async def get_participants(self, group_id: uuid.UUID, *, active_only: bool = True) -> list[Participant]:
        query = select(GroupMember).where(GroupMember.group_id == group_id)
        if active_only:
            query = query.where(GroupMember.is_active.is_(True))
        result = await self._execute(query.order_by(GroupMember.joined_at))
        return [Participant.model_validate(row) for row in result.scalars().all()]

    async def _get_member_row(self, group_id: uuid.UUID, user_id: uuid.UUID) -> GroupMember | None:
        result = await self._execute(
            select(GroupMember).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_participant(self, group_id: uuid.UUID, user_id: uuid.UUID) -> Participant | None:
        row = await self._get_member_row(group_id, user_id)
        return Participant.model_validate(row) if row else None

    async def upsert_participant(self, group_id: uuid.UUID, user_id: uuid.UUID, patch: dict) -> None:
        row = await self._get_member_row(group_id, user_id)
        if row is None:
            await self.insert_participants(
                group_id, [Participant(group_id=group_id, user_id=user_id, **patch)]
            )
            return
        for key, value in _columns(patch).items():
            setattr(row, key, value)
        await self._flush()

    # Invite links

    async def insert_invite_link(self, link: InviteLink) -> InviteLink:
        row = GroupInvite(**link.model_dump())
        self.db.add(row)
        await self._flush()
        return InviteLink.model_validate(row)

    async def get_invite_link(self, link_id: uuid.UUID) -> InviteLink | None:
        result = await self._execute(
            select(GroupInvite)
            .where(GroupInvite.id == link_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return InviteLink.model_validate(row) if row else None

    async def get_invite_link_by_code(self, code: str) -> InviteLink | None:
        result = await self._execute(
            select(GroupInvite)
            .where(GroupInvite.code == code)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return InviteLink.model_validate(row) if row else None

    async def list_invite_links(self, group_id: uuid.UUID) -> list[InviteLink]:
        result = await self._execute(
            select(GroupInvite)
            .where(GroupInvite.group_id == group_id)
            .order_by(GroupInvite.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [InviteLink.model_validate(row) for row in result.scalars().all()]

    async def update_invite_link(self, link_id: uuid.UUID, patch: dict) -> None:
        await self._execute(
            update(GroupInvite).where(GroupInvite.id == link_id).values(**_columns(patch))
        )

    async def increment_invite_usage(self, link_id: uuid.UUID) -> bool:
        # usage rows are re-read with populate_existing, so no session sync is needed
        result = await self._execute(
            update(GroupInvite)
            .where(
                GroupInvite.id == link_id,
                GroupInvite.is_active.is_(True),
                GroupInvite.max_uses.is_(None) | (GroupInvite.usage_count < GroupInvite.max_uses),
            )
            .values(usage_count=GroupInvite.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # Audit trail and messages

    async def append_audit_entry(self, entry: AuditEntry) -> None:
        self.db.add(GroupAuditEntry(**_columns(entry.model_dump())))
        await self._flush()

    async def list_audit_entries(self, group_id: uuid.UUID, limit: int = 50) -> list[AuditEntry]:
        result = await self._execute(
            select(GroupAuditEntry)
            .where(GroupAuditEntry.group_id == group_id)
            .order_by(GroupAuditEntry.created_at.desc())
            .limit(limit)
        )
        return [AuditEntry.model_validate(row) for row in result.scalars().all()]

    async def insert_message(self, message: GroupMessage) -> GroupMessage:
        data = _columns(message.model_dump())
        data["extra_data"] = data.pop("metadata")
        row = Message(**data)
        self.db.add(row)
        await self._flush()
        return GroupMessage.model_validate(row)

    async def get_message(self, group_id: uuid.UUID, message_id: uuid.UUID) -> GroupMessage | None:
        result = await self._execute(
            select(Message).where(
                Message.id == message_id,
                Message.group_id == group_id,
                Message.is_deleted.is_(False),
            )
        )
        row = result.scalar_one_or_none()
        return GroupMessage.model_validate(row) if row else None

    async def count_messages(self, group_id: uuid.UUID, since: datetime | None = None) -> int:
        query = select(func.count()).select_from(Message).where(
            Message.group_id == group_id,
            Message.is_deleted.is_(False),
            Message.message_type != MessageType.SYSTEM.value,
        )
        if since is not None:
            query = query.where(Message.created_at >= since)
        result = await self._execute(query)
        return result.scalar() or 0
