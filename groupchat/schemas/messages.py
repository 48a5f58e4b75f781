import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from groupchat.schemas.groups import Record

ANNOUNCEMENT_MAX_LENGTH = 4096


class MessageType(str, enum.Enum):
    TEXT = "text"
    ANNOUNCEMENT = "announcement"
    SYSTEM = "system"


class AuditAction(str, enum.Enum):
    GROUP_CREATED = "group_created"
    GROUP_INFO_UPDATED = "group_info_updated"
    SETTINGS_UPDATED = "settings_updated"
    GROUP_ARCHIVED = "group_archived"
    GROUP_UNARCHIVED = "group_unarchived"
    GROUP_DELETED = "group_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_LEFT = "member_left"
    MEMBER_JOINED = "member_joined"
    MEMBER_PROMOTED = "member_promoted"
    MEMBER_DEMOTED = "member_demoted"
    MEMBER_TITLE_CHANGED = "member_title_changed"
    INVITE_CREATED = "invite_created"
    INVITE_REVOKED = "invite_revoked"
    MESSAGE_PINNED = "message_pinned"
    MESSAGE_UNPINNED = "message_unpinned"


class AuditEntry(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    group_id: uuid.UUID
    action: AuditAction
    actor_id: uuid.UUID
    target_user_ids: list[uuid.UUID] = Field(default_factory=list)
    details: dict = Field(default_factory=dict)
    created_at: datetime


class GroupMessage(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    group_id: uuid.UUID
    sender_id: uuid.UUID | None = None
    content: str
    message_type: MessageType = MessageType.TEXT
    metadata: dict = Field(default_factory=dict, validation_alias="extra_data")
    is_deleted: bool = False
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True


class AnnouncementCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=ANNOUNCEMENT_MAX_LENGTH)
