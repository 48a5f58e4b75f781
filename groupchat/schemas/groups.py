import enum
import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, computed_field, field_validator

NAME_MAX_LENGTH = 64
DESCRIPTION_MAX_LENGTH = 500
CUSTOM_TITLE_MAX_LENGTH = 25
DISAPPEARING_DURATIONS_HOURS = (1, 24, 168, 720)
DEFAULT_DISAPPEARING_DURATION_HOURS = 24


class Policy(str, enum.Enum):
    EVERYONE = "everyone"
    ADMINS_ONLY = "admins_only"


class GroupType(str, enum.Enum):
    PRIVATE = "private"
    PUBLIC = "public"
    ANNOUNCEMENT = "announcement"


class GroupCategory(str, enum.Enum):
    FAMILY = "family"
    FRIENDS = "friends"
    WORK = "work"
    STUDY = "study"
    COMMUNITY = "community"
    OTHER = "other"


class ParticipantRole(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Record(BaseModel):
    """Base for records handed out by a repository.

    Backends that drop timezone information (SQLite) return naive
    datetimes; those are read back as UTC.
    """

    @field_validator("*", mode="after")
    @classmethod
    def _as_utc(cls, value):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    class Config:
        from_attributes = True


class GroupSettings(BaseModel):
    who_can_send_messages: Policy = Policy.EVERYONE
    who_can_add_members: Policy = Policy.ADMINS_ONLY
    who_can_edit_group_info: Policy = Policy.ADMINS_ONLY
    who_can_remove_members: Policy = Policy.ADMINS_ONLY
    disappearing_messages: bool = False
    disappearing_messages_duration: int | None = None
    allow_member_invites: bool = True
    show_member_add_notifications: bool = True
    show_member_exit_notifications: bool = True
    mute_non_admin_messages: bool = False


class GroupSettingsUpdate(BaseModel):
    who_can_send_messages: Policy | None = None
    who_can_add_members: Policy | None = None
    who_can_edit_group_info: Policy | None = None
    who_can_remove_members: Policy | None = None
    disappearing_messages: bool | None = None
    disappearing_messages_duration: int | None = None
    allow_member_invites: bool | None = None
    show_member_add_notifications: bool | None = None
    show_member_exit_notifications: bool | None = None
    mute_non_admin_messages: bool | None = None

    class Config:
        extra = "forbid"


class Group(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: str | None = None
    avatar_url: str | None = None
    created_by: uuid.UUID
    created_at: datetime
    last_activity_at: datetime
    settings: GroupSettings = Field(default_factory=GroupSettings)
    group_type: GroupType = GroupType.PRIVATE
    category: GroupCategory = GroupCategory.OTHER
    max_participants: int = 256
    is_archived: bool = False
    is_deleted: bool = False
    pinned_message_ids: list[uuid.UUID] = Field(default_factory=list)


class Participant(Record):
    group_id: uuid.UUID
    user_id: uuid.UUID
    role: ParticipantRole = ParticipantRole.MEMBER
    joined_at: datetime
    added_by: uuid.UUID
    is_active: bool = True
    left_at: datetime | None = None
    removed_by: uuid.UUID | None = None
    removed_at: datetime | None = None
    custom_title: str | None = None
    last_seen_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ParticipantRole.ADMIN


class ParticipantView(BaseModel):
    user_id: uuid.UUID
    role: ParticipantRole
    joined_at: datetime
    added_by: uuid.UUID
    custom_title: str | None = None
    permissions: list[str] = Field(default_factory=list)


class GroupDetail(BaseModel):
    group: Group
    participants: list[ParticipantView]

    @computed_field
    @property
    def member_count(self) -> int:
        return len(self.participants)

    def participant(self, user_id: uuid.UUID) -> ParticipantView | None:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None


class GroupListResponse(BaseModel):
    groups: list[GroupDetail]
    total: int


class GroupAnalytics(BaseModel):
    group_id: uuid.UUID
    total_messages: int
    total_members: int
    active_members: int
    message_frequency: float
    engagement_rate: float


# Request bodies


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    avatar_url: str | None = None
    participant_ids: list[uuid.UUID] = Field(default_factory=list)
    settings: GroupSettingsUpdate | None = None
    group_type: GroupType = GroupType.PRIVATE
    category: GroupCategory = GroupCategory.OTHER


class GroupInfoUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    avatar_url: str | None = None

    class Config:
        extra = "forbid"


class MembersAdd(BaseModel):
    user_ids: list[uuid.UUID] = Field(..., min_length=1)


class CustomTitleUpdate(BaseModel):
    custom_title: str | None = Field(default=None, max_length=CUSTOM_TITLE_MAX_LENGTH)
