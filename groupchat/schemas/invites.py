import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from groupchat.core.config import settings
from groupchat.schemas.groups import Record


class InviteLink(Record):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    group_id: uuid.UUID
    code: str
    created_by: uuid.UUID
    created_at: datetime
    expires_at: datetime | None = None
    max_uses: int | None = None
    usage_count: int = 0
    is_active: bool = True

    @property
    def url(self) -> str:
        return f"{settings.INVITE_BASE_URL.rstrip('/')}/{self.code}"

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.usage_count >= self.max_uses

    def is_usable(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now) and not self.is_exhausted()


class InviteLinkCreate(BaseModel):
    expires_at: datetime | None = None
    max_uses: int | None = Field(default=None, ge=1)


class InviteLinkResponse(BaseModel):
    id: uuid.UUID
    group_id: uuid.UUID
    code: str
    url: str
    created_by: uuid.UUID
    created_at: datetime
    expires_at: datetime | None
    max_uses: int | None
    usage_count: int
    is_active: bool

    @classmethod
    def from_link(cls, link: InviteLink) -> "InviteLinkResponse":
        # exhausted or expired links read as inactive whatever the stored flag says
        data = link.model_dump()
        data["is_active"] = link.is_usable(datetime.now(timezone.utc))
        return cls(**data, url=link.url)


class JoinByCodeRequest(BaseModel):
    invite_code: str
