import logging
import secrets
import uuid
from datetime import datetime

from groupchat.core.exceptions import (
    InviteExpiredError,
    InviteInvalidError,
    InviteNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from groupchat.core.utils import as_utc, coerce_uuid, utcnow
from groupchat.repositories.base import GroupRepository
from groupchat.schemas.invites import InviteLink
from groupchat.schemas.messages import AuditAction
from groupchat.services.base import GroupManager
from groupchat.services.permissions import Capability, find_active_participant, require_permission

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    return secrets.token_urlsafe(32)


async def resolve_invite(repository: GroupRepository, code: str, now: datetime) -> InviteLink:
    """Return the link for ``code`` if it can be redeemed right now.

    Unknown and revoked codes are invalid; expired and used-up links are
    expired, whatever their stored ``is_active`` flag says.
    """
    link = await repository.get_invite_link_by_code(code) if code else None
    if link is None or not link.is_active:
        logger.warning("Rejected invite redemption: unknown or revoked code")
        raise InviteInvalidError()
    if link.is_expired(now) or link.is_exhausted():
        logger.warning(f"Rejected invite redemption: link {link.id} expired or exhausted")
        raise InviteExpiredError()
    return link


class InviteManager(GroupManager):
    async def create_invite_link(
        self,
        group_id: uuid.UUID,
        acting_user_id: uuid.UUID,
        expires_at: datetime | None = None,
        max_uses: int | None = None,
    ) -> InviteLink:
        now = utcnow()
        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= now:
                raise ValidationError("expires_at must be in the future")
        if max_uses is not None and max_uses < 1:
            raise ValidationError("max_uses must be at least 1")

        async with self.repository.transaction():
            group, participants = await self._load_state(group_id, for_update=True)
            self._ensure_not_archived(group)
            require_permission(group, participants, acting_user_id, Capability.CREATE_INVITES)
            link = await self.repository.insert_invite_link(
                InviteLink(
                    group_id=group.id,
                    code=generate_invite_code(),
                    created_by=acting_user_id,
                    created_at=now,
                    expires_at=expires_at,
                    max_uses=max_uses,
                )
            )

        await self.recorder.record(
            group.id,
            AuditAction.INVITE_CREATED,
            acting_user_id,
            details={
                "invite_id": str(link.id),
                "expires_at": expires_at.isoformat() if expires_at else None,
                "max_uses": max_uses,
            },
        )
        return link

    async def revoke_invite_link(self, link_id: uuid.UUID, acting_user_id: uuid.UUID) -> InviteLink:
        link_id = coerce_uuid(link_id, "invite id")
        async with self.repository.transaction():
            link = await self.repository.get_invite_link(link_id)
            if link is None:
                raise InviteNotFoundError()
            group, participants = await self._load_state(link.group_id, for_update=True)
            actor = find_active_participant(participants, acting_user_id)
            if actor is None or not actor.is_admin:
                raise PermissionDeniedError("revoke_invites")
            if not link.is_active:
                raise ValidationError("Invite link is already revoked")
            await self.repository.update_invite_link(link.id, {"is_active": False})

        await self.recorder.record(
            group.id,
            AuditAction.INVITE_REVOKED,
            acting_user_id,
            details={"invite_id": str(link.id)},
        )
        return link.model_copy(update={"is_active": False})

    async def list_invite_links(self, group_id: uuid.UUID, acting_user_id: uuid.UUID) -> list[InviteLink]:
        group, participants = await self._load_state(group_id)
        require_permission(group, participants, acting_user_id, Capability.CREATE_INVITES)
        return await self.repository.list_invite_links(group.id)
