import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from groupchat.repositories.base import GroupRepository
from groupchat.schemas.messages import AuditAction, AuditEntry

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Appends system entries to a group's audit trail.

    Entries are written after the change they describe has been committed,
    in a transaction of their own. A failed append is logged and reported
    to the caller as ``None`` but never undoes the change: the audit trail
    is best-effort.
    """

    def __init__(self, repository: GroupRepository):
        self.repository = repository

    async def record(
        self,
        group_id: uuid.UUID,
        action: AuditAction,
        actor_id: uuid.UUID,
        target_user_ids: Iterable[uuid.UUID] = (),
        details: dict | None = None,
    ) -> AuditEntry | None:
        entry = AuditEntry(
            group_id=group_id,
            action=action,
            actor_id=actor_id,
            target_user_ids=list(target_user_ids),
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        try:
            async with self.repository.transaction():
                await self.repository.append_audit_entry(entry)
        except Exception:
            logger.error(
                f"Failed to record {action.value} for group {group_id} (actor {actor_id})",
                exc_info=True,
            )
            return None
        return entry

    async def list_entries(self, group_id: uuid.UUID, limit: int = 50) -> list[AuditEntry]:
        return await self.repository.list_audit_entries(group_id, limit)
