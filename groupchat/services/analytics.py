import uuid
from datetime import timedelta

from groupchat.core.config import settings
from groupchat.core.exceptions import PermissionDeniedError
from groupchat.core.utils import utcnow
from groupchat.schemas.groups import GroupAnalytics
from groupchat.services.base import GroupManager
from groupchat.services.permissions import find_active_participant


class AnalyticsAggregator(GroupManager):
    """Read-only rollups over participant rows and message counts."""

    async def get_group_analytics(self, group_id: uuid.UUID, acting_user_id: uuid.UUID) -> GroupAnalytics:
        group, participants = await self._load_state(group_id)
        if find_active_participant(participants, acting_user_id) is None:
            raise PermissionDeniedError()

        now = utcnow()
        active_since = now - timedelta(days=settings.ACTIVE_MEMBER_WINDOW_DAYS)
        frequency_window = settings.MESSAGE_FREQUENCY_WINDOW_DAYS

        total_members = len(participants)
        active_members = sum(1 for p in participants if (p.last_seen_at or p.joined_at) >= active_since)
        total_messages = await self.repository.count_messages(group.id)
        recent_messages = await self.repository.count_messages(
            group.id, since=now - timedelta(days=frequency_window)
        )

        engagement_rate = active_members / total_members * 100 if total_members else 0.0
        return GroupAnalytics(
            group_id=group.id,
            total_messages=total_messages,
            total_members=total_members,
            active_members=active_members,
            message_frequency=round(recent_messages / frequency_window, 2),
            engagement_rate=round(engagement_rate, 2),
        )
