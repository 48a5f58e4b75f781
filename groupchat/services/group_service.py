import uuid

from groupchat.core.exceptions import ValidationError
from groupchat.core.utils import coerce_uuid
from groupchat.repositories.base import GroupRepository
from groupchat.services.analytics import AnalyticsAggregator
from groupchat.services.announcements import AnnouncementManager
from groupchat.services.audit import AuditRecorder
from groupchat.services.invites import InviteManager
from groupchat.services.lifecycle import GroupLifecycleManager
from groupchat.services.membership import MembershipManager
from groupchat.services.permissions import Capability
from groupchat.services.permissions import has_permission as participants_have_permission


class GroupService:
    """Entry point for every group operation.

    Built once per request around that request's repository; holds no state
    of its own beyond the managers it delegates to.
    """

    def __init__(self, repository: GroupRepository):
        self.repository = repository
        self.recorder = AuditRecorder(repository)

        self.lifecycle = GroupLifecycleManager(repository, self.recorder)
        self.membership = MembershipManager(repository, self.recorder)
        self.invites = InviteManager(repository, self.recorder)
        self.announcements = AnnouncementManager(repository, self.recorder)
        self.analytics = AnalyticsAggregator(repository, self.recorder)

        self.create_group = self.lifecycle.create_group
        self.get_group_by_id = self.lifecycle.get_group_by_id
        self.get_user_groups = self.lifecycle.get_user_groups
        self.update_group_info = self.lifecycle.update_group_info
        self.update_group_settings = self.lifecycle.update_group_settings
        self.archive_group = self.lifecycle.archive_group
        self.delete_group = self.lifecycle.delete_group

        self.add_member = self.membership.add_member
        self.add_members = self.membership.add_members
        self.remove_member = self.membership.remove_member
        self.leave_group = self.membership.leave_group
        self.promote_to_admin = self.membership.promote_to_admin
        self.demote_from_admin = self.membership.demote_from_admin
        self.set_custom_title = self.membership.set_custom_title
        self.join_via_invite = self.membership.join_via_invite

        self.create_invite_link = self.invites.create_invite_link
        self.revoke_invite_link = self.invites.revoke_invite_link
        self.list_invite_links = self.invites.list_invite_links

        self.create_announcement = self.announcements.create_announcement
        self.pin_message = self.announcements.pin_message
        self.unpin_message = self.announcements.unpin_message
        self.get_group_actions = self.announcements.get_group_actions

        self.get_group_analytics = self.analytics.get_group_analytics

    async def has_permission(
        self, group_id: uuid.UUID, user_id: uuid.UUID, capability: Capability | str
    ) -> bool:
        """False for unknown groups, non-members and departed members."""
        try:
            capability = Capability(capability)
        except ValueError:
            raise ValidationError(f"Unknown capability: {capability}")
        group = await self.repository.get_group(coerce_uuid(group_id, "group id"))
        if group is None or group.is_deleted:
            return False
        participants = await self.repository.get_participants(group.id)
        return participants_have_permission(group, participants, coerce_uuid(user_id, "user id"), capability)
