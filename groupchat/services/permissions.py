"""Capability checks for group participants.

Permissions are never stored per participant: they are derived from the
participant's role and the group's current settings every time they are
needed, so a settings change takes effect immediately for everyone.
"""

import enum
import uuid
from collections.abc import Iterable

from groupchat.core.exceptions import PermissionDeniedError
from groupchat.schemas.groups import Group, Participant, ParticipantRole, Policy


class Capability(str, enum.Enum):
    SEND_MESSAGES = "send_messages"
    ADD_MEMBERS = "add_members"
    REMOVE_MEMBERS = "remove_members"
    EDIT_GROUP_INFO = "edit_group_info"
    EDIT_SETTINGS = "edit_settings"
    CREATE_INVITES = "create_invites"
    MANAGE_ADMINS = "manage_admins"
    PIN_MESSAGES = "pin_messages"
    SEND_ANNOUNCEMENTS = "send_announcements"
    SHARE_FILES = "share_files"
    MENTION_EVERYONE = "mention_everyone"


def find_active_participant(participants: Iterable[Participant], user_id: uuid.UUID) -> Participant | None:
    for participant in participants:
        if participant.user_id == user_id and participant.is_active:
            return participant
    return None


def _member_may(group: Group, capability: Capability) -> bool:
    settings = group.settings
    if capability == Capability.SEND_MESSAGES:
        return settings.who_can_send_messages == Policy.EVERYONE and not settings.mute_non_admin_messages
    if capability == Capability.ADD_MEMBERS:
        return settings.who_can_add_members == Policy.EVERYONE
    if capability == Capability.EDIT_GROUP_INFO:
        return settings.who_can_edit_group_info == Policy.EVERYONE
    if capability == Capability.CREATE_INVITES:
        return settings.allow_member_invites
    if capability == Capability.SHARE_FILES:
        return True
    # remove_members, edit_settings, manage_admins, pin_messages,
    # send_announcements and mention_everyone are admin-only
    return False


def role_allows(group: Group, role: ParticipantRole, capability: Capability) -> bool:
    if role == ParticipantRole.ADMIN:
        return True
    return _member_may(group, capability)


def has_permission(
    group: Group,
    participants: Iterable[Participant],
    user_id: uuid.UUID,
    capability: Capability,
) -> bool:
    participant = find_active_participant(participants, user_id)
    if participant is None:
        return False
    return role_allows(group, participant.role, capability)


def permissions_for(group: Group, role: ParticipantRole) -> list[Capability]:
    return [capability for capability in Capability if role_allows(group, role, capability)]


def require_permission(
    group: Group,
    participants: Iterable[Participant],
    user_id: uuid.UUID,
    capability: Capability,
) -> Participant:
    """Return the acting participant or raise ``PermissionDeniedError``."""
    participant = find_active_participant(participants, user_id)
    if participant is None or not role_allows(group, participant.role, capability):
        raise PermissionDeniedError(capability.value)
    return participant
