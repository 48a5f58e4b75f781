import uuid

from fastapi import APIRouter, Depends, Query

from groupchat.api.deps import get_group_service
from groupchat.core.exceptions import PermissionDeniedError
from groupchat.core.security import get_current_user
from groupchat.schemas.auth import CurrentUser
from groupchat.schemas.groups import (
    CustomTitleUpdate,
    GroupAnalytics,
    GroupCreate,
    GroupDetail,
    GroupInfoUpdate,
    GroupListResponse,
    GroupSettingsUpdate,
    MembersAdd,
    Participant,
)
from groupchat.schemas.messages import AuditEntry
from groupchat.services.group_service import GroupService

router = APIRouter(prefix="/api/v1/groups", tags=["groups"])


@router.post("", response_model=GroupDetail, status_code=201)
async def create_group(
    body: GroupCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.create_group(
        name=body.name,
        creator_id=current_user.user_id,
        participant_ids=body.participant_ids,
        description=body.description,
        avatar_url=body.avatar_url,
        settings=body.settings,
        group_type=body.group_type,
        category=body.category,
    )


@router.get("", response_model=GroupListResponse)
async def list_groups(
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    groups = await service.get_user_groups(current_user.user_id)
    return GroupListResponse(groups=groups, total=len(groups))


@router.get("/{group_id}", response_model=GroupDetail)
async def get_group(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    detail = await service.get_group_by_id(group_id)
    if detail.participant(current_user.user_id) is None:
        raise PermissionDeniedError()
    return detail


@router.patch("/{group_id}", response_model=GroupDetail)
async def update_group_info(
    group_id: uuid.UUID,
    body: GroupInfoUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.update_group_info(group_id, body, current_user.user_id)


@router.patch("/{group_id}/settings", response_model=GroupDetail)
async def update_group_settings(
    group_id: uuid.UUID,
    body: GroupSettingsUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.update_group_settings(group_id, body, current_user.user_id)


@router.post("/{group_id}/archive", response_model=GroupDetail)
async def archive_group(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.archive_group(group_id, current_user.user_id, archived=True)


@router.post("/{group_id}/unarchive", response_model=GroupDetail)
async def unarchive_group(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.archive_group(group_id, current_user.user_id, archived=False)


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    await service.delete_group(group_id, current_user.user_id)


@router.post("/{group_id}/members", response_model=list[Participant], status_code=201)
async def add_members(
    group_id: uuid.UUID,
    body: MembersAdd,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.add_members(group_id, body.user_ids, current_user.user_id)


@router.delete("/{group_id}/members/{user_id}", status_code=204)
async def remove_member(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    await service.remove_member(group_id, user_id, current_user.user_id)


@router.post("/{group_id}/members/{user_id}/promote", response_model=Participant)
async def promote_member(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.promote_to_admin(group_id, user_id, current_user.user_id)


@router.post("/{group_id}/members/{user_id}/demote", response_model=Participant)
async def demote_member(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.demote_from_admin(group_id, user_id, current_user.user_id)


@router.put("/{group_id}/members/{user_id}/title", response_model=Participant)
async def set_custom_title(
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    body: CustomTitleUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.set_custom_title(group_id, user_id, body.custom_title, current_user.user_id)


@router.post("/{group_id}/leave", status_code=204)
async def leave_group(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    await service.leave_group(group_id, current_user.user_id)


@router.get("/{group_id}/actions", response_model=list[AuditEntry])
async def list_group_actions(
    group_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.get_group_actions(group_id, current_user.user_id, limit)


@router.get("/{group_id}/analytics", response_model=GroupAnalytics)
async def get_group_analytics(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.get_group_analytics(group_id, current_user.user_id)
