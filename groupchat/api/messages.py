import uuid

from fastapi import APIRouter, Depends

from groupchat.api.deps import get_group_service
from groupchat.core.security import get_current_user
from groupchat.schemas.auth import CurrentUser
from groupchat.schemas.groups import GroupDetail
from groupchat.schemas.messages import AnnouncementCreate, GroupMessage
from groupchat.services.group_service import GroupService

router = APIRouter(prefix="/api/v1/groups/{group_id}", tags=["messages"])


@router.post("/announcements", response_model=GroupMessage, status_code=201)
async def create_announcement(
    group_id: uuid.UUID,
    body: AnnouncementCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.create_announcement(group_id, body.content, current_user.user_id)


@router.put("/pins/{message_id}", response_model=GroupDetail)
async def pin_message(
    group_id: uuid.UUID,
    message_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.pin_message(group_id, message_id, current_user.user_id)


@router.delete("/pins/{message_id}", response_model=GroupDetail)
async def unpin_message(
    group_id: uuid.UUID,
    message_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.unpin_message(group_id, message_id, current_user.user_id)
