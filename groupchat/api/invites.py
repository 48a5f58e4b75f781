import uuid

from fastapi import APIRouter, Depends

from groupchat.api.deps import get_group_service
from groupchat.core.security import get_current_user
from groupchat.schemas.auth import CurrentUser
from groupchat.schemas.groups import GroupDetail
from groupchat.schemas.invites import InviteLinkCreate, InviteLinkResponse, JoinByCodeRequest
from groupchat.services.group_service import GroupService

router = APIRouter(prefix="/api/v1", tags=["invites"])


@router.post("/groups/{group_id}/invites", response_model=InviteLinkResponse, status_code=201)
async def create_invite_link(
    group_id: uuid.UUID,
    body: InviteLinkCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    link = await service.create_invite_link(
        group_id, current_user.user_id, expires_at=body.expires_at, max_uses=body.max_uses
    )
    return InviteLinkResponse.from_link(link)


@router.get("/groups/{group_id}/invites", response_model=list[InviteLinkResponse])
async def list_invite_links(
    group_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    links = await service.list_invite_links(group_id, current_user.user_id)
    return [InviteLinkResponse.from_link(link) for link in links]


@router.post("/invites/join", response_model=GroupDetail)
async def join_via_invite(
    body: JoinByCodeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.join_via_invite(body.invite_code, current_user.user_id)


@router.delete("/invites/{invite_id}", response_model=InviteLinkResponse)
async def revoke_invite_link(
    invite_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    link = await service.revoke_invite_link(invite_id, current_user.user_id)
    return InviteLinkResponse.from_link(link)
