from typing import List
import logging

from fastapi import APIRouter, Depends

from app.auth.auth import CurrentUser, get_current_user
from app.routers.rooms import join_response
from app.schemas.room import InvitationResponse, JoinRoomResponse
from app.services.errors import InvitationNotFound
from app.services.session_coordinator import SessionCoordinator, get_session_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def _require_email(current_user: CurrentUser) -> str:
    if not current_user.email:
        raise InvitationNotFound("No email address associated with this account")
    return current_user.email


@router.get("/", response_model=List[InvitationResponse])
async def list_my_invitations(
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    if not current_user.email:
        return []
    return [
        InvitationResponse.from_participant(item)
        for item in coordinator.list_my_invitations(current_user.email)
    ]


@router.post("/{room_id}/accept", response_model=JoinRoomResponse)
async def accept_invitation(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room, participant, token = await coordinator.accept_invitation(
        room_id,
        _require_email(current_user),
        current_user.user_id,
        display_name=current_user.display_name,
    )
    return join_response(room, participant, token)


@router.post("/{room_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    invitation = await coordinator.decline_invitation(
        room_id, _require_email(current_user), current_user.user_id
    )
    return InvitationResponse.from_participant(invitation)
