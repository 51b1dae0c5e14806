from typing import List, Literal, Optional
import logging

from fastapi import APIRouter, Depends, Query, Response, status

from app.auth.auth import CurrentUser, get_current_user
from app.config.loader import get_media_settings
from app.data.room_manager import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, RoomFilters
from app.models.room import ParticipantStatus, RoomStatus, RoomType
from app.schemas.room import (
    AdmitResponse,
    InvitationCreate,
    InvitationResponse,
    JoinRoomResponse,
    ModerationRequest,
    MyStatusResponse,
    ParticipantResponse,
    RoomCreate,
    RoomCreateResponse,
    RoomListResponse,
    RoomResponse,
    TransferHostRequest,
)
from app.services.session_coordinator import SessionCoordinator, get_session_coordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


def _media_url() -> str:
    return get_media_settings()["url"]


def join_response(room, participant, token: Optional[str]) -> JoinRoomResponse:
    return JoinRoomResponse(
        room=RoomResponse.model_validate(room),
        participant=ParticipantResponse.model_validate(participant),
        waiting=participant.status == ParticipantStatus.WAITING.value,
        access_token=token,
        media_url=_media_url() if token else None,
    )


@router.post("/", response_model=RoomCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room, token = await coordinator.create_room(
        payload.name,
        current_user.user_id,
        payload.room_type.value,
        payload.max_participants,
        description=payload.description,
        scheduled_start_time=payload.scheduled_start_time,
        scheduled_end_time=payload.scheduled_end_time,
        tags=payload.tags,
        waiting_room_enabled=payload.waiting_room_enabled,
        settings=payload.settings,
        host_display_name=current_user.display_name,
    )
    return RoomCreateResponse(
        room=RoomResponse.model_validate(room),
        access_token=token,
        media_url=_media_url(),
    )


@router.get("/", response_model=RoomListResponse)
async def list_rooms(
    room_type: Optional[RoomType] = Query(None, alias="type"),
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    host_id: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=255),
    tags: Optional[List[str]] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: Literal["created_at", "started_at", "name"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    filters = RoomFilters(
        room_type=room_type.value if room_type else None,
        status=room_status.value if room_status else None,
        host_id=host_id,
        search=search,
        tags=[tag.strip().lower() for tag in tags or [] if tag.strip()],
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    rooms, total = coordinator.list_rooms(filters)
    logger.debug(f"list_rooms for {current_user.user_id}: {total} match(es)")
    return RoomListResponse(
        rooms=[RoomResponse.model_validate(room) for room in rooms],
        total=total,
        page=page,
        page_size=filters.limit,
    )


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    return RoomResponse.model_validate(coordinator.get_room(room_id))


@router.post("/{room_id}/start", response_model=RoomResponse)
async def start_room(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room = await coordinator.start_room(room_id, current_user.user_id)
    return RoomResponse.model_validate(room)


@router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room, participant, token = await coordinator.join_room(
        room_id,
        current_user.user_id,
        email=current_user.email,
        display_name=current_user.display_name,
    )
    return join_response(room, participant, token)


@router.post("/{room_id}/leave", response_model=ParticipantResponse)
async def leave_room(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    participant = await coordinator.leave_room(room_id, current_user.user_id)
    return ParticipantResponse.model_validate(participant)


@router.post("/{room_id}/end", response_model=RoomResponse)
async def end_room(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room = await coordinator.end_room(room_id, current_user.user_id)
    return RoomResponse.model_validate(room)


@router.get("/{room_id}/me", response_model=MyStatusResponse)
async def get_my_status(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    """Polling endpoint for waiting participants; returns a token once admitted."""
    room, participant, token = coordinator.get_my_status(
        room_id, current_user.user_id, display_name=current_user.display_name
    )
    return MyStatusResponse(
        room_id=room.room_id,
        room_status=room.status,
        participant=ParticipantResponse.model_validate(participant),
        access_token=token,
        media_url=_media_url() if token else None,
    )


@router.get("/{room_id}/participants", response_model=List[ParticipantResponse])
async def list_participants(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    return [
        ParticipantResponse.model_validate(item)
        for item in coordinator.list_participants(room_id)
    ]


@router.get("/{room_id}/waiting", response_model=List[ParticipantResponse])
async def list_waiting_participants(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    return [
        ParticipantResponse.model_validate(item)
        for item in coordinator.list_waiting_participants(room_id, current_user.user_id)
    ]


@router.post("/{room_id}/participants/{participant_id}/admit", response_model=AdmitResponse)
async def admit_participant(
    room_id: str,
    participant_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    participant, token = await coordinator.admit_participant(
        room_id, current_user.user_id, participant_id
    )
    return AdmitResponse(
        participant=ParticipantResponse.model_validate(participant),
        access_token=token,
    )


@router.post(
    "/{room_id}/participants/{participant_id}/deny",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def deny_participant(
    room_id: str,
    participant_id: str,
    payload: Optional[ModerationRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    await coordinator.deny_participant(
        room_id,
        current_user.user_id,
        participant_id,
        payload.reason if payload else None,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{room_id}/participants/{participant_id}/block",
    response_model=ParticipantResponse,
)
async def block_participant(
    room_id: str,
    participant_id: str,
    payload: Optional[ModerationRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    participant = await coordinator.block_participant(
        room_id,
        current_user.user_id,
        participant_id,
        payload.reason if payload else None,
    )
    return ParticipantResponse.model_validate(participant)


@router.delete(
    "/{room_id}/participants/{participant_id}",
    response_model=ParticipantResponse,
)
async def remove_participant(
    room_id: str,
    participant_id: str,
    reason: Optional[str] = Query(None, max_length=500),
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    participant = await coordinator.remove_participant(
        room_id, current_user.user_id, participant_id, reason
    )
    return ParticipantResponse.model_validate(participant)


@router.post("/{room_id}/transfer-host", response_model=RoomResponse)
async def transfer_host(
    room_id: str,
    payload: TransferHostRequest,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    room = await coordinator.transfer_host(
        room_id, current_user.user_id, payload.new_host_id.strip()
    )
    return RoomResponse.model_validate(room)


@router.post(
    "/{room_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_by_email(
    room_id: str,
    payload: InvitationCreate,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    invitation = await coordinator.invite_by_email(
        room_id, current_user.user_id, payload.email
    )
    return InvitationResponse.from_participant(invitation)


@router.get("/{room_id}/invitations", response_model=List[InvitationResponse])
async def list_room_invitations(
    room_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
):
    return [
        InvitationResponse.from_participant(item)
        for item in coordinator.list_room_invitations(room_id, current_user.user_id)
    ]
