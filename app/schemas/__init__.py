from .room import (
    RoomCreate,
    RoomResponse,
    RoomListResponse,
    ParticipantResponse,
    JoinRoomResponse,
    InvitationResponse,
)

__all__ = [
    "RoomCreate",
    "RoomResponse",
    "RoomListResponse",
    "ParticipantResponse",
    "JoinRoomResponse",
    "InvitationResponse",
]
