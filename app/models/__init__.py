# Import models to make them accessible via app.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .room import (
    Participant,
    ParticipantRole,
    ParticipantStatus,
    Room,
    RoomStatus,
    RoomType,
)

__all__ = [
    "Room",
    "RoomType",
    "RoomStatus",
    "Participant",
    "ParticipantRole",
    "ParticipantStatus",
]
