from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.room import ParticipantRole, ParticipantStatus, RoomStatus, RoomType

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    room_type: RoomType = Field(RoomType.PUBLIC)
    max_participants: Optional[int] = Field(None, json_schema_extra={"example": 10})
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    waiting_room_enabled: Optional[bool] = None
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value):
        if value is None:
            return []
        return [str(tag).strip().lower() for tag in value if str(tag).strip()]


class RoomResponse(BaseModel):
    room_id: str
    name: str
    description: Optional[str] = None
    host_id: str
    room_type: RoomType
    status: RoomStatus
    max_participants: int
    current_participants: int
    waiting_room_enabled: bool
    external_room_name: str
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RoomCreateResponse(BaseModel):
    room: RoomResponse
    access_token: str
    media_url: str


class RoomListResponse(BaseModel):
    rooms: List[RoomResponse]
    total: int
    page: int
    page_size: int


class ParticipantResponse(BaseModel):
    participant_id: str
    room_id: str
    user_id: Optional[str] = None
    invited_email: Optional[str] = None
    role: ParticipantRole
    status: ParticipantStatus
    can_share_screen: bool = True
    can_record: bool = False
    can_mute_others: bool = False
    is_muted: bool = False
    is_hand_raised: bool = False
    is_removed: bool = False
    removal_reason: Optional[str] = None
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    model_config = {"from_attributes": True}


class JoinRoomResponse(BaseModel):
    room: RoomResponse
    participant: ParticipantResponse
    waiting: bool
    access_token: Optional[str] = None
    media_url: Optional[str] = None


class AdmitResponse(BaseModel):
    participant: ParticipantResponse
    access_token: str


class ModerationRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class TransferHostRequest(BaseModel):
    new_host_id: str = Field(..., min_length=1, max_length=64)


class InvitationCreate(BaseModel):
    email: str = Field(..., max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not _EMAIL_PATTERN.match(cleaned):
            raise ValueError("Invalid email address")
        return cleaned


class InvitationResponse(BaseModel):
    participant_id: str
    room_id: str
    room_name: Optional[str] = None
    invited_email: Optional[str] = None
    invited_by: Optional[str] = None
    invited_at: Optional[datetime] = None
    status: ParticipantStatus

    model_config = {"from_attributes": True}

    @classmethod
    def from_participant(cls, participant: Any) -> "InvitationResponse":
        room = getattr(participant, "room", None)
        return cls(
            participant_id=participant.participant_id,
            room_id=participant.room_id,
            room_name=getattr(room, "name", None),
            invited_email=participant.invited_email,
            invited_by=participant.invited_by,
            invited_at=participant.invited_at,
            status=participant.status,
        )


class MyStatusResponse(BaseModel):
    room_id: str
    room_status: RoomStatus
    participant: ParticipantResponse
    access_token: Optional[str] = None
    media_url: Optional[str] = None
