from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 100


class RoomType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SCHEDULED = "scheduled"


class RoomStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class ParticipantRole(str, Enum):
    HOST = "host"
    PARTICIPANT = "participant"


class ParticipantStatus(str, Enum):
    INVITED = "invited"
    WAITING = "waiting"
    JOINED = "joined"
    LEFT = "left"
    DECLINED = "declined"
    DENIED = "denied"
    REMOVED = "removed"


TERMINAL_ROOM_STATUSES = {RoomStatus.ENDED.value, RoomStatus.CANCELLED.value}

_JOINED_HOST_PREDICATE = "role = 'host' AND status = 'joined'"


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint(
            f"max_participants >= {MIN_PARTICIPANTS} AND max_participants <= {MAX_PARTICIPANTS}",
            name="ck_rooms_max_participants",
        ),
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="ck_rooms_current_participants",
        ),
    )

    room_id = Column(String(20), primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    # Plain identifier; the host's participant row is resolved through ParticipantManager.
    host_id = Column(String(64), nullable=False, index=True)
    room_type = Column(String(20), nullable=False, default=RoomType.PUBLIC.value, index=True)
    status = Column(
        String(20), nullable=False, default=RoomStatus.SCHEDULED.value, index=True
    )
    max_participants = Column(Integer, nullable=False, default=10)
    current_participants = Column(Integer, nullable=False, default=0)
    waiting_room_enabled = Column(Boolean, nullable=False, default=True)
    external_room_name = Column(String(255), unique=True, nullable=False)
    external_room_sid = Column(String(255), nullable=True)
    scheduled_start_time = Column(DateTime(timezone=True), nullable=True, index=True)
    scheduled_end_time = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    settings = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    participants = relationship(
        "Participant",
        back_populates="room",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == RoomStatus.ACTIVE.value

    @property
    def is_ended(self) -> bool:
        return self.status in TERMINAL_ROOM_STATUSES

    @property
    def is_full(self) -> bool:
        return (self.current_participants or 0) >= self.max_participants

    def __repr__(self) -> str:
        return (
            f"Room(room_id={self.room_id!r}, status={self.status!r}, "
            f"current_participants={self.current_participants})"
        )


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        # At most one joined host per room, even under concurrent writers.
        Index(
            "uq_participants_joined_host",
            "room_id",
            unique=True,
            sqlite_where=text(_JOINED_HOST_PREDICATE),
            postgresql_where=text(_JOINED_HOST_PREDICATE),
        ),
        Index("ix_participants_room_user", "room_id", "user_id"),
        Index("ix_participants_room_email", "room_id", "invited_email"),
    )

    participant_id = Column(String(40), primary_key=True, index=True)
    room_id = Column(
        String(20),
        ForeignKey("rooms.room_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=True, index=True)
    role = Column(String(20), nullable=False, default=ParticipantRole.PARTICIPANT.value)
    status = Column(
        String(20), nullable=False, default=ParticipantStatus.INVITED.value, index=True
    )

    invited_email = Column(String(255), nullable=True, index=True)
    invited_by = Column(String(64), nullable=True)
    invited_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True, index=True)
    left_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    can_share_screen = Column(Boolean, nullable=False, default=True)
    can_record = Column(Boolean, nullable=False, default=False)
    can_mute_others = Column(Boolean, nullable=False, default=False)
    is_muted = Column(Boolean, nullable=False, default=False)
    is_hand_raised = Column(Boolean, nullable=False, default=False)

    is_removed = Column(Boolean, nullable=False, default=False)
    removed_by = Column(String(64), nullable=True)
    removal_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    room = relationship("Room", back_populates="participants")

    @property
    def is_host(self) -> bool:
        return self.role == ParticipantRole.HOST.value

    @property
    def is_joined(self) -> bool:
        return self.status == ParticipantStatus.JOINED.value

    @property
    def is_blocked(self) -> bool:
        return self.status == ParticipantStatus.DENIED.value or bool(self.is_removed)

    def grant_host_capabilities(self) -> None:
        self.role = ParticipantRole.HOST.value
        self.can_record = True
        self.can_mute_others = True

    def revoke_host_capabilities(self) -> None:
        self.role = ParticipantRole.PARTICIPANT.value
        self.can_record = False
        self.can_mute_others = False

    def __repr__(self) -> str:
        return (
            f"Participant(participant_id={self.participant_id!r}, "
            f"user_id={self.user_id!r}, role={self.role!r}, status={self.status!r})"
        )
