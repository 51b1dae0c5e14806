"""Room admission rules.

``evaluate_access`` is a pure function: it reads the room, the caller and the
caller's existing participant record (if any) and decides whether the caller
may enter, must wait for the host, or is refused with a typed error.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from app.models.room import Participant, ParticipantStatus, Room, RoomType
from app.services.errors import (
    AccessDenied,
    AlreadyInRoom,
    NotInvited,
    RoomEnded,
    RoomServiceError,
    TooEarly,
)
from app.utils.clock import as_utc

DEFAULT_EARLY_JOIN_MINUTES = 15

_REFUSED_STATUSES = {
    ParticipantStatus.DECLINED.value,
    ParticipantStatus.REMOVED.value,
    ParticipantStatus.DENIED.value,
}


class AccessOutcome(str, Enum):
    ALLOW = "allow"
    REQUIRE_WAITING = "require_waiting"
    DENY = "deny"


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    error: Optional[RoomServiceError] = None

    @property
    def allowed(self) -> bool:
        return self.outcome != AccessOutcome.DENY

    @property
    def requires_waiting(self) -> bool:
        return self.outcome == AccessOutcome.REQUIRE_WAITING

    def raise_for_denial(self) -> None:
        if self.error is not None:
            raise self.error


def _deny(error: RoomServiceError) -> AccessDecision:
    return AccessDecision(AccessOutcome.DENY, error)


def _admit(room: Room) -> AccessDecision:
    if room.waiting_room_enabled:
        return AccessDecision(AccessOutcome.REQUIRE_WAITING)
    return AccessDecision(AccessOutcome.ALLOW)


def _check_invitation(participant: Optional[Participant]) -> Optional[AccessDecision]:
    if participant is None:
        return _deny(NotInvited())
    if participant.status == ParticipantStatus.JOINED.value:
        return _deny(AlreadyInRoom())
    if participant.status in _REFUSED_STATUSES or participant.is_removed:
        return _deny(AccessDenied())
    # A waiting record was invited already; repeating the join keeps it queued.
    if participant.status not in (
        ParticipantStatus.INVITED.value,
        ParticipantStatus.WAITING.value,
    ):
        return _deny(NotInvited())
    return None


def evaluate_access(
    room: Room,
    user_id: str,
    participant: Optional[Participant],
    now: datetime,
    *,
    early_join_minutes: int = DEFAULT_EARLY_JOIN_MINUTES,
) -> AccessDecision:
    """Decide whether ``user_id`` may enter ``room`` at ``now``."""
    if user_id == room.host_id:
        return AccessDecision(AccessOutcome.ALLOW)

    if room.room_type == RoomType.PUBLIC.value:
        return _admit(room)

    refusal = _check_invitation(participant)
    if refusal is not None:
        return refusal

    if room.room_type == RoomType.SCHEDULED.value:
        current = as_utc(now)
        start = as_utc(room.scheduled_start_time)
        end = as_utc(room.scheduled_end_time)
        if start is not None and current < start - timedelta(minutes=early_join_minutes):
            return _deny(TooEarly())
        if end is not None and current > end:
            return _deny(RoomEnded("Scheduled room has already finished"))

    return _admit(room)
