"""Shared helpers for room tests: auth headers and state invariants."""

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.auth.auth import create_access_token
from app.models.room import Participant, ParticipantRole, ParticipantStatus, Room


def auth_headers(user_id: str, email: str = None, name: str = None) -> dict:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


def assert_room_invariants(db: Session, room_id: str) -> None:
    """The cached counter matches joined records and at most one host is joined."""
    db.expire_all()
    room = db.get(Room, room_id)
    joined = (
        db.query(func.count(Participant.participant_id))
        .filter(
            Participant.room_id == room_id,
            Participant.status == ParticipantStatus.JOINED.value,
        )
        .scalar()
    )
    joined_hosts = (
        db.query(func.count(Participant.participant_id))
        .filter(
            Participant.room_id == room_id,
            Participant.status == ParticipantStatus.JOINED.value,
            Participant.role == ParticipantRole.HOST.value,
        )
        .scalar()
    )
    assert room.current_participants == joined
    assert 0 <= room.current_participants <= room.max_participants
    assert joined_hosts <= 1
    if room.status == "active":
        assert joined_hosts == 1 or room.current_participants == 0
