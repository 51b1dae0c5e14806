import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.models.room import Participant, Room

ROOM_ID_PREFIX = "RM"
ROOM_ID_SUFFIX_WIDTH = 4

PARTICIPANT_ID_PREFIX = "PRT"

EXTERNAL_ROOM_PREFIX = "room"


_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("room sequence cannot be negative")
    encoded = ""
    while True:
        value, digit = divmod(value, 36)
        encoded = _BASE36[digit] + encoded
        if value == 0:
            return encoded


def _next_room_sequence(db: Session, date_prefix: str) -> int:
    """One past the highest suffix already used for ``date_prefix``."""
    last_id: Optional[str] = (
        db.query(Room.room_id)
        .filter(Room.room_id.like(f"{date_prefix}-%"))
        .order_by(Room.room_id.desc())
        .limit(1)
        .scalar()
    )
    if last_id is None:
        return 1
    _, _, suffix = last_id.rpartition("-")
    try:
        return int(suffix, 36) + 1
    except ValueError:
        return 1


def generate_room_id(db: Session, created_at: Optional[datetime] = None) -> str:
    """
    Construct a unique room identifier with the format RMYYYYMMDD-XXXX
    where the suffix is a zero-padded base36 sequence scoped to the given day.
    """
    timestamp = (created_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    date_prefix = f"{ROOM_ID_PREFIX}{timestamp:%Y%m%d}"
    sequence = _next_room_sequence(db, date_prefix)
    suffix = _to_base36(sequence).rjust(ROOM_ID_SUFFIX_WIDTH, "0")
    return f"{date_prefix}-{suffix}"


def generate_participant_id(db: Session) -> str:
    """Return a random participant identifier (PRT-<32 hex>), re-drawn on collision."""
    while True:
        candidate = f"{PARTICIPANT_ID_PREFIX}-{uuid.uuid4().hex.upper()}"
        exists = (
            db.query(Participant.participant_id)
            .filter(Participant.participant_id == candidate)
            .first()
        )
        if exists is None:
            return candidate


def generate_external_room_name() -> str:
    """Name used for the room inside the media infrastructure."""
    return f"{EXTERNAL_ROOM_PREFIX}-{uuid.uuid4()}"
