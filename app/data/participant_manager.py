import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..models.room import Participant, ParticipantRole, ParticipantStatus
from ..utils.clock import seconds_between
from ..utils.identifiers import generate_participant_id

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    cleaned = email.strip().lower()
    return cleaned or None


class ParticipantManager:
    """Persistence helpers for room participants and email invitations."""

    def __init__(self, db: Session):
        self.db = db

    def create_participant(self, room_id: str, **fields: Any) -> Participant:
        if "invited_email" in fields:
            fields["invited_email"] = normalize_email(fields["invited_email"])
        participant = Participant(
            participant_id=generate_participant_id(self.db),
            room_id=room_id,
            **fields,
        )
        self.db.add(participant)
        self.db.flush()
        return participant

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        return (
            self.db.query(Participant)
            .filter(Participant.participant_id == participant_id)
            .first()
        )

    def get_room_participant(
        self, room_id: str, participant_id: str
    ) -> Optional[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.participant_id == participant_id,
            )
            .first()
        )

    def find_by_room_and_user(
        self, room_id: str, user_id: str
    ) -> Optional[Participant]:
        return (
            self.db.query(Participant)
            .filter(Participant.room_id == room_id, Participant.user_id == user_id)
            .order_by(Participant.created_at.desc(), Participant.participant_id.desc())
            .first()
        )

    def find_by_room_and_email(
        self, room_id: str, email: str
    ) -> Optional[Participant]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.invited_email == normalized,
            )
            .order_by(Participant.created_at.desc(), Participant.participant_id.desc())
            .first()
        )

    def list_by_room(self, room_id: str) -> List[Participant]:
        return (
            self.db.query(Participant)
            .filter(Participant.room_id == room_id)
            .order_by(
                Participant.joined_at.is_(None),
                Participant.joined_at.asc(),
                Participant.created_at.asc(),
                Participant.participant_id.asc(),
            )
            .all()
        )

    def list_active(self, room_id: str) -> List[Participant]:
        """Joined participants, earliest arrival first (host succession order)."""
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.status == ParticipantStatus.JOINED.value,
                Participant.left_at.is_(None),
            )
            .order_by(
                Participant.joined_at.asc(),
                Participant.created_at.asc(),
                Participant.participant_id.asc(),
            )
            .all()
        )

    def count_active(self, room_id: str) -> int:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.status == ParticipantStatus.JOINED.value,
            )
            .count()
        )

    def list_waiting(self, room_id: str) -> List[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.status == ParticipantStatus.WAITING.value,
            )
            .order_by(
                Participant.updated_at.asc(),
                Participant.created_at.asc(),
                Participant.participant_id.asc(),
            )
            .all()
        )

    def list_room_invitations(self, room_id: str) -> List[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.invited_email.isnot(None),
            )
            .order_by(Participant.invited_at.desc(), Participant.participant_id.desc())
            .all()
        )

    def list_pending_invitations_for_email(self, email: str) -> List[Participant]:
        normalized = normalize_email(email)
        if not normalized:
            return []
        return (
            self.db.query(Participant)
            .filter(
                Participant.invited_email == normalized,
                Participant.status == ParticipantStatus.INVITED.value,
            )
            .order_by(Participant.invited_at.desc(), Participant.participant_id.desc())
            .all()
        )

    def find_joined_host(self, room_id: str) -> Optional[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.role == ParticipantRole.HOST.value,
                Participant.status == ParticipantStatus.JOINED.value,
            )
            .first()
        )

    def find_host_records(self, room_id: str) -> List[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.room_id == room_id,
                Participant.role == ParticipantRole.HOST.value,
            )
            .all()
        )

    def mark_joined(self, participant: Participant, now: datetime) -> Participant:
        participant.status = ParticipantStatus.JOINED.value
        participant.joined_at = now
        participant.left_at = None
        participant.duration_seconds = None
        self.db.flush()
        return participant

    def mark_waiting(self, participant: Participant) -> Participant:
        participant.status = ParticipantStatus.WAITING.value
        participant.left_at = None
        self.db.flush()
        return participant

    def mark_left(self, participant: Participant, now: datetime) -> Participant:
        was_joined = participant.status == ParticipantStatus.JOINED.value
        participant.status = ParticipantStatus.LEFT.value
        participant.left_at = now
        if was_joined:
            participant.duration_seconds = seconds_between(participant.joined_at, now)
        participant.is_hand_raised = False
        self.db.flush()
        return participant

    def mark_removed(
        self,
        participant: Participant,
        status: ParticipantStatus,
        removed_by: str,
        reason: Optional[str],
        now: datetime,
    ) -> Participant:
        if participant.status == ParticipantStatus.JOINED.value:
            participant.left_at = now
            participant.duration_seconds = seconds_between(participant.joined_at, now)
        participant.status = status.value
        participant.is_removed = True
        participant.removed_by = removed_by
        participant.removal_reason = reason
        self.db.flush()
        return participant

    def reset_invitation(
        self, participant: Participant, invited_by: str, now: datetime
    ) -> Participant:
        participant.status = ParticipantStatus.INVITED.value
        participant.invited_by = invited_by
        participant.invited_at = now
        participant.left_at = None
        self.db.flush()
        return participant

    def delete_participant(self, participant: Participant) -> None:
        self.db.delete(participant)
        self.db.flush()
