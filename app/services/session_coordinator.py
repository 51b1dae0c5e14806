"""Room and participant state transitions.

Every externally triggered change (HTTP actions and media webhooks alike)
goes through :class:`SessionCoordinator`. Each public operation is a single
database unit of work: it commits on success and rolls back on any error.
Media infrastructure calls are bounded by the configured request timeout.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.loader import get_media_settings, get_room_settings
from app.data.participant_manager import ParticipantManager, normalize_email
from app.data.room_manager import RoomFilters, RoomManager
from app.database import get_db
from app.models.room import (
    MAX_PARTICIPANTS,
    MIN_PARTICIPANTS,
    Participant,
    ParticipantRole,
    ParticipantStatus,
    Room,
    RoomStatus,
    RoomType,
)
from app.services.access_policy import evaluate_access
from app.services.errors import (
    AlreadyInRoom,
    AlreadyInvited,
    CannotBlockHost,
    CannotRemoveSelf,
    CannotTransferToSelf,
    InvalidParticipantStatus,
    InvalidRoomConfiguration,
    InvitationNotFound,
    MediaInfrastructureError,
    NotHost,
    ParticipantBlocked,
    ParticipantNotFound,
    PersistenceError,
    RoomAlreadyExists,
    RoomEnded,
    RoomFull,
    RoomNotFound,
)
from app.services.media import MediaClient, MediaClientError, TokenGrants, get_media_client
from app.utils.clock import as_utc, utc_now
from app.utils.identifiers import generate_external_room_name


_REUSABLE_STATUSES = {
    ParticipantStatus.LEFT.value,
    ParticipantStatus.INVITED.value,
    ParticipantStatus.WAITING.value,
}
_PRESENT_STATUSES = {
    ParticipantStatus.JOINED.value,
    ParticipantStatus.WAITING.value,
}


class SessionCoordinator:
    """Applies room lifecycle and participant admission transitions."""

    def __init__(
        self,
        db: Session,
        media: MediaClient,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        room_settings: Optional[Dict[str, Any]] = None,
        media_settings: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.media = media
        self.rooms = RoomManager(db)
        self.participants = ParticipantManager(db)
        self.clock = clock or utc_now
        self.room_settings = room_settings or get_room_settings()
        self.media_settings = media_settings or get_media_settings()
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.error("%s: database error, rolled back: %s", operation, exc)
            raise PersistenceError() from exc
        except Exception:
            self.db.rollback()
            raise

    def _now(self) -> datetime:
        return as_utc(self.clock())

    async def _media_call(self, operation: str, call: Awaitable[Any]) -> Any:
        timeout = self.media_settings.get("request_timeout_seconds") or 10
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise MediaInfrastructureError(
                f"Media {operation} timed out after {timeout}s"
            ) from exc
        except MediaClientError as exc:
            raise MediaInfrastructureError(str(exc)) from exc

    async def _best_effort(self, operation: str, call: Awaitable[Any]) -> bool:
        try:
            await self._media_call(operation, call)
            return True
        except MediaInfrastructureError as exc:
            self.logger.warning("Ignoring media %s failure: %s", operation, exc)
            return False

    def _mint_token(
        self, room: Room, participant: Participant, display_name: Optional[str] = None
    ) -> str:
        ttl_hours = self.room_settings.get("token_ttl_hours") or 24
        try:
            return self.media.generate_token(
                identity=participant.user_id,
                room_name=room.external_room_name,
                display_name=display_name or participant.user_id,
                grants=TokenGrants.for_participant(participant.is_host),
                valid_for=timedelta(hours=ttl_hours),
            )
        except MediaClientError as exc:
            raise MediaInfrastructureError(f"Token generation failed: {exc}") from exc

    def _load_room(self, room_id: str, for_update: bool = False) -> Room:
        room = self.rooms.get_room(room_id, for_update=for_update)
        if room is None:
            raise RoomNotFound()
        return room

    def _load_target(self, room_id: str, participant_id: str) -> Participant:
        participant = self.participants.get_room_participant(room_id, participant_id)
        if participant is None:
            raise ParticipantNotFound()
        return participant

    @staticmethod
    def _require_host(room: Room, user_id: str) -> None:
        if room.host_id != user_id:
            raise NotHost()

    @staticmethod
    def _require_open(room: Room) -> None:
        if room.is_ended:
            raise RoomEnded()

    def _admit(self, room: Room, participant: Participant, now: datetime) -> None:
        """Move a record to joined, claiming a seat atomically."""
        if not self.rooms.increment_participants(room.room_id):
            raise RoomFull()
        if participant.user_id == room.host_id:
            participant.grant_host_capabilities()
        self.participants.mark_joined(participant, now)
        if participant.is_host and room.status == RoomStatus.SCHEDULED.value:
            self.rooms.mark_active(room, now)
            self.logger.info("Room %s started by host %s", room.room_id, room.host_id)

    def _end(self, room: Room, now: datetime) -> None:
        for participant in self.participants.list_active(room.room_id):
            self.participants.mark_left(participant, now)
        self.rooms.mark_ended(room, now)

    def _promote_successor(
        self, room: Room, previous_host: Participant, successor: Participant
    ) -> None:
        # The partial unique index on joined hosts requires demote-then-promote.
        previous_host.revoke_host_capabilities()
        self.db.flush()
        successor.grant_host_capabilities()
        self.db.flush()
        self.rooms.update_host(room, successor.user_id)
        self.logger.info(
            "Room %s: host %s left, promoted %s",
            room.room_id,
            previous_host.user_id,
            successor.user_id,
        )

    def _depart(self, room: Room, participant: Participant, now: datetime) -> bool:
        """Mark a present participant as left and settle the room afterwards."""
        if participant.status not in _PRESENT_STATUSES:
            return False
        was_joined = participant.is_joined
        was_host = participant.is_host
        self.participants.mark_left(participant, now)
        if was_joined:
            self.rooms.decrement_participants(room.room_id)
            self._settle_after_departure(room, participant, now, was_host)
        return True

    def _settle_after_departure(
        self, room: Room, departed: Participant, now: datetime, host_departed: bool
    ) -> None:
        if not room.is_active:
            return
        remaining = self.participants.list_active(room.room_id)
        if not remaining:
            self._end(room, now)
            self.logger.info("Room %s ended automatically: no participants left", room.room_id)
        elif host_departed:
            self._promote_successor(room, departed, remaining[0])

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def _validate_room_request(
        self,
        name: str,
        room_type: str,
        max_participants: int,
        scheduled_start_time: Optional[datetime],
        scheduled_end_time: Optional[datetime],
    ) -> None:
        if not (name or "").strip():
            raise InvalidRoomConfiguration("Room name is required")
        if room_type not in {item.value for item in RoomType}:
            raise InvalidRoomConfiguration(f"Unknown room type: {room_type}")
        if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
            raise InvalidRoomConfiguration(
                f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}"
            )
        if room_type == RoomType.SCHEDULED.value and (
            scheduled_start_time is None or scheduled_end_time is None
        ):
            raise InvalidRoomConfiguration(
                "Scheduled rooms require scheduled_start_time and scheduled_end_time"
            )
        if scheduled_start_time is not None and scheduled_end_time is not None:
            if as_utc(scheduled_end_time) <= as_utc(scheduled_start_time):
                raise InvalidRoomConfiguration(
                    "scheduled_end_time must be after scheduled_start_time"
                )

    async def create_room(
        self,
        name: str,
        host_id: str,
        room_type: str = RoomType.PUBLIC.value,
        max_participants: Optional[int] = None,
        *,
        description: Optional[str] = None,
        scheduled_start_time: Optional[datetime] = None,
        scheduled_end_time: Optional[datetime] = None,
        tags: Optional[List[str]] = None,
        waiting_room_enabled: Optional[bool] = None,
        settings: Optional[Dict[str, Any]] = None,
        host_display_name: Optional[str] = None,
    ) -> Tuple[Room, str]:
        room_type = getattr(room_type, "value", room_type)
        if max_participants is None:
            max_participants = self.room_settings["default_max_participants"]
        self._validate_room_request(
            name, room_type, max_participants, scheduled_start_time, scheduled_end_time
        )
        if waiting_room_enabled is None:
            waiting_room_enabled = self.room_settings["waiting_room_default"]

        now = self._now()
        external_name = generate_external_room_name()
        recording = self.media_settings.get("auto_recording") or {}
        metadata = json.dumps(
            {"name": name.strip(), "room_type": room_type, "host_id": host_id}
        )
        external = await self._media_call(
            "create_room",
            self.media.create_room(
                name=external_name,
                max_participants=max_participants,
                empty_timeout=self.room_settings["empty_timeout_seconds"],
                departure_timeout=self.room_settings["departure_timeout_seconds"],
                metadata=metadata,
                egress=recording if recording.get("enabled") else None,
            ),
        )

        try:
            with self._unit_of_work("create_room"):
                try:
                    room = self.rooms.create_room(
                        created_at=now,
                        name=name.strip(),
                        description=description,
                        host_id=host_id,
                        room_type=room_type,
                        status=RoomStatus.SCHEDULED.value,
                        max_participants=max_participants,
                        current_participants=0,
                        waiting_room_enabled=bool(waiting_room_enabled),
                        external_room_name=external.name,
                        external_room_sid=external.sid,
                        scheduled_start_time=scheduled_start_time,
                        scheduled_end_time=scheduled_end_time,
                        tags=[str(tag).strip() for tag in tags or [] if str(tag).strip()],
                        settings=dict(settings or {}),
                    )
                except IntegrityError as exc:
                    raise RoomAlreadyExists(
                        f"Room {external.name} is already registered"
                    ) from exc
                host = self.participants.create_participant(
                    room.room_id,
                    user_id=host_id,
                    role=ParticipantRole.HOST.value,
                    status=ParticipantStatus.INVITED.value,
                    invited_by=host_id,
                    invited_at=now,
                )
                host.grant_host_capabilities()
                self.db.flush()
                token = self._mint_token(room, host, host_display_name)
        except RoomAlreadyExists:
            # The external room belongs to the existing record.
            raise
        except Exception:
            self.logger.warning(
                "create_room failed after external room %s was created; deleting it",
                external.name,
            )
            await self._best_effort("delete_room", self.media.delete_room(external.name))
            raise

        self.logger.info(
            "Room %s created by %s (type=%s, max=%s)",
            room.room_id,
            host_id,
            room_type,
            max_participants,
        )
        return room, token

    def get_room(self, room_id: str) -> Room:
        return self._load_room(room_id)

    def get_room_by_external_name(self, external_room_name: str) -> Room:
        room = self.rooms.get_room_by_external_name(external_room_name)
        if room is None:
            raise RoomNotFound()
        return room

    def list_rooms(self, filters: Optional[RoomFilters] = None) -> Tuple[List[Room], int]:
        return self.rooms.list_rooms(filters or RoomFilters())

    async def start_room(self, room_id: str, user_id: str) -> Room:
        with self._unit_of_work("start_room"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, user_id)
            self._require_open(room)
            if not room.is_active:
                self.rooms.mark_active(room, self._now())
                self.logger.info("Room %s started", room_id)
        return room

    async def join_room(
        self,
        room_id: str,
        user_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Tuple[Room, Participant, Optional[str]]:
        """Admit ``user_id`` into the room or its waiting room.

        The token is only minted when the resulting status is joined.
        """
        with self._unit_of_work("join_room"):
            room = self._load_room(room_id, for_update=True)
            self._require_open(room)
            now = self._now()

            participant = self.participants.find_by_room_and_user(room_id, user_id)
            if participant is None and email:
                invitation = self.participants.find_by_room_and_email(room_id, email)
                if (
                    invitation is not None
                    and invitation.user_id is None
                    and invitation.status == ParticipantStatus.INVITED.value
                ):
                    invitation.user_id = user_id
                    self.db.flush()
                    participant = invitation

            decision = evaluate_access(
                room,
                user_id,
                participant,
                now,
                early_join_minutes=self.room_settings["early_join_minutes"],
            )
            decision.raise_for_denial()

            if participant is not None:
                if participant.is_blocked:
                    raise ParticipantBlocked()
                if participant.is_joined:
                    raise AlreadyInRoom()
                if participant.status not in _REUSABLE_STATUSES:
                    raise InvalidParticipantStatus(
                        f"Cannot join from status {participant.status}"
                    )

            if room.is_full:
                raise RoomFull()

            if participant is None:
                participant = self.participants.create_participant(
                    room_id,
                    user_id=user_id,
                    role=(
                        ParticipantRole.HOST.value
                        if user_id == room.host_id
                        else ParticipantRole.PARTICIPANT.value
                    ),
                    status=ParticipantStatus.WAITING.value,
                )

            token = None
            if user_id == room.host_id or not decision.requires_waiting:
                self._admit(room, participant, now)
                token = self._mint_token(room, participant, display_name)
                self.logger.info("User %s joined room %s", user_id, room_id)
            else:
                self.participants.mark_waiting(participant)
                self.logger.info("User %s is waiting to enter room %s", user_id, room_id)
        return room, participant, token

    async def leave_room(self, room_id: str, user_id: str) -> Participant:
        with self._unit_of_work("leave_room"):
            room = self._load_room(room_id, for_update=True)
            participant = self.participants.find_by_room_and_user(room_id, user_id)
            if participant is None:
                raise ParticipantNotFound()
            if self._depart(room, participant, self._now()):
                self.logger.info("User %s left room %s", user_id, room_id)
        return participant

    async def end_room(self, room_id: str, user_id: str) -> Room:
        with self._unit_of_work("end_room"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, user_id)
            if room.is_ended:
                return room
            for participant in self.participants.list_active(room_id):
                await self._best_effort(
                    "remove_participant",
                    self.media.remove_participant(
                        room.external_room_name, participant.user_id
                    ),
                )
            await self._best_effort(
                "delete_room", self.media.delete_room(room.external_room_name)
            )
            self._end(room, self._now())
            self.logger.info("Room %s ended by %s", room_id, user_id)
        return room

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def list_participants(self, room_id: str) -> List[Participant]:
        self._load_room(room_id)
        return self.participants.list_by_room(room_id)

    def list_waiting_participants(self, room_id: str, host_id: str) -> List[Participant]:
        room = self._load_room(room_id)
        self._require_open(room)
        self._require_host(room, host_id)
        return self.participants.list_waiting(room_id)

    def get_my_status(
        self, room_id: str, user_id: str, display_name: Optional[str] = None
    ) -> Tuple[Room, Participant, Optional[str]]:
        room = self._load_room(room_id)
        participant = self.participants.find_by_room_and_user(room_id, user_id)
        if participant is None:
            raise ParticipantNotFound()
        token = None
        if participant.is_joined and not room.is_ended:
            token = self._mint_token(room, participant, display_name)
        return room, participant, token

    async def admit_participant(
        self, room_id: str, host_id: str, participant_id: str
    ) -> Tuple[Participant, str]:
        with self._unit_of_work("admit_participant"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, host_id)
            self._require_open(room)
            target = self._load_target(room_id, participant_id)
            if target.status != ParticipantStatus.WAITING.value:
                raise InvalidParticipantStatus("Participant is not in the waiting room")
            if room.is_full:
                raise RoomFull()
            self._admit(room, target, self._now())
            token = self._mint_token(room, target)
            self.logger.info(
                "Host %s admitted %s into room %s", host_id, target.user_id, room_id
            )
        return target, token

    async def deny_participant(
        self,
        room_id: str,
        host_id: str,
        participant_id: str,
        reason: Optional[str] = None,
    ) -> None:
        with self._unit_of_work("deny_participant"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, host_id)
            self._require_open(room)
            target = self._load_target(room_id, participant_id)
            if target.status != ParticipantStatus.WAITING.value:
                raise InvalidParticipantStatus("Participant is not in the waiting room")
            user_id = target.user_id
            self.participants.delete_participant(target)
            self.logger.info(
                "Host %s denied %s in room %s (%s)",
                host_id,
                user_id,
                room_id,
                reason or "no reason given",
            )

    async def block_participant(
        self,
        room_id: str,
        host_id: str,
        participant_id: str,
        reason: Optional[str] = None,
    ) -> Participant:
        with self._unit_of_work("block_participant"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, host_id)
            self._require_open(room)
            target = self._load_target(room_id, participant_id)
            if target.user_id == host_id:
                raise CannotRemoveSelf()
            if target.is_host or target.user_id == room.host_id:
                raise CannotBlockHost()
            await self._remove(
                room,
                target,
                host_id,
                ParticipantStatus.DENIED,
                f"Blocked: {reason}" if reason else "Blocked by host",
            )
            self.logger.info("Host %s blocked %s in room %s", host_id, target.user_id, room_id)
        return target

    async def remove_participant(
        self,
        room_id: str,
        host_id: str,
        participant_id: str,
        reason: Optional[str] = None,
    ) -> Participant:
        with self._unit_of_work("remove_participant"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, host_id)
            self._require_open(room)
            target = self._load_target(room_id, participant_id)
            if target.user_id == host_id:
                raise CannotRemoveSelf()
            if target.is_host:
                raise CannotBlockHost()
            await self._remove(
                room, target, host_id, ParticipantStatus.REMOVED, reason or "Removed by host"
            )
            self.logger.info("Host %s removed %s from room %s", host_id, target.user_id, room_id)
        return target

    async def _remove(
        self,
        room: Room,
        target: Participant,
        removed_by: str,
        status: ParticipantStatus,
        reason: str,
    ) -> None:
        now = self._now()
        was_joined = target.is_joined
        self.participants.mark_removed(target, status, removed_by, reason, now)
        if not was_joined:
            return
        self.rooms.decrement_participants(room.room_id)
        if target.user_id:
            await self._best_effort(
                "remove_participant",
                self.media.remove_participant(room.external_room_name, target.user_id),
            )
        self._settle_after_departure(room, target, now, host_departed=False)

    async def transfer_host(
        self, room_id: str, current_host_id: str, new_host_id: str
    ) -> Room:
        with self._unit_of_work("transfer_host"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, current_host_id)
            if current_host_id == new_host_id:
                raise CannotTransferToSelf()
            self._require_open(room)
            target = self.participants.find_by_room_and_user(room_id, new_host_id)
            if target is None:
                raise ParticipantNotFound()
            if not target.is_joined:
                raise InvalidParticipantStatus("New host must be in the room")

            for record in self.participants.find_host_records(room_id):
                if record.participant_id != target.participant_id:
                    record.revoke_host_capabilities()
            self.db.flush()
            target.grant_host_capabilities()
            self.db.flush()
            self.rooms.update_host(room, new_host_id)
            self.logger.info(
                "Room %s: host transferred from %s to %s",
                room_id,
                current_host_id,
                new_host_id,
            )
        return room

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def invite_by_email(self, room_id: str, inviter_id: str, email: str) -> Participant:
        normalized = normalize_email(email)
        if not normalized:
            raise InvalidParticipantStatus("An email address is required")
        with self._unit_of_work("invite_by_email"):
            room = self._load_room(room_id, for_update=True)
            self._require_host(room, inviter_id)
            self._require_open(room)
            now = self._now()
            existing = self.participants.find_by_room_and_email(room_id, normalized)
            if existing is not None:
                if existing.status == ParticipantStatus.INVITED.value:
                    return existing
                if existing.status in (
                    ParticipantStatus.DECLINED.value,
                    ParticipantStatus.LEFT.value,
                ):
                    self.participants.reset_invitation(existing, inviter_id, now)
                    self.logger.info("Re-invited %s to room %s", normalized, room_id)
                    return existing
                raise AlreadyInvited()
            invitation = self.participants.create_participant(
                room_id,
                invited_email=normalized,
                invited_by=inviter_id,
                invited_at=now,
                role=ParticipantRole.PARTICIPANT.value,
                status=ParticipantStatus.INVITED.value,
            )
            self.logger.info("Invited %s to room %s", normalized, room_id)
        return invitation

    def list_my_invitations(self, email: str) -> List[Participant]:
        return self.participants.list_pending_invitations_for_email(email)

    def list_room_invitations(self, room_id: str, host_id: str) -> List[Participant]:
        room = self._load_room(room_id)
        self._require_host(room, host_id)
        return self.participants.list_room_invitations(room_id)

    def _load_invitation(self, room_id: str, email: str, user_id: str) -> Participant:
        invitation = self.participants.find_by_room_and_email(room_id, email or "")
        if invitation is None or invitation.status != ParticipantStatus.INVITED.value:
            raise InvitationNotFound()
        if invitation.user_id is not None and invitation.user_id != user_id:
            raise InvitationNotFound()
        return invitation

    async def accept_invitation(
        self,
        room_id: str,
        email: str,
        user_id: str,
        display_name: Optional[str] = None,
    ) -> Tuple[Room, Participant, Optional[str]]:
        with self._unit_of_work("accept_invitation"):
            room = self._load_room(room_id, for_update=True)
            invitation = self._load_invitation(room_id, email, user_id)
            self._require_open(room)
            now = self._now()

            evaluate_access(
                room,
                user_id,
                invitation,
                now,
                early_join_minutes=self.room_settings["early_join_minutes"],
            ).raise_for_denial()

            existing = self.participants.find_by_room_and_user(room_id, user_id)
            if existing is not None and existing.participant_id != invitation.participant_id:
                if existing.is_blocked:
                    raise ParticipantBlocked()
                if existing.is_joined:
                    raise AlreadyInRoom()
                self.participants.delete_participant(existing)

            invitation.user_id = user_id
            self.db.flush()

            token = None
            if room.is_active:
                if room.is_full:
                    raise RoomFull()
                self._admit(room, invitation, now)
                token = self._mint_token(room, invitation, display_name)
            self.logger.info(
                "User %s accepted invitation %s to room %s",
                user_id,
                invitation.participant_id,
                room_id,
            )
        return room, invitation, token

    async def decline_invitation(self, room_id: str, email: str, user_id: str) -> Participant:
        with self._unit_of_work("decline_invitation"):
            self._load_room(room_id, for_update=True)
            invitation = self._load_invitation(room_id, email, user_id)
            invitation.user_id = user_id
            invitation.status = ParticipantStatus.DECLINED.value
            self.db.flush()
            self.logger.info("User %s declined invitation to room %s", user_id, room_id)
        return invitation

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def update_participant_status(
        self, room_id: str, user_id: str, status: str
    ) -> Optional[Participant]:
        """Bring a participant to ``status`` unless it is already there."""
        status = getattr(status, "value", status)
        if status == ParticipantStatus.LEFT.value:
            return await self.leave_room(room_id, user_id)
        if status != ParticipantStatus.JOINED.value:
            raise InvalidParticipantStatus(f"Unsupported target status: {status}")

        with self._unit_of_work("update_participant_status"):
            room = self._load_room(room_id, for_update=True)
            self._require_open(room)
            participant = self.participants.find_by_room_and_user(room_id, user_id)
            if participant is not None:
                if participant.is_joined:
                    return participant
                if participant.is_blocked or participant.status in (
                    ParticipantStatus.DECLINED.value,
                    ParticipantStatus.REMOVED.value,
                ):
                    self.logger.warning(
                        "Ignoring join of %s to room %s: record is %s",
                        user_id,
                        room_id,
                        participant.status,
                    )
                    return participant
            else:
                participant = self.participants.create_participant(
                    room_id,
                    user_id=user_id,
                    role=(
                        ParticipantRole.HOST.value
                        if user_id == room.host_id
                        else ParticipantRole.PARTICIPANT.value
                    ),
                    status=ParticipantStatus.WAITING.value,
                )
            self._admit(room, participant, self._now())
        return participant


def get_session_coordinator(
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
) -> SessionCoordinator:
    return SessionCoordinator(db, media)
