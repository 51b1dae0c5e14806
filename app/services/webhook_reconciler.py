"""Reconcile media infrastructure webhooks with room state.

Webhook senders retry on non-2xx answers, so anything that is already
satisfied (unknown room, participant already gone, room already ended) is
acknowledged rather than reported as a failure. Persistence and other
internal errors still propagate so the delivery is retried.
"""

import logging
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from app.models.room import ParticipantStatus, Room
from app.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)
from app.services.session_coordinator import SessionCoordinator

logger = logging.getLogger("webhooks")

DEFAULT_EGRESS_IDENTITY_PREFIX = "EG_"

_IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9._@:+-]{1,64}$")


class WebhookEventType(str, Enum):
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    ROOM_STARTED = "room_started"
    ROOM_FINISHED = "room_finished"
    EGRESS_STARTED = "egress_started"
    EGRESS_UPDATED = "egress_updated"
    EGRESS_ENDED = "egress_ended"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class WebhookAction(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"
    SKIPPED = "skipped"


class WebhookRoom(BaseModel):
    name: str = ""
    sid: Optional[str] = None


class WebhookParticipant(BaseModel):
    identity: str = ""
    name: Optional[str] = None
    sid: Optional[str] = None


class MediaWebhookEvent(BaseModel):
    event: WebhookEventType = WebhookEventType.UNKNOWN
    room: Optional[WebhookRoom] = None
    participant: Optional[WebhookParticipant] = None
    id: Optional[str] = None
    created_at: Optional[int] = None

    @field_validator("event", mode="before")
    @classmethod
    def coerce_event(cls, value):
        if value is None:
            return WebhookEventType.UNKNOWN
        return WebhookEventType(str(value))

    @property
    def room_name(self) -> str:
        return (self.room.name if self.room else "").strip()

    @property
    def identity(self) -> str:
        return (self.participant.identity if self.participant else "").strip()


class WebhookOutcome(BaseModel):
    status: str = "ok"
    event: str
    action: WebhookAction
    detail: Optional[str] = None


_PARTICIPANT_EVENTS = {
    WebhookEventType.PARTICIPANT_JOINED,
    WebhookEventType.PARTICIPANT_LEFT,
}


def parse_identity(identity: Optional[str]) -> Optional[str]:
    """Return the user id carried by a media identity, or None if it is unusable."""
    candidate = (identity or "").strip()
    if not _IDENTITY_PATTERN.match(candidate):
        return None
    return candidate


class WebhookReconciler:
    def __init__(
        self,
        coordinator: SessionCoordinator,
        *,
        egress_identity_prefix: str = DEFAULT_EGRESS_IDENTITY_PREFIX,
    ):
        self.coordinator = coordinator
        self.egress_identity_prefix = egress_identity_prefix

    def _outcome(
        self, event: MediaWebhookEvent, action: WebhookAction, detail: Optional[str] = None
    ) -> WebhookOutcome:
        return WebhookOutcome(event=event.event.value, action=action, detail=detail)

    async def process(self, event: MediaWebhookEvent) -> WebhookOutcome:
        logger.info(
            "Webhook %s received (room=%s, identity=%s, id=%s)",
            event.event.value,
            event.room_name or "-",
            event.identity or "-",
            event.id or "-",
        )

        if event.event not in _PARTICIPANT_EVENTS and event.event not in (
            WebhookEventType.ROOM_STARTED,
            WebhookEventType.ROOM_FINISHED,
        ):
            return self._outcome(event, WebhookAction.IGNORED, "unhandled event")

        if not event.room_name:
            logger.warning("Webhook %s without a room name", event.event.value)
            return self._outcome(event, WebhookAction.IGNORED, "missing room")

        user_id = None
        if event.event in _PARTICIPANT_EVENTS:
            if self.egress_identity_prefix and event.identity.startswith(
                self.egress_identity_prefix
            ):
                logger.debug("Skipping recorder identity %s", event.identity)
                return self._outcome(event, WebhookAction.SKIPPED, "egress participant")
            user_id = parse_identity(event.identity)
            if user_id is None:
                logger.warning(
                    "Webhook %s with unusable identity %r", event.event.value, event.identity
                )
                return self._outcome(event, WebhookAction.IGNORED, "invalid identity")

        room = self.coordinator.rooms.get_room_by_external_name(event.room_name)
        if room is None:
            logger.warning("Webhook %s for unknown room %s", event.event.value, event.room_name)
            return self._outcome(event, WebhookAction.IGNORED, "unknown room")

        try:
            action = await self._dispatch(event.event, room, user_id)
        except (
            NotFoundError,
            ConflictError,
            PermissionDeniedError,
            PreconditionFailedError,
        ) as exc:
            logger.info(
                "Webhook %s for room %s already satisfied: %s",
                event.event.value,
                room.room_id,
                exc.code,
            )
            return self._outcome(event, WebhookAction.IGNORED, exc.code)

        return self._outcome(event, action)

    async def _dispatch(
        self, event_type: WebhookEventType, room: Room, user_id: Optional[str]
    ) -> WebhookAction:
        if event_type == WebhookEventType.PARTICIPANT_JOINED:
            return await self._participant_joined(room, user_id)
        if event_type == WebhookEventType.PARTICIPANT_LEFT:
            return await self._participant_left(room, user_id)
        if event_type == WebhookEventType.ROOM_STARTED:
            if room.is_active:
                return WebhookAction.IGNORED
            await self.coordinator.start_room(room.room_id, room.host_id)
            return WebhookAction.APPLIED
        if room.is_ended:
            return WebhookAction.IGNORED
        await self.coordinator.end_room(room.room_id, room.host_id)
        return WebhookAction.APPLIED

    async def _participant_joined(self, room: Room, user_id: str) -> WebhookAction:
        current = self.coordinator.participants.find_by_room_and_user(room.room_id, user_id)
        if current is not None and current.is_joined:
            return WebhookAction.IGNORED
        participant = await self.coordinator.update_participant_status(
            room.room_id, user_id, ParticipantStatus.JOINED.value
        )
        if participant is None or not participant.is_joined:
            return WebhookAction.IGNORED
        return WebhookAction.APPLIED

    async def _participant_left(self, room: Room, user_id: str) -> WebhookAction:
        current = self.coordinator.participants.find_by_room_and_user(room.room_id, user_id)
        if current is None or current.status not in (
            ParticipantStatus.JOINED.value,
            ParticipantStatus.WAITING.value,
        ):
            return WebhookAction.IGNORED
        await self.coordinator.leave_room(room.room_id, user_id)
        return WebhookAction.APPLIED
