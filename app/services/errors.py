"""Typed errors raised by the room services.

Every error carries a stable ``code`` and the HTTP status the presentation
layer should answer with. The categories mirror how callers react: not
found, conflict, permission, precondition and internal failures.
"""

from typing import Optional


class RoomServiceError(Exception):
    code = "room_service_error"
    status_code = 500
    default_message = "Room service error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFoundError(RoomServiceError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ConflictError(RoomServiceError):
    code = "conflict"
    status_code = 409
    default_message = "Resource conflict"


class PermissionDeniedError(RoomServiceError):
    code = "permission_denied"
    status_code = 403
    default_message = "Permission denied"


class PreconditionFailedError(RoomServiceError):
    code = "precondition_failed"
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InternalServiceError(RoomServiceError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"


# Not found
class RoomNotFound(NotFoundError):
    code = "room_not_found"
    default_message = "Room not found"


class ParticipantNotFound(NotFoundError):
    code = "participant_not_found"
    default_message = "Participant not found"


class InvitationNotFound(NotFoundError):
    code = "invitation_not_found"
    default_message = "Invitation not found"


# Conflict
class AlreadyInRoom(ConflictError):
    code = "already_in_room"
    default_message = "User already in room"


class AlreadyInvited(ConflictError):
    code = "already_invited"
    default_message = "User already invited or in room"


class RoomAlreadyExists(ConflictError):
    code = "room_already_exists"
    default_message = "Room already exists"


# Permission
class NotHost(PermissionDeniedError):
    code = "not_host"
    default_message = "User is not the host"


class NotInvited(PermissionDeniedError):
    code = "not_invited"
    default_message = "User not invited to this room"


class AccessDenied(PermissionDeniedError):
    code = "access_denied"
    default_message = "Access denied to this room"


class ParticipantBlocked(PermissionDeniedError):
    code = "participant_blocked"
    default_message = "You have been blocked from this room"


class CannotRemoveSelf(PermissionDeniedError):
    code = "cannot_remove_self"
    default_message = "Cannot remove yourself"


class CannotTransferToSelf(PermissionDeniedError):
    code = "cannot_transfer_to_self"
    default_message = "Cannot transfer host to yourself"


class CannotBlockHost(PermissionDeniedError):
    code = "cannot_block_host"
    default_message = "Cannot block or remove the host"


# Precondition
class RoomEnded(PreconditionFailedError):
    code = "room_ended"
    status_code = 410
    default_message = "Room has ended"


class RoomFull(PreconditionFailedError):
    code = "room_full"
    status_code = 409
    default_message = "Room is full"


class TooEarly(PreconditionFailedError):
    code = "too_early"
    status_code = 425
    default_message = "Cannot join room before scheduled time"


class InvalidParticipantStatus(PreconditionFailedError):
    code = "invalid_participant_status"
    status_code = 409
    default_message = "Invalid participant status for this operation"


class InvalidRoomConfiguration(PreconditionFailedError):
    code = "invalid_room_configuration"
    status_code = 422
    default_message = "Invalid room configuration"


# Internal
class MediaInfrastructureError(InternalServiceError):
    code = "media_infrastructure_error"
    status_code = 502
    default_message = "Media infrastructure request failed"


class PersistenceError(InternalServiceError):
    code = "persistence_error"
    default_message = "Failed to persist room state"


class WebhookVerificationError(RoomServiceError):
    code = "webhook_unverified"
    status_code = 401
    default_message = "Webhook could not be verified"
