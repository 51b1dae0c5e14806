"""Service layer for room lifecycle, admission and media reconciliation."""

from .errors import RoomServiceError  # noqa: F401
from .session_coordinator import SessionCoordinator, get_session_coordinator  # noqa: F401

__all__ = [
    "RoomServiceError",
    "SessionCoordinator",
    "get_session_coordinator",
]
