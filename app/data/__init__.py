"""
Data access layer providing managers for rooms and participants.
Managers flush but never commit; the caller owns the transaction.
"""

from .room_manager import RoomFilters, RoomManager
from .participant_manager import ParticipantManager

__all__ = ["RoomFilters", "RoomManager", "ParticipantManager"]
