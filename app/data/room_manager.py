import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import String, cast, or_, update
from sqlalchemy.orm import Session

from ..models.room import Room, RoomStatus
from ..utils.clock import seconds_between
from ..utils.identifiers import generate_room_id

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_SORTABLE_COLUMNS = {
    "created_at": Room.created_at,
    "started_at": Room.started_at,
    "name": Room.name,
}


@dataclass
class RoomFilters:
    room_type: Optional[str] = None
    status: Optional[str] = None
    host_id: Optional[str] = None
    search: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def limit(self) -> int:
        return max(1, min(int(self.page_size or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))

    @property
    def offset(self) -> int:
        return (max(1, int(self.page or 1)) - 1) * self.limit


class RoomManager:
    """Persistence helpers for rooms."""

    def __init__(self, db: Session):
        self.db = db

    def create_room(self, created_at: Optional[datetime] = None, **fields: Any) -> Room:
        room = Room(room_id=generate_room_id(self.db, created_at), **fields)
        self.db.add(room)
        self.db.flush()
        return room

    def get_room(self, room_id: str, for_update: bool = False) -> Optional[Room]:
        query = self.db.query(Room).filter(Room.room_id == room_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_room_by_external_name(self, external_room_name: str) -> Optional[Room]:
        return (
            self.db.query(Room)
            .filter(Room.external_room_name == external_room_name)
            .first()
        )

    def list_rooms(self, filters: RoomFilters) -> Tuple[List[Room], int]:
        query = self.db.query(Room)

        if filters.room_type:
            query = query.filter(Room.room_type == filters.room_type)
        if filters.status:
            query = query.filter(Room.status == filters.status)
        if filters.host_id:
            query = query.filter(Room.host_id == filters.host_id)
        search = (filters.search or "").strip()
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(Room.name.ilike(pattern), Room.description.ilike(pattern))
            )
        for tag in filters.tags or []:
            tag = str(tag).strip()
            if tag:
                # Tags are stored as a JSON list; match the quoted element.
                query = query.filter(cast(Room.tags, String).like(f'%"{tag}"%'))

        total = query.count()

        column = _SORTABLE_COLUMNS.get(filters.sort_by or "", Room.created_at)
        if (filters.sort_order or "").lower() == "asc":
            query = query.order_by(column.asc(), Room.room_id.asc())
        else:
            query = query.order_by(column.desc(), Room.room_id.desc())

        rooms = query.offset(filters.offset).limit(filters.limit).all()
        return rooms, total

    def increment_participants(self, room_id: str) -> bool:
        """Atomically add one to the live count; False when the room is already full."""
        result = self.db.execute(
            update(Room)
            .where(
                Room.room_id == room_id,
                Room.current_participants < Room.max_participants,
            )
            .values(current_participants=Room.current_participants + 1)
            .execution_options(synchronize_session=False)
        )
        self._refresh_count(room_id)
        return bool(result.rowcount)

    def decrement_participants(self, room_id: str) -> bool:
        result = self.db.execute(
            update(Room)
            .where(Room.room_id == room_id, Room.current_participants > 0)
            .values(current_participants=Room.current_participants - 1)
            .execution_options(synchronize_session=False)
        )
        self._refresh_count(room_id)
        return bool(result.rowcount)

    def _refresh_count(self, room_id: str) -> None:
        room = self.db.get(Room, room_id)
        if room is not None:
            self.db.refresh(room, attribute_names=["current_participants"])

    def mark_active(self, room: Room, now: datetime) -> Room:
        room.status = RoomStatus.ACTIVE.value
        room.started_at = room.started_at or now
        self.db.flush()
        return room

    def mark_ended(self, room: Room, now: datetime) -> Room:
        room.status = RoomStatus.ENDED.value
        room.ended_at = now
        room.duration_seconds = seconds_between(room.started_at, now)
        room.current_participants = 0
        self.db.flush()
        logger.info("Room %s ended after %s seconds", room.room_id, room.duration_seconds)
        return room

    def update_host(self, room: Room, host_id: str) -> Room:
        room.host_id = host_id
        self.db.flush()
        return room

    def delete_room(self, room: Room) -> None:
        self.db.delete(room)
        self.db.flush()
