from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from app.data.room_manager import MAX_PAGE_SIZE, RoomFilters, RoomManager
from app.models.room import Room, RoomStatus

CREATED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def rooms(db_session):
    return RoomManager(db_session)


def add_room(rooms, name, host_id="host-1", **fields):
    fields.setdefault("room_type", "public")
    fields.setdefault("status", RoomStatus.SCHEDULED.value)
    fields.setdefault("max_participants", 3)
    fields.setdefault("waiting_room_enabled", False)
    return rooms.create_room(
        created_at=CREATED,
        name=name,
        host_id=host_id,
        external_room_name=f"room-{name.lower().replace(' ', '-')}",
        current_participants=0,
        **fields,
    )


def test_locked_read_refreshes_loaded_room(rooms, db_session):
    room = add_room(rooms, "Alpha")
    assert rooms.get_room_by_external_name("room-alpha").status == RoomStatus.SCHEDULED.value

    db_session.execute(
        update(Room)
        .where(Room.room_id == room.room_id)
        .values(status=RoomStatus.ENDED.value, current_participants=0)
        .execution_options(synchronize_session=False)
    )

    assert room.status == RoomStatus.SCHEDULED.value
    locked = rooms.get_room(room.room_id, for_update=True)
    assert locked is room
    assert locked.status == RoomStatus.ENDED.value


def test_room_ids_are_sequential_per_day(rooms):
    first = add_room(rooms, "Alpha")
    second = add_room(rooms, "Beta")

    assert first.room_id == "RM20260302-0001"
    assert second.room_id == "RM20260302-0002"
    assert rooms.get_room(first.room_id) is first
    assert rooms.get_room_by_external_name("room-beta") is second
    assert rooms.get_room("RM20260302-9999") is None


def test_increment_stops_at_capacity(rooms):
    room = add_room(rooms, "Alpha", max_participants=2)

    assert rooms.increment_participants(room.room_id) is True
    assert rooms.increment_participants(room.room_id) is True
    assert rooms.increment_participants(room.room_id) is False
    assert room.current_participants == 2
    assert room.is_full


def test_decrement_never_goes_negative(rooms):
    room = add_room(rooms, "Alpha")

    assert rooms.decrement_participants(room.room_id) is False
    rooms.increment_participants(room.room_id)
    assert rooms.decrement_participants(room.room_id) is True
    assert room.current_participants == 0


def test_mark_active_then_ended_records_duration(rooms):
    room = add_room(rooms, "Alpha")
    rooms.increment_participants(room.room_id)

    rooms.mark_active(room, CREATED)
    assert room.started_at == CREATED
    rooms.mark_ended(room, datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))

    assert room.status == RoomStatus.ENDED.value
    assert room.duration_seconds == 1800
    assert room.current_participants == 0


def test_list_rooms_filters(rooms):
    add_room(rooms, "Design review", description="Weekly design sync", tags=["design", "weekly"])
    add_room(rooms, "Standup", room_type="private", tags=["daily"])
    add_room(rooms, "Design retro", host_id="host-2", tags=["design"])
    ended = add_room(rooms, "Launch")
    rooms.mark_ended(ended, CREATED)

    def names(**kwargs):
        found, total = rooms.list_rooms(RoomFilters(sort_by="name", sort_order="asc", **kwargs))
        assert total == len(found)
        return [room.name for room in found]

    assert names(room_type="private") == ["Standup"]
    assert names(status="ended") == ["Launch"]
    assert names(host_id="host-2") == ["Design retro"]
    assert names(search="design") == ["Design retro", "Design review"]
    assert names(search="weekly") == ["Design review"]
    assert names(tags=["design"]) == ["Design retro", "Design review"]
    assert names(tags=["design", "weekly"]) == ["Design review"]
    assert names(tags=["week"]) == []


def test_list_rooms_paginates_with_total(rooms):
    for index in range(5):
        add_room(rooms, f"Room {index}")

    page, total = rooms.list_rooms(
        RoomFilters(page=2, page_size=2, sort_by="name", sort_order="asc")
    )

    assert total == 5
    assert [room.name for room in page] == ["Room 2", "Room 3"]


def test_room_filters_clamp_paging():
    assert RoomFilters(page_size=1000).limit == MAX_PAGE_SIZE
    assert RoomFilters(page=0, page_size=10).offset == 0
    assert RoomFilters(page=3, page_size=10).offset == 20


def test_unknown_sort_column_falls_back(rooms):
    add_room(rooms, "Beta")
    add_room(rooms, "Alpha")

    found, _ = rooms.list_rooms(RoomFilters(sort_by="password", sort_order="asc"))

    assert [room.room_id for room in found] == ["RM20260302-0001", "RM20260302-0002"]
