from datetime import datetime, timedelta, timezone

import pytest

from app.models.room import Participant, Room
from app.services.access_policy import AccessOutcome, evaluate_access
from app.services.errors import AccessDenied, AlreadyInRoom, NotInvited, RoomEnded, TooEarly

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def build_room(room_type="public", waiting=False, **kwargs):
    return Room(
        room_id="RM20260302-0001",
        name="Planning",
        host_id="host-1",
        room_type=room_type,
        status="scheduled",
        max_participants=10,
        current_participants=0,
        waiting_room_enabled=waiting,
        **kwargs,
    )


def record(status, is_removed=False):
    return Participant(
        participant_id="PRT-1",
        room_id="RM20260302-0001",
        user_id="user-1",
        role="participant",
        status=status,
        is_removed=is_removed,
    )


def test_host_is_always_allowed():
    room = build_room("private", waiting=True)
    decision = evaluate_access(room, "host-1", None, NOW)
    assert decision.outcome == AccessOutcome.ALLOW
    decision.raise_for_denial()


@pytest.mark.parametrize(
    "waiting, expected",
    [(False, AccessOutcome.ALLOW), (True, AccessOutcome.REQUIRE_WAITING)],
)
def test_public_room_honours_waiting_room(waiting, expected):
    decision = evaluate_access(build_room(waiting=waiting), "user-1", None, NOW)
    assert decision.outcome == expected
    assert decision.allowed


def test_private_room_requires_invitation():
    decision = evaluate_access(build_room("private"), "user-1", None, NOW)
    assert decision.outcome == AccessOutcome.DENY
    with pytest.raises(NotInvited):
        decision.raise_for_denial()


@pytest.mark.parametrize(
    "participant, error",
    [
        (record("joined"), AlreadyInRoom),
        (record("declined"), AccessDenied),
        (record("denied", is_removed=True), AccessDenied),
        (record("removed", is_removed=True), AccessDenied),
        (record("left"), NotInvited),
    ],
)
def test_private_room_refusals(participant, error):
    decision = evaluate_access(build_room("private"), "user-1", participant, NOW)
    assert not decision.allowed
    assert isinstance(decision.error, error)


def test_private_invitee_waits_when_waiting_room_enabled():
    decision = evaluate_access(build_room("private", waiting=True), "user-1", record("invited"), NOW)
    assert decision.requires_waiting


def test_waiting_record_keeps_passing():
    decision = evaluate_access(build_room("private", waiting=True), "user-1", record("waiting"), NOW)
    assert decision.requires_waiting


def test_scheduled_room_window():
    room = build_room(
        "scheduled",
        scheduled_start_time=NOW + timedelta(minutes=20),
        scheduled_end_time=NOW + timedelta(hours=1),
    )
    invited = record("invited")

    with pytest.raises(TooEarly):
        evaluate_access(room, "user-1", invited, NOW).raise_for_denial()

    assert evaluate_access(room, "user-1", invited, NOW + timedelta(minutes=5)).allowed
    assert evaluate_access(
        room, "user-1", invited, NOW, early_join_minutes=30
    ).allowed

    late = evaluate_access(room, "user-1", invited, NOW + timedelta(hours=2))
    assert isinstance(late.error, RoomEnded)


def test_scheduled_room_accepts_naive_database_times():
    room = build_room(
        "scheduled",
        scheduled_start_time=(NOW + timedelta(minutes=5)).replace(tzinfo=None),
        scheduled_end_time=(NOW + timedelta(hours=1)).replace(tzinfo=None),
    )
    assert evaluate_access(room, "user-1", record("invited"), NOW).allowed


def test_scheduled_room_still_requires_invitation():
    room = build_room(
        "scheduled",
        scheduled_start_time=NOW,
        scheduled_end_time=NOW + timedelta(hours=1),
    )
    with pytest.raises(NotInvited):
        evaluate_access(room, "user-1", None, NOW).raise_for_denial()
