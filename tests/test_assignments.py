from __future__ import annotations

import json

import pytest
from sqlalchemy import select

from crew_scheduler.assignments import (
    AssignmentBlocked,
    add_assignment,
    check_assignment,
    delete_assignment,
    eligible_people,
    move_assignment,
)
from crew_scheduler.database import AuditLog, add_time_off, list_assignments, upsert_assignment

from conftest import MONDAY, SATURDAY, TUESDAY, at, make_person


def _reason(session, *args, **kwargs):
    return check_assignment(session, *args, **kwargs).reason


def test_legal_assignment_is_allowed(session, roles):
    person = make_person(session, "Reed")
    verdict = check_assignment(session, MONDAY, person.id, roles["buffet"].id, "AM")
    assert verdict.allowed
    assert verdict.reason is None


def test_rejection_reasons(session, roles):
    person = make_person(session, "Reed", ["B", "AM", "B", "B", "B"])
    retired = make_person(session, "Stone", active=False)
    buffet = roles["buffet"]

    assert _reason(session, SATURDAY, person.id, buffet.id, "AM") == "weekend"
    assert _reason(session, MONDAY, 999, buffet.id, "AM") == "unknown_person"
    assert _reason(session, MONDAY, retired.id, buffet.id, "AM") == "inactive_person"
    assert _reason(session, MONDAY, person.id, 999, "AM") == "unknown_role"
    assert _reason(session, MONDAY, person.id, buffet.id, "Night") == "unknown_segment"
    assert _reason(session, MONDAY, person.id, roles["waiter"].id, "AM") == "role_segment_mismatch"
    assert _reason(session, TUESDAY, person.id, roles["feeder"].id, "PM") == "unavailable"


def test_time_off_overlap_blocks_the_segment(session, roles):
    person = make_person(session, "Reed")
    add_time_off(session, person.id, at(MONDAY, "09:30"), at(MONDAY, "10:00"))
    assert _reason(session, MONDAY, person.id, roles["buffet"].id, "AM") == "time_off"
    assert _reason(session, MONDAY, person.id, roles["feeder"].id, "PM") is None


def test_time_off_never_blocks_early(session, roles):
    person = make_person(session, "Reed")
    add_time_off(session, person.id, at(MONDAY, "06:00"), at(MONDAY, "08:00"))
    assert check_assignment(session, MONDAY, person.id, roles["breakfast"].id, "Early").allowed


def test_time_off_is_checked_against_the_adjusted_window(session, roles):
    person = make_person(session, "Reed")
    add_time_off(session, person.id, at(MONDAY, "11:30"), at(MONDAY, "12:00"))
    assert _reason(session, MONDAY, person.id, roles["buffet"].id, "AM") == "time_off"
    # Working Lunch ends AM at 11:00, clear of the time-off.
    upsert_assignment(session, MONDAY, person.id, roles["waiter"].id, "Lunch")
    assert check_assignment(session, MONDAY, person.id, roles["buffet"].id, "AM").allowed


def test_one_role_per_segment(session, roles):
    person = make_person(session, "Reed")
    add_assignment(session, MONDAY, person.id, roles["buffet"].id, "AM")
    assert _reason(session, MONDAY, person.id, roles["pattern"].id, "AM") == "already_assigned"
    assert check_assignment(session, MONDAY, person.id, roles["feeder"].id, "PM").allowed


def test_add_assignment_raises_with_reason(session, roles):
    person = make_person(session, "Reed")
    with pytest.raises(AssignmentBlocked) as excinfo:
        add_assignment(session, SATURDAY, person.id, roles["buffet"].id, "AM")
    assert excinfo.value.reason == "weekend"
    assert isinstance(excinfo.value, ValueError)
    assert list_assignments(session, person_id=person.id) == []


def test_add_and_delete_are_audited(session, roles):
    person = make_person(session, "Reed")
    record = add_assignment(session, "2024-06-03", person.id, roles["buffet"].id, "AM", actor="coordinator")
    assert record.date == MONDAY
    assert delete_assignment(session, record.id, actor="coordinator")
    assert not delete_assignment(session, record.id)

    logs = list(session.scalars(select(AuditLog).order_by(AuditLog.id.asc())))
    assert [log.action for log in logs] == ["ASSIGNMENT_CREATE", "ASSIGNMENT_DELETE"]
    assert logs[0].user_id == "coordinator"
    assert json.loads(logs[0].payloadJSON)["segment"] == "AM"


def test_move_assignment_changes_role_in_place(session, roles):
    person = make_person(session, "Reed")
    record = add_assignment(session, MONDAY, person.id, roles["feeder"].id, "PM")
    moved = move_assignment(session, record.id, roles["hot_end"].id)
    assert moved.id == record.id
    (stored,) = list_assignments(session, person_id=person.id)
    assert stored.role_id == roles["hot_end"].id


def test_move_assignment_rejects_illegal_targets(session, roles):
    person = make_person(session, "Reed")
    record = add_assignment(session, MONDAY, person.id, roles["feeder"].id, "PM")
    with pytest.raises(AssignmentBlocked) as excinfo:
        move_assignment(session, record.id, roles["waiter"].id)
    assert excinfo.value.reason == "role_segment_mismatch"
    with pytest.raises(ValueError):
        move_assignment(session, 999, roles["hot_end"].id)


def test_eligible_people_filters_by_availability_and_time_off(session, roles):
    both = make_person(session, "Avery")
    morning = make_person(session, "Blake", "AM")
    away = make_person(session, "Casey")
    make_person(session, "Drew", active=False)
    add_time_off(session, away.id, at(MONDAY, "14:00"), at(MONDAY, "15:00"))

    names = [entry["id"] for entry in eligible_people(session, MONDAY, "PM")]
    assert names == [both.id]
    assert {entry["id"] for entry in eligible_people(session, MONDAY, "AM")} == {both.id, morning.id, away.id}
    assert eligible_people(session, SATURDAY, "AM") == []


def test_eligible_people_flags_untrained(session, roles):
    veteran = make_person(session, "Avery")
    rookie = make_person(session, "Blake")
    upsert_assignment(session, MONDAY, veteran.id, roles["feeder"].id, "PM")
    options = {entry["id"]: entry for entry in eligible_people(session, TUESDAY, "PM", role_id=roles["feeder"].id)}
    assert options[veteran.id]["untrained"] is False
    assert options[rookie.id]["untrained"] is True
