from __future__ import annotations

from crew_scheduler.coverage import (
    assigned_count,
    coverage_for_day,
    coverage_status,
    move_suggestions,
    required_for,
)
from crew_scheduler.database import upsert_assignment, upsert_needs_baseline, upsert_needs_override
from crew_scheduler.domain import CoverageStatus

from conftest import MONDAY, SATURDAY, TUESDAY, make_person


def test_override_takes_precedence_over_baseline(session, roles):
    buffet = roles["buffet"]
    upsert_needs_baseline(session, buffet.group_id, buffet.id, "AM", 2)
    upsert_needs_override(session, MONDAY, buffet.group_id, buffet.id, "AM", 5)
    assert required_for(session, MONDAY, buffet.group_id, buffet.id, "AM") == 5
    assert required_for(session, TUESDAY, buffet.group_id, buffet.id, "AM") == 2


def test_zero_override_still_wins(session, roles):
    buffet = roles["buffet"]
    upsert_needs_baseline(session, buffet.group_id, buffet.id, "AM", 2)
    upsert_needs_override(session, MONDAY, buffet.group_id, buffet.id, "AM", 0)
    assert required_for(session, MONDAY, buffet.group_id, buffet.id, "AM") == 0


def test_missing_needs_default_to_zero(session, roles):
    assert required_for(session, MONDAY, 999, 999, "AM") == 0
    assert required_for(session, MONDAY, roles["buffet"].group_id, roles["buffet"].id, "Night") == 0


def test_legacy_segment_name_reads_the_same_counts(session, roles):
    breakfast = roles["breakfast"]
    upsert_needs_baseline(session, breakfast.group_id, breakfast.id, "Early", 2)
    person = make_person(session, "Lopez", "AM")
    upsert_assignment(session, MONDAY, person.id, breakfast.id, "Early")
    assert required_for(session, MONDAY, breakfast.group_id, breakfast.id, "Early Shift") == 2
    assert assigned_count(session, MONDAY, breakfast.id, " early shift ") == 1


def test_coverage_status_thresholds():
    assert coverage_status(0, 1) is CoverageStatus.UNDERSTAFFED
    assert coverage_status(2, 2) is CoverageStatus.MET
    assert coverage_status(3, 2) is CoverageStatus.OVERSTAFFED


def test_coverage_for_day_lists_every_role_of_the_segment(session, roles):
    buffet = roles["buffet"]
    upsert_needs_baseline(session, buffet.group_id, buffet.id, "AM", 1)
    person = make_person(session, "Ng")
    upsert_assignment(session, MONDAY, person.id, buffet.id, "AM")
    cells = {cell.role_name: cell for cell in coverage_for_day(session, MONDAY, "AM")}
    assert "Waiter" not in cells
    assert cells["Buffet"].status is CoverageStatus.MET
    assert cells["Buffet"].group_name == "Dining Room"
    assert cells["Pattern"].required == 0
    assert assigned_count(session, MONDAY, buffet.id, "AM") == 1


def test_coverage_is_empty_on_weekends_and_unknown_segments(session):
    assert coverage_for_day(session, SATURDAY) == []
    assert coverage_for_day(session, MONDAY, "Night") == []


def test_move_suggestions_pair_overstaffed_with_understaffed(session, roles):
    feeder, hot_end = roles["feeder"], roles["hot_end"]
    upsert_needs_baseline(session, feeder.group_id, feeder.id, "PM", 1)
    upsert_needs_baseline(session, hot_end.group_id, hot_end.id, "PM", 1)
    first = make_person(session, "Adams")
    second = make_person(session, "Baker")
    upsert_assignment(session, MONDAY, first.id, feeder.id, "PM")
    upsert_assignment(session, MONDAY, second.id, feeder.id, "PM")

    moves = move_suggestions(session, MONDAY, "PM")
    assert len(moves) == 1
    assert moves[0]["from_role_id"] == feeder.id
    assert moves[0]["to_role_id"] == hot_end.id
    assert moves[0]["person_id"] in {first.id, second.id}


def test_move_suggestions_skip_people_who_cannot_take_the_role(session, roles):
    feeder, hot_end = roles["feeder"], roles["hot_end"]
    upsert_needs_baseline(session, hot_end.group_id, hot_end.id, "PM", 1)
    # Assigned directly despite AM-only availability, so the move would be illegal.
    person = make_person(session, "Adams", "AM")
    upsert_assignment(session, MONDAY, person.id, feeder.id, "PM")
    assert move_suggestions(session, MONDAY, "PM") == []
