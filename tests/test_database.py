from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo

import pytest

from crew_scheduler.database import (
    Person,
    Role,
    add_role,
    add_segment,
    add_time_off,
    copy_monthly_defaults,
    count_assignments,
    delete_assignment_row,
    get_person,
    get_role,
    list_assignments,
    list_monthly_default_days,
    list_monthly_defaults,
    list_people,
    list_roles,
    list_time_off,
    load_segment_catalog,
    upsert_assignment,
    upsert_monthly_default,
    upsert_monthly_default_day,
    upsert_needs_baseline,
    upsert_policy,
)

from conftest import MONDAY, at, make_person


def test_seeded_catalog_is_in_display_order(session):
    catalog = load_segment_catalog(session)
    assert list(catalog) == ["Early", "AM", "Lunch", "PM"]
    assert (catalog["Early"].start, catalog["Early"].end) == (380, 440)


def test_roles_are_filtered_by_segment(session, roles):
    lunch_roles = {role.name for role in list_roles(session, segment="Lunch")}
    assert "Waiter" in lunch_roles
    assert "Buffet" not in lunch_roles
    assert roles["breakfast"].segments == frozenset({"Early"})


def test_legacy_segment_names_are_normalized(session, roles):
    group_id = roles["buffet"].group_id
    role = add_role(session, group_id, "Coffee", ["Early Shift"], code="DR")
    assert get_role(session, role.id).segments == frozenset({"Early"})


def test_unknown_segment_is_rejected_on_write(session, roles):
    person = make_person(session, "Kim")
    with pytest.raises(ValueError):
        upsert_assignment(session, MONDAY, person.id, roles["buffet"].id, "Night")
    with pytest.raises(ValueError):
        upsert_needs_baseline(session, roles["buffet"].group_id, roles["buffet"].id, "Night", 1)


def test_negative_headcount_is_rejected(session, roles):
    with pytest.raises(ValueError):
        upsert_needs_baseline(session, roles["buffet"].group_id, roles["buffet"].id, "AM", -1)


def test_segment_clock_is_validated(session):
    with pytest.raises(ValueError):
        add_segment(session, "Night", "7pm", "22:00")


def test_malformed_rows_fail_at_conversion(session, roles):
    person = make_person(session, "Kim")
    row = session.get(Person, person.id)
    row.avail_wed = "Z"
    session.commit()
    with pytest.raises(ValueError):
        get_person(session, person.id)

    role_row = session.get(Role, roles["buffet"].id)
    role_row.segments = "not json"
    session.commit()
    with pytest.raises(ValueError):
        get_role(session, roles["buffet"].id)


def test_people_listing_respects_active_flag(session):
    make_person(session, "Active")
    make_person(session, "Retired", active=False)
    assert [person.last_name for person in list_people(session)] == ["Active"]
    assert len(list_people(session, only_active=False)) == 2


def test_unknown_weekday_field_is_rejected(session):
    from crew_scheduler.database import add_person

    with pytest.raises(ValueError):
        add_person(session, "Kim", weekly={"avail_sat": "B"})


def test_aware_time_off_is_stored_in_local_time(session):
    person = make_person(session, "Kim")
    start = datetime.datetime(2024, 6, 3, 13, 0, tzinfo=datetime.timezone.utc)
    end = datetime.datetime(2024, 6, 3, 15, 0, tzinfo=datetime.timezone.utc)
    add_time_off(session, person.id, start, end, "Dentist")
    (record,) = list_time_off(session, person.id)
    # 13:00 UTC is 09:00 in New York during daylight saving time.
    assert record.start == at(MONDAY, "09:00")
    assert record.end == at(MONDAY, "11:00")
    assert record.start.tzinfo is None
    assert start.astimezone(ZoneInfo("America/New_York")).hour == 9


def test_aware_time_off_follows_the_policy_timezone(session):
    upsert_policy(session, "Denver", {"timezone": "America/Denver"})
    person = make_person(session, "Kim")
    start = datetime.datetime(2024, 6, 3, 16, 0, tzinfo=datetime.timezone.utc)
    end = datetime.datetime(2024, 6, 3, 18, 0, tzinfo=datetime.timezone.utc)
    add_time_off(session, person.id, start, end)
    (record,) = list_time_off(session, person.id)
    # Mountain daylight time is UTC-6.
    assert (record.start, record.end) == (at(MONDAY, "10:00"), at(MONDAY, "12:00"))


def test_explicit_timezone_wins_over_the_policy(session):
    upsert_policy(session, "Denver", {"timezone": "America/Denver"})
    person = make_person(session, "Kim")
    start = datetime.datetime(2024, 6, 3, 16, 0, tzinfo=datetime.timezone.utc)
    end = datetime.datetime(2024, 6, 3, 18, 0, tzinfo=datetime.timezone.utc)
    add_time_off(session, person.id, start, end, timezone="UTC")
    (record,) = list_time_off(session, person.id)
    assert record.start == at(MONDAY, "16:00")


def test_time_off_must_end_after_it_starts(session):
    person = make_person(session, "Kim")
    with pytest.raises(ValueError):
        add_time_off(session, person.id, at(MONDAY, "10:00"), at(MONDAY, "09:00"))


def test_assignment_slot_is_unique_per_person_day_segment(session, roles):
    person = make_person(session, "Kim")
    first = upsert_assignment(session, MONDAY, person.id, roles["buffet"].id, "AM")
    second = upsert_assignment(session, MONDAY, person.id, roles["pattern"].id, "AM")
    assert first.id == second.id
    (stored,) = list_assignments(session, day=MONDAY, person_id=person.id)
    assert stored.role_id == roles["pattern"].id
    assert count_assignments(session, MONDAY, roles["buffet"].id, "AM") == 0
    assert count_assignments(session, MONDAY, roles["pattern"].id, "AM") == 1


def test_delete_assignment_row_returns_the_removed_record(session, roles):
    person = make_person(session, "Kim")
    record = upsert_assignment(session, MONDAY, person.id, roles["buffet"].id, "AM")
    assert delete_assignment_row(session, record.id) == record
    assert delete_assignment_row(session, record.id) is None


def test_monthly_entries_are_keyed_and_removable(session, roles):
    person = make_person(session, "Kim")
    upsert_monthly_default(session, "2024-6", person.id, "AM", roles["buffet"].id)
    upsert_monthly_default(session, "2024-06", person.id, "AM", roles["pattern"].id)
    (entry,) = list_monthly_defaults(session, "2024-06")
    assert (entry.month, entry.role_id) == ("2024-06", roles["pattern"].id)
    upsert_monthly_default(session, "2024-06", person.id, "AM", None)
    assert list_monthly_defaults(session, "2024-06") == []


def test_weekday_override_only_exists_for_weekdays(session, roles):
    person = make_person(session, "Kim")
    with pytest.raises(ValueError):
        upsert_monthly_default_day(session, "2024-06", person.id, 6, "AM", roles["buffet"].id)


def test_copy_monthly_defaults_carries_both_tables(session, roles):
    person = make_person(session, "Kim")
    upsert_monthly_default(session, "2024-06", person.id, "AM", roles["buffet"].id)
    upsert_monthly_default_day(session, "2024-06", person.id, 2, "PM", roles["feeder"].id)
    assert copy_monthly_defaults(session, "2024-06", "2024-07") == 2
    assert [entry.role_id for entry in list_monthly_defaults(session, "2024-07")] == [roles["buffet"].id]
    (day_entry,) = list_monthly_default_days(session, "2024-07")
    assert (day_entry.weekday, day_entry.segment) == (2, "PM")
