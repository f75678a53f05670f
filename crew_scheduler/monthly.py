"""Expand monthly default templates into concrete weekday assignments."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from crew_scheduler.availability import availability_for, segment_allowed
from crew_scheduler.database import (
    get_availability_override,
    get_person,
    list_adjustment_rules,
    list_monthly_default_days,
    list_monthly_defaults,
    list_people,
    list_roles,
    list_time_off,
    load_segment_catalog,
    record_audit_log,
    upsert_assignment,
)
from crew_scheduler.dates import WEEKDAY_TOKENS, parse_month, weekdays_in_month
from crew_scheduler.intervals import blocked_by_time_off, clip_to_day
from crew_scheduler.policy import load_active_policy, time_off_exempt_segments
from crew_scheduler.segments import present_segments_for_person, resolve_segment_windows


def _collect_template(session, month: str):
    """Per-person ``{segment: monthly role or None}`` plus weekday overrides.

    A weekday entry without a monthly default still adds its segment, with
    no monthly role, so it projects on its own weekday only.
    """
    by_person: Dict[int, Dict[str, Optional[int]]] = {}
    for entry in list_monthly_defaults(session, month):
        by_person.setdefault(entry.person_id, {})[entry.segment] = entry.role_id
    weekday_roles: Dict[Tuple[int, int, str], int] = {}
    for entry in list_monthly_default_days(session, month):
        weekday_roles[(entry.person_id, entry.weekday, entry.segment)] = entry.role_id
        by_person.setdefault(entry.person_id, {}).setdefault(entry.segment, None)
    return by_person, weekday_roles


def _clear_of_time_off(planned, stored, offs, *, day, catalog, rules, exempt, skip):
    """Drop planned segments whose resolved window overlaps time-off.

    Dropping a segment can widen its neighbours (AM loses the Lunch cut), so
    windows are resolved again until no remaining segment is blocked.
    """
    kept = list(planned)
    while kept:
        present = {segment: set(role_ids) for segment, role_ids in stored.items()}
        for segment, role_id in kept:
            present.setdefault(segment, set()).add(role_id)
        windows = resolve_segment_windows(day, present, catalog, rules)
        blocked = [
            entry
            for entry in kept
            if entry[0] not in exempt and blocked_by_time_off(windows[entry[0]], offs)
        ]
        if not blocked:
            break
        skip("time_off", len(blocked))
        kept = [entry for entry in kept if entry not in blocked]
    return kept


def apply_monthly_defaults(session, month, *, actor: str = "system") -> Dict[str, Any]:
    """Write the month's template onto every weekday of ``month``.

    Entries are skipped, never raised, when the person is inactive, the role or
    segment is unknown or mismatched, availability forbids the segment, or the
    resolved window overlaps time-off. The whole run commits once; any error
    rolls every write back. Re-running yields the same assignment set.

    Returns:
        ``{"month", "written", "skipped"}`` where ``skipped`` counts entries by
        reason.
    """
    key = parse_month(month)
    by_person, weekday_roles = _collect_template(session, key)
    catalog = load_segment_catalog(session)
    rules = list_adjustment_rules(session)
    roles = {role.id: role for role in list_roles(session)}
    people = {person.id: person for person in list_people(session, only_active=True)}
    exempt = time_off_exempt_segments(load_active_policy(session))

    written = 0
    skipped: Dict[str, int] = {}

    def skip(reason: str, count: int = 1) -> None:
        skipped[reason] = skipped.get(reason, 0) + count

    try:
        for day in weekdays_in_month(key):
            weekday = day.isoweekday()
            for person_id, entries in by_person.items():
                person = people.get(person_id)
                if person is None:
                    skip("inactive_person", len(entries))
                    continue
                avail = availability_for(person, day, get_availability_override(session, person_id, day))
                planned: List[Tuple[str, int]] = []
                for segment, monthly_role in entries.items():
                    role_id = weekday_roles.get((person_id, weekday, segment), monthly_role)
                    if role_id is None:
                        continue
                    role = roles.get(role_id)
                    if segment not in catalog:
                        skip("unknown_segment")
                    elif role is None:
                        skip("unknown_role")
                    elif not role.applies_to(segment):
                        skip("role_segment_mismatch")
                    elif not segment_allowed(segment, avail):
                        skip("unavailable")
                    else:
                        planned.append((segment, role_id))
                if not planned:
                    continue

                offs = clip_to_day(list_time_off(session, person_id), day)
                if offs:
                    planned = _clear_of_time_off(
                        planned,
                        present_segments_for_person(session, day, person_id),
                        offs,
                        day=day,
                        catalog=catalog,
                        rules=rules,
                        exempt=exempt,
                        skip=skip,
                    )
                for segment, role_id in planned:
                    upsert_assignment(session, day, person_id, role_id, segment, commit=False)
                    written += 1
        session.commit()
    except Exception:
        session.rollback()
        raise

    summary = {"month": key, "written": written, "skipped": skipped}
    record_audit_log(session, user_id=actor, action="MONTHLY_APPLY", target_type="Month", payload=summary)
    return summary


def monthly_template(session, month) -> List[Dict[str, Any]]:
    """Template grid for ``month``, one entry per person with any template data."""
    key = parse_month(month)
    grid: Dict[int, Dict[str, Any]] = {}

    def row_for(person_id: int) -> Dict[str, Any]:
        if person_id not in grid:
            person = get_person(session, person_id)
            grid[person_id] = {
                "person_id": person_id,
                "person": person.name if person else "",
                "active": bool(person and person.active),
                "defaults": {},
                "weekdays": {},
            }
        return grid[person_id]

    for entry in list_monthly_defaults(session, key):
        row_for(entry.person_id)["defaults"][entry.segment] = entry.role_id
    for entry in list_monthly_default_days(session, key):
        token = WEEKDAY_TOKENS[entry.weekday - 1]
        row_for(entry.person_id)["weekdays"].setdefault(token, {})[entry.segment] = entry.role_id
    return sorted(grid.values(), key=lambda row: (row["person"].lower(), row["person_id"]))
