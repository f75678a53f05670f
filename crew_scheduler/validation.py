from __future__ import annotations

import datetime
from typing import Any, Dict, List

from crew_scheduler.availability import availability_for, segment_allowed
from crew_scheduler.coverage import coverage_for_day
from crew_scheduler.database import (
    get_availability_override,
    list_assignments,
    list_people,
    list_roles,
    list_time_off,
)
from crew_scheduler.dates import WEEKDAY_TOKENS, is_weekend, parse_date, weekdays_between
from crew_scheduler.domain import AssignmentRecord, CoverageStatus, PersonRecord, RoleRecord
from crew_scheduler.intervals import blocked_by_time_off, clip_to_day
from crew_scheduler.policy import load_active_policy, time_off_exempt_segments
from crew_scheduler.segments import segment_windows_for_person


def validate_schedule(session, start, end) -> Dict[str, Any]:
    """Return validation findings for every assignment between ``start`` and ``end``."""
    start = parse_date(start)
    end = parse_date(end)
    if end < start:
        raise ValueError("End date must not be before the start date.")
    assignments = list_assignments(session, start=start, end=end)
    people = {person.id: person for person in list_people(session, only_active=False)}
    roles = {role.id: role for role in list_roles(session)}
    exempt = time_off_exempt_segments(load_active_policy(session))

    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    issues.extend(_weekend_issues(assignments))
    issues.extend(_inactive_issues(assignments, people))
    issues.extend(_role_segment_issues(assignments, roles))
    issues.extend(_availability_issues(session, assignments, people))
    issues.extend(_time_off_issues(session, assignments, people, exempt))
    warnings.extend(_coverage_warnings(session, start, end))
    checks = _build_validation_checklist(assignments, issues=issues, warnings=warnings)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "checks": checks,
        "issues": issues,
        "warnings": warnings,
    }


def _day_label(day: datetime.date) -> str:
    return f"{WEEKDAY_TOKENS[day.weekday()]} {day.isoformat()}"


def _person_label(people: Dict[int, PersonRecord], person_id: int) -> str:
    person = people.get(person_id)
    return person.name if person else f"Person {person_id}"


def _weekend_issues(assignments: List[AssignmentRecord]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for assignment in assignments:
        if not is_weekend(assignment.date):
            continue
        issues.append(
            {
                "type": "weekend_assignment",
                "severity": "error",
                "assignment_id": assignment.id,
                "day": _day_label(assignment.date),
                "message": f"Assignment {assignment.id} falls on {_day_label(assignment.date)}.",
            }
        )
    return issues


def _inactive_issues(assignments: List[AssignmentRecord], people: Dict[int, PersonRecord]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for assignment in assignments:
        person = people.get(assignment.person_id)
        if person is not None and person.active:
            continue
        issues.append(
            {
                "type": "inactive_person",
                "severity": "error",
                "assignment_id": assignment.id,
                "person_id": assignment.person_id,
                "day": _day_label(assignment.date),
                "message": f"{_person_label(people, assignment.person_id)} is not an active crew member.",
            }
        )
    return issues


def _role_segment_issues(assignments: List[AssignmentRecord], roles: Dict[int, RoleRecord]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for assignment in assignments:
        role = roles.get(assignment.role_id)
        if role is not None and role.applies_to(assignment.segment):
            continue
        label = role.name if role else f"Role {assignment.role_id}"
        issues.append(
            {
                "type": "role_segment",
                "severity": "error",
                "assignment_id": assignment.id,
                "role_id": assignment.role_id,
                "segment": assignment.segment,
                "day": _day_label(assignment.date),
                "message": f"{label} is not scheduled in the {assignment.segment} segment.",
            }
        )
    return issues


def _availability_issues(
    session, assignments: List[AssignmentRecord], people: Dict[int, PersonRecord]
) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for assignment in assignments:
        person = people.get(assignment.person_id)
        if person is None or is_weekend(assignment.date):
            continue
        override = get_availability_override(session, person.id, assignment.date)
        avail = availability_for(person, assignment.date, override)
        if segment_allowed(assignment.segment, avail):
            continue
        issues.append(
            {
                "type": "availability",
                "severity": "error",
                "assignment_id": assignment.id,
                "person_id": person.id,
                "employee": person.name,
                "day": _day_label(assignment.date),
                "message": f"{person.name} is marked {avail.value} on {_day_label(assignment.date)} "
                f"but works the {assignment.segment} segment.",
            }
        )
    return issues


def _time_off_issues(
    session,
    assignments: List[AssignmentRecord],
    people: Dict[int, PersonRecord],
    exempt: frozenset,
) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for assignment in assignments:
        if assignment.segment in exempt or is_weekend(assignment.date):
            continue
        offs = clip_to_day(list_time_off(session, assignment.person_id), assignment.date)
        if not offs:
            continue
        window = segment_windows_for_person(session, assignment.date, assignment.person_id).get(assignment.segment)
        if window is None or not blocked_by_time_off(window, offs):
            continue
        issues.append(
            {
                "type": "time_off",
                "severity": "error",
                "assignment_id": assignment.id,
                "person_id": assignment.person_id,
                "day": _day_label(assignment.date),
                "message": f"{_person_label(people, assignment.person_id)} has time off during "
                f"{window.start.strftime('%H:%M')}-{window.end.strftime('%H:%M')} ({assignment.segment}).",
            }
        )
    return issues


def _coverage_warnings(session, start: datetime.date, end: datetime.date) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    for day in weekdays_between(start, end):
        for cell in coverage_for_day(session, day):
            status = cell.status
            if status is CoverageStatus.MET:
                continue
            if status is CoverageStatus.UNDERSTAFFED:
                message = f"{cell.role_name} ({cell.segment}) needs {cell.required}, has {cell.assigned}."
            else:
                message = f"{cell.role_name} ({cell.segment}) has {cell.assigned}, needs only {cell.required}."
            warnings.append(
                {
                    "type": status.value,
                    "severity": "warning",
                    "day": _day_label(day),
                    "group": cell.group_name,
                    "role": cell.role_name,
                    "segment": cell.segment,
                    "required": cell.required,
                    "assigned": cell.assigned,
                    "message": message,
                }
            )
    return warnings


def _build_validation_checklist(
    assignments: List[AssignmentRecord],
    *,
    issues: List[Dict[str, Any]],
    warnings: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Produce a concise, UI-friendly checklist:
    - `status`: ok|fail
    - `label`: human readable prompt
    - `details`: optional context for failures
    """
    checks: List[Dict[str, Any]] = []

    def summarize(items: List[Dict[str, Any]], *, limit: int = 5) -> str:
        parts = [str(entry.get("message") or "").strip() for entry in items[:limit]]
        parts = [part for part in parts if part]
        if len(items) > limit:
            parts.append(f"+{len(items) - limit} more")
        return "; ".join(parts)

    def add_check(label: str, ok: bool, *, details: str = "") -> None:
        checks.append(
            {
                "label": label,
                "status": "ok" if ok else "fail",
                "details": details if not ok else "",
            }
        )

    def of_type(items: List[Dict[str, Any]], type_name: str) -> List[Dict[str, Any]]:
        return [item for item in items if item.get("type") == type_name]

    add_check("Assignments scheduled?", bool(assignments), details="No assignments found.")
    for label, type_name in (
        ("Weekdays only?", "weekend_assignment"),
        ("Active crew only?", "inactive_person"),
        ("Roles match their segments?", "role_segment"),
        ("Availability respected?", "availability"),
        ("Time-off respected?", "time_off"),
    ):
        found = of_type(issues, type_name)
        add_check(label, not found, details=summarize(found))
    short = of_type(warnings, CoverageStatus.UNDERSTAFFED.value)
    add_check("Every role staffed?", not short, details=summarize(short))
    return checks
