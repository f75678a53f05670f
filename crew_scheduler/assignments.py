"""Direct scheduling: legality checks and single assignment writes."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from crew_scheduler.availability import availability_for, segment_allowed
from crew_scheduler.database import (
    delete_assignment_row,
    get_assignment,
    get_availability_override,
    get_person,
    get_role,
    list_assignments,
    list_people,
    list_time_off,
    load_segment_catalog,
    normalize_segment_name,
    record_audit_log,
    upsert_assignment,
)
from crew_scheduler.dates import is_weekend, parse_date
from crew_scheduler.domain import AssignmentRecord
from crew_scheduler.intervals import blocked_by_time_off, clip_to_day
from crew_scheduler.policy import load_active_policy, time_off_exempt_segments
from crew_scheduler.segments import segment_windows_for_person


class AssignmentBlocked(ValueError):
    """Raised when a requested assignment breaks a scheduling rule."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class AssignmentCheck:
    allowed: bool
    reason: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason, "message": self.message}


ALLOWED = AssignmentCheck(allowed=True)


def _blocked(reason: str, message: str) -> AssignmentCheck:
    return AssignmentCheck(allowed=False, reason=reason, message=message)


def time_off_blocks(
    session,
    day: datetime.date,
    person_id: int,
    role_id: int,
    segment: str,
    *,
    exempt: frozenset = frozenset(),
) -> bool:
    """True when the candidate's resolved window overlaps any time-off that day."""
    if segment in exempt:
        return False
    offs = clip_to_day(list_time_off(session, person_id), day)
    if not offs:
        return False
    window = segment_windows_for_person(session, day, person_id, extra=(segment, role_id)).get(segment)
    if window is None:
        return False
    return blocked_by_time_off(window, offs)


def check_assignment(
    session,
    day,
    person_id: int,
    role_id: int,
    segment: str,
    *,
    ignore_assignment_id: Optional[int] = None,
) -> AssignmentCheck:
    """Decide whether ``person_id`` may work ``role_id`` in ``segment`` on ``day``."""
    day = parse_date(day)
    segment = normalize_segment_name(segment)
    if is_weekend(day):
        return _blocked("weekend", "Weekends are not scheduled. Pick a weekday.")
    person = get_person(session, person_id)
    if person is None:
        return _blocked("unknown_person", f"Person {person_id} was not found.")
    if not person.active:
        return _blocked("inactive_person", f"{person.name} is inactive.")
    role = get_role(session, role_id)
    if role is None:
        return _blocked("unknown_role", f"Role {role_id} was not found.")
    if segment not in load_segment_catalog(session):
        return _blocked("unknown_segment", f"Segment {segment!r} is not configured.")
    if not role.applies_to(segment):
        return _blocked("role_segment_mismatch", f"{role.name} is not scheduled in the {segment} segment.")
    avail = availability_for(person, day, get_availability_override(session, person_id, day))
    if not segment_allowed(segment, avail):
        return _blocked(
            "unavailable", f"{person.name} is not available for {segment} on {day.isoformat()} ({avail.value})."
        )
    exempt = time_off_exempt_segments(load_active_policy(session))
    if time_off_blocks(session, day, person_id, role_id, segment, exempt=exempt):
        return _blocked("time_off", "Time-off overlaps this segment.")
    existing = [
        row
        for row in list_assignments(session, day=day, person_id=person_id, segment=segment)
        if row.id != ignore_assignment_id
    ]
    if existing:
        return _blocked("already_assigned", f"{person.name} already works the {segment} segment that day.")
    return ALLOWED


def add_assignment(
    session,
    day,
    person_id: int,
    role_id: int,
    segment: str,
    *,
    actor: str = "system",
) -> AssignmentRecord:
    day = parse_date(day)
    segment = normalize_segment_name(segment)
    verdict = check_assignment(session, day, person_id, role_id, segment)
    if not verdict.allowed:
        raise AssignmentBlocked(verdict.reason, verdict.message)
    record = upsert_assignment(session, day, person_id, role_id, segment)
    record_audit_log(
        session,
        user_id=actor,
        action="ASSIGNMENT_CREATE",
        target_id=record.id,
        payload={"date": day.isoformat(), "person_id": person_id, "role_id": role_id, "segment": segment},
    )
    return record


def delete_assignment(session, assignment_id: int, *, actor: str = "system") -> bool:
    record = delete_assignment_row(session, assignment_id)
    if record is None:
        return False
    record_audit_log(
        session,
        user_id=actor,
        action="ASSIGNMENT_DELETE",
        target_id=assignment_id,
        payload={"date": record.date.isoformat(), "person_id": record.person_id, "role_id": record.role_id},
    )
    return True


def move_assignment(session, assignment_id: int, role_id: int, *, actor: str = "system") -> AssignmentRecord:
    """Move an existing assignment to another role in the same segment."""
    current = get_assignment(session, assignment_id)
    if current is None:
        raise ValueError(f"Assignment with id {assignment_id} was not found.")
    verdict = check_assignment(
        session,
        current.date,
        current.person_id,
        role_id,
        current.segment,
        ignore_assignment_id=assignment_id,
    )
    if not verdict.allowed:
        raise AssignmentBlocked(verdict.reason, verdict.message)
    record = upsert_assignment(session, current.date, current.person_id, role_id, current.segment)
    record_audit_log(
        session,
        user_id=actor,
        action="ASSIGNMENT_MOVE",
        target_id=record.id,
        payload={"from_role_id": current.role_id, "to_role_id": role_id, "date": current.date.isoformat()},
    )
    return record


def eligible_people(session, day, segment: str, *, role_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Active people who could be added to ``segment`` on ``day``.

    When ``role_id`` is given, people who never worked that role before
    ``day`` are flagged ``untrained``.
    """
    day = parse_date(day)
    segment = normalize_segment_name(segment)
    if is_weekend(day):
        return []
    exempt = time_off_exempt_segments(load_active_policy(session))
    trained = set()
    if role_id is not None:
        earlier = list_assignments(session, role_id=role_id, end=day - datetime.timedelta(days=1))
        trained = {row.person_id for row in earlier}
    options = []
    for person in list_people(session, only_active=True):
        avail = availability_for(person, day, get_availability_override(session, person.id, day))
        if not segment_allowed(segment, avail):
            continue
        if time_off_blocks(session, day, person.id, role_id or 0, segment, exempt=exempt):
            continue
        options.append(
            {
                "id": person.id,
                "name": person.name,
                "availability": avail.value,
                "untrained": role_id is not None and person.id not in trained,
            }
        )
    return options
