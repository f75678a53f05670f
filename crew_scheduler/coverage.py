"""Required versus assigned headcount per (group, role, segment) on a day."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from crew_scheduler.assignments import check_assignment
from crew_scheduler.database import (
    count_assignments,
    get_needs_baseline,
    get_needs_override,
    get_person,
    list_assignments,
    list_groups,
    list_roles,
    load_segment_catalog,
    normalize_segment_name,
)
from crew_scheduler.dates import is_weekend, parse_date
from crew_scheduler.domain import CoverageStatus


@dataclass(frozen=True)
class CoverageCell:
    date: datetime.date
    segment: str
    group_id: int
    group_name: str
    role_id: int
    role_name: str
    required: int
    assigned: int

    @property
    def status(self) -> CoverageStatus:
        return coverage_status(self.assigned, self.required)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "segment": self.segment,
            "group_id": self.group_id,
            "group": self.group_name,
            "role_id": self.role_id,
            "role": self.role_name,
            "required": self.required,
            "assigned": self.assigned,
            "status": self.status.value,
        }


def required_for(session, day, group_id: int, role_id: int, segment: str) -> int:
    """Date override if present, else the baseline, else 0."""
    day = parse_date(day)
    segment = normalize_segment_name(segment)
    override = get_needs_override(session, day, group_id, role_id, segment)
    if override is not None:
        return override.required
    baseline = get_needs_baseline(session, group_id, role_id, segment)
    if baseline is not None:
        return baseline.required
    return 0


def assigned_count(session, day, role_id: int, segment: str) -> int:
    return count_assignments(session, parse_date(day), role_id, normalize_segment_name(segment))


def coverage_status(assigned: int, required: int) -> CoverageStatus:
    if assigned < required:
        return CoverageStatus.UNDERSTAFFED
    if assigned > required:
        return CoverageStatus.OVERSTAFFED
    return CoverageStatus.MET


def coverage_for_day(session, day, segment: Optional[str] = None) -> List[CoverageCell]:
    """One cell per role scheduled in each segment; weekends have no coverage."""
    day = parse_date(day)
    if is_weekend(day):
        return []
    catalog = load_segment_catalog(session)
    if segment is not None:
        segment = normalize_segment_name(segment)
        segments = [segment] if segment in catalog else []
    else:
        segments = list(catalog)
    groups = {group.id: group for group in list_groups(session)}
    cells: List[CoverageCell] = []
    for name in segments:
        for role in list_roles(session, segment=name):
            group = groups.get(role.group_id)
            cells.append(
                CoverageCell(
                    date=day,
                    segment=name,
                    group_id=role.group_id,
                    group_name=group.name if group else "",
                    role_id=role.id,
                    role_name=role.name,
                    required=required_for(session, day, role.group_id, role.id, name),
                    assigned=assigned_count(session, day, role.id, name),
                )
            )
    return cells


def move_suggestions(session, day, segment: str) -> List[Dict[str, Any]]:
    """Offer to move people out of overstaffed roles into understaffed ones.

    Each assignment in an overstaffed cell is paired with the first
    understaffed role of the same segment the person could legally take.
    Suggestions never exceed the open slots of a target role.
    """
    day = parse_date(day)
    segment = normalize_segment_name(segment)
    cells = coverage_for_day(session, day, segment)
    over = [cell for cell in cells if cell.status is CoverageStatus.OVERSTAFFED]
    open_slots = {
        cell.role_id: cell.required - cell.assigned
        for cell in cells
        if cell.status is CoverageStatus.UNDERSTAFFED
    }
    under = [cell for cell in cells if cell.role_id in open_slots]
    suggestions: List[Dict[str, Any]] = []
    for cell in over:
        surplus = cell.assigned - cell.required
        for assignment in list_assignments(session, day=day, role_id=cell.role_id, segment=segment):
            if surplus <= 0:
                break
            for target in under:
                if open_slots[target.role_id] <= 0:
                    continue
                verdict = check_assignment(
                    session,
                    day,
                    assignment.person_id,
                    target.role_id,
                    segment,
                    ignore_assignment_id=assignment.id,
                )
                if not verdict.allowed:
                    continue
                person = get_person(session, assignment.person_id)
                suggestions.append(
                    {
                        "assignment_id": assignment.id,
                        "person_id": assignment.person_id,
                        "person": person.name if person else "",
                        "from_role_id": cell.role_id,
                        "from_role": cell.role_name,
                        "to_role_id": target.role_id,
                        "to_role": target.role_name,
                        "to_group": target.group_name,
                    }
                )
                open_slots[target.role_id] -= 1
                surplus -= 1
                break
    return suggestions
