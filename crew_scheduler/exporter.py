from __future__ import annotations

import csv
import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set

from crew_scheduler.database import (
    list_adjustment_rules,
    list_assignments,
    list_groups,
    list_people,
    list_roles,
    list_time_off,
    load_segment_catalog,
    record_audit_log,
)
from crew_scheduler.dates import parse_date, weekdays_between
from crew_scheduler.domain import ShiftRow, Window
from crew_scheduler.intervals import clip_to_day, subtract_intervals
from crew_scheduler.policy import export_settings, load_active_policy
from crew_scheduler.segments import resolve_segment_windows


DATA_DIR = Path(__file__).resolve().parent / "data" / "exports"

SHIFT_COLUMNS = [
    "Member",
    "Work Email",
    "Group",
    "Start Date",
    "Start Time",
    "End Date",
    "End Time",
    "Theme Color",
    "Custom Label",
    "Unpaid Break (minutes)",
    "Notes",
    "Shared",
]


def rows_for(session, start, end) -> List[ShiftRow]:
    """Materialize one row per contiguous worked interval between two dates.

    Weekend dates are skipped. Windows come from each person's full set of
    segments that day, then that day's time-off is cut out of them. An
    assignment whose window is fully consumed yields no row at all.
    """
    start = parse_date(start)
    end = parse_date(end)
    catalog = load_segment_catalog(session)
    rules = list_adjustment_rules(session)
    people = {person.id: person for person in list_people(session, only_active=False)}
    roles = {role.id: role for role in list_roles(session)}
    groups = {group.id: group for group in list_groups(session)}

    rows: List[ShiftRow] = []
    for day in weekdays_between(start, end):
        assignments = list_assignments(session, day=day)
        present: Dict[int, Dict[str, Set[int]]] = {}
        for assignment in assignments:
            present.setdefault(assignment.person_id, {}).setdefault(assignment.segment, set()).add(
                assignment.role_id
            )
        windows = {
            person_id: resolve_segment_windows(day, segments, catalog, rules)
            for person_id, segments in present.items()
        }
        offs: Dict[int, List[Window]] = {}
        for assignment in assignments:
            window = windows[assignment.person_id].get(assignment.segment)
            person = people.get(assignment.person_id)
            role = roles.get(assignment.role_id)
            if window is None or person is None or role is None:
                continue
            group = groups.get(role.group_id)
            if assignment.person_id not in offs:
                offs[assignment.person_id] = clip_to_day(list_time_off(session, assignment.person_id), day)
            for piece in subtract_intervals(window, offs[assignment.person_id]):
                rows.append(
                    ShiftRow(
                        person_id=person.id,
                        member=person.name,
                        work_email=person.work_email,
                        date=day,
                        start=piece.start,
                        end=piece.end,
                        segment=assignment.segment,
                        role_id=role.id,
                        role_name=role.name,
                        role_code=role.code,
                        group_id=role.group_id,
                        group_name=group.name if group else "",
                        theme=group.theme if group else "",
                    )
                )
    return rows


def shift_csv_record(row: ShiftRow, settings: Dict) -> Dict[str, object]:
    date_format = settings["date_format"]
    time_format = settings["time_format"]
    return {
        "Member": row.member,
        "Work Email": row.work_email,
        "Group": row.group_name,
        "Start Date": row.start.strftime(date_format),
        "Start Time": row.start.strftime(time_format),
        "End Date": row.end.strftime(date_format),
        "End Time": row.end.strftime(time_format),
        "Theme Color": row.theme,
        "Custom Label": row.role_name,
        "Unpaid Break (minutes)": settings["unpaid_break_minutes"],
        "Notes": settings["notes"],
        "Shared": settings["shared"],
    }


def export_shifts_csv(session, start, end, path: Optional[Path] = None, *, actor: str = "system") -> Path:
    """Write the shift rows for ``start``..``end`` as a Teams-style CSV and return its path."""
    start = parse_date(start)
    end = parse_date(end)
    rows = rows_for(session, start, end)
    settings = export_settings(load_active_policy(session))
    if path is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        path = DATA_DIR / f"teams-shifts-export_{start.isoformat()}_{end.isoformat()}.csv"
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=SHIFT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(shift_csv_record(row, settings))
    record_audit_log(
        session,
        user_id=actor,
        action="SHIFTS_EXPORT",
        target_type="Export",
        payload={"start": start.isoformat(), "end": end.isoformat(), "rows": len(rows), "path": str(path)},
    )
    return path


def rows_as_dicts(rows: List[ShiftRow]) -> List[Dict[str, object]]:
    return [row.to_dict() for row in rows]


def total_minutes(rows: List[ShiftRow], *, day: Optional[datetime.date] = None) -> int:
    return sum(row.window.minutes for row in rows if day is None or row.date == day)
