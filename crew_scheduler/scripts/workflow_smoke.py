from __future__ import annotations

import argparse
import datetime
from typing import List, Tuple

from crew_scheduler.coverage import coverage_for_day
from crew_scheduler.database import (
    SessionLocal,
    add_person,
    init_database,
    list_people,
    upsert_monthly_default,
    upsert_monthly_default_day,
    upsert_needs_baseline,
)
from crew_scheduler.dates import parse_month, weekdays_in_month
from crew_scheduler.domain import WEEKDAY_FIELDS
from crew_scheduler.exporter import export_shifts_csv, rows_for, total_minutes
from crew_scheduler.monthly import apply_monthly_defaults
from crew_scheduler.policy import ensure_default_policy, load_active_policy, seed_catalog
from crew_scheduler.roles import find_role
from crew_scheduler.validation import validate_schedule

# (last, first, weekly availability Mon..Fri, [(segment, role, group)])
SAMPLE_CREW: List[Tuple[str, str, List[str], List[Tuple[str, str, str]]]] = [
    ("Avery", "Jordan", ["B", "B", "B", "B", "B"], [("AM", "Buffet", "Dining Room"), ("PM", "Feeder", "Machine Room")]),
    ("Blake", "Morgan", ["AM", "AM", "B", "AM", "AM"], [("Early", "Breakfast", "Dining Room"), ("AM", "Bakery", "Bakery")]),
    ("Casey", "Riley", ["B", "U", "B", "B", "PM"], [("Lunch", "Waiter", "Lunch"), ("PM", "Main Course", "Main Course")]),
    ("Drew", "Taylor", ["PM", "PM", "PM", "PM", "PM"], [("PM", "Veggie Room", "Veggie Room")]),
]

BASELINE_NEEDS: List[Tuple[str, str, str, int]] = [
    ("Buffet", "Dining Room", "AM", 1),
    ("Breakfast", "Dining Room", "Early", 1),
    ("Waiter", "Lunch", "Lunch", 2),
    ("Feeder", "Machine Room", "PM", 1),
]


def _default_month(today: datetime.date | None = None) -> str:
    base = today or datetime.date.today()
    return f"{base.year:04d}-{base.month:02d}"


def _seed_sample_crew(session, month: str) -> int:
    if list_people(session, only_active=False):
        return 0
    for last, first, weekly, defaults in SAMPLE_CREW:
        person = add_person(
            session,
            last,
            first,
            work_email=f"{first.lower()}.{last.lower()}@example.org",
            weekly=dict(zip(WEEKDAY_FIELDS, weekly)),
        )
        for segment, role_name, group_name in defaults:
            role = find_role(session, role_name, group_name)
            if role is None:
                raise SystemExit(f"Seed role {role_name!r} ({group_name}) is missing from the catalog.")
            upsert_monthly_default(session, month, person.id, segment, role.id)
    # Casey runs the Machine Room feeder on Wednesdays instead of Main Course.
    casey = next(person for person in list_people(session) if person.last_name == "Casey")
    feeder = find_role(session, "Feeder", "Machine Room")
    upsert_monthly_default_day(session, month, casey.id, 3, "PM", feeder.id)
    for role_name, group_name, segment, required in BASELINE_NEEDS:
        role = find_role(session, role_name, group_name)
        upsert_needs_baseline(session, role.group_id, role.id, segment, required)
    return len(SAMPLE_CREW)


def _print_coverage(session, day: datetime.date) -> None:
    for cell in coverage_for_day(session, day):
        if cell.required == 0 and cell.assigned == 0:
            continue
        print(
            f"[workflow] {day.isoformat()} {cell.segment:<6} {cell.group_name} / {cell.role_name}: "
            f"{cell.assigned}/{cell.required} ({cell.status.value})"
        )


def run_workflow(month: str, actor: str) -> None:
    ensure_default_policy(SessionLocal)
    with SessionLocal() as session:
        created = seed_catalog(session, load_active_policy(session))
        if any(created.values()):
            print(f"[workflow] Seeded catalog: {created}")
        seeded = _seed_sample_crew(session, month)
        if seeded:
            print(f"[workflow] Seeded {seeded} sample crew members with {month} defaults.")

        summary = apply_monthly_defaults(session, month, actor=actor)
        print(f"[workflow] Projected {summary['written']} assignments for {month}.")
        for reason, count in sorted(summary["skipped"].items()):
            print(f"[workflow][skipped] {reason}: {count}")

        days = weekdays_in_month(month)
        if not days:
            raise SystemExit(f"No weekdays found in {month}.")
        _print_coverage(session, days[0])

        report = validate_schedule(session, days[0], days[-1])
        for issue in report["issues"]:
            print(f"[workflow][validation-error] {issue['message']}")
        if report["issues"]:
            raise SystemExit(1)
        print(f"[workflow] Validation passed with {len(report['warnings'])} staffing warnings.")

        rows = rows_for(session, days[0], days[-1])
        path = export_shifts_csv(session, days[0], days[-1], actor=actor)
        print(f"[workflow] Exported {len(rows)} shift rows ({total_minutes(rows)} minutes) -> {path}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Run an end-to-end smoke test that seeds the catalog and a sample crew, "
            "projects monthly defaults, reports coverage, validates and exports shifts."
        )
    )
    parser.add_argument("--month", help="Month key (YYYY-MM). Defaults to the current month.")
    parser.add_argument("--actor", default="workflow_smoke", help="Audit trail actor name.")
    return parser.parse_args()


def main() -> None:
    init_database()
    args = parse_args()
    try:
        month = parse_month(args.month) if args.month else _default_month()
    except ValueError as exc:
        raise SystemExit(f"Invalid --month value: {exc}") from exc
    print(f"[workflow] Target month: {month}")
    run_workflow(month, actor=args.actor)


if __name__ == "__main__":
    main()
