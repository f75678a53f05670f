from __future__ import annotations

import datetime
from typing import Optional

from crew_scheduler.database import get_availability_override, get_person
from crew_scheduler.dates import is_weekend
from crew_scheduler.domain import (
    AM,
    EARLY,
    PM,
    Availability,
    AvailabilityOverrideRecord,
    PersonRecord,
)

MORNING_CODES = frozenset({Availability.AM_ONLY, Availability.BOTH})
AFTERNOON_CODES = frozenset({Availability.PM_ONLY, Availability.BOTH})
ANY_HALF_CODES = frozenset({Availability.AM_ONLY, Availability.PM_ONLY, Availability.BOTH})


def availability_for(
    person: PersonRecord,
    day: datetime.date,
    override: Optional[AvailabilityOverrideRecord] = None,
) -> Availability:
    """Date override if one exists for ``day``, otherwise the weekday default."""
    if is_weekend(day):
        raise ValueError(f"{day.isoformat()} is a weekend; weekends have no availability.")
    if override is not None and override.person_id == person.id and override.date == day:
        return override.avail
    return person.weekday_availability(day.weekday())


def segment_allowed(segment: str, avail: Availability) -> bool:
    # Lunch and any admin-added segment accept either half-day.
    if segment in (EARLY, AM):
        return avail in MORNING_CODES
    if segment == PM:
        return avail in AFTERNOON_CODES
    return avail in ANY_HALF_CODES


def effective_availability(session, person_id: int, day: datetime.date) -> Optional[Availability]:
    person = get_person(session, person_id)
    if person is None:
        return None
    return availability_for(person, day, get_availability_override(session, person_id, day))
