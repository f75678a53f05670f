"""Typed records for the scheduling core.

Rows read from the record store are converted into these frozen records
before any resolver sees them, so the resolvers never deal with loosely
shaped rows.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional

EARLY = "Early"
AM = "AM"
LUNCH = "Lunch"
PM = "PM"

WEEKDAY_FIELDS = ("avail_mon", "avail_tue", "avail_wed", "avail_thu", "avail_fri")


class Availability(Enum):
    """Half-day availability code for a person on a weekday."""

    UNAVAILABLE = "U"
    AM_ONLY = "AM"
    PM_ONLY = "PM"
    BOTH = "B"

    @classmethod
    def parse(cls, value) -> "Availability":
        if isinstance(value, cls):
            return value
        token = (value or "").strip().upper() if isinstance(value, str) else value
        for member in cls:
            if member.value == token:
                return member
        raise ValueError(f"Unknown availability code {value!r}; expected one of U, AM, PM, B.")


class TargetField(Enum):
    START = "start"
    END = "end"

    @classmethod
    def parse(cls, value) -> "TargetField":
        try:
            return cls(value if isinstance(value, cls) else str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown target field {value!r}; expected 'start' or 'end'.") from None


class Baseline(Enum):
    """Which current boundary an adjustment rule measures its offset from."""

    CONDITION_START = "condition.start"
    CONDITION_END = "condition.end"
    TARGET_START = "target.start"
    TARGET_END = "target.end"

    @classmethod
    def parse(cls, value) -> "Baseline":
        try:
            return cls(value if isinstance(value, cls) else str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown baseline {value!r}; expected condition.start, condition.end, target.start or target.end."
            ) from None

    @property
    def reads_condition(self) -> bool:
        return self in (Baseline.CONDITION_START, Baseline.CONDITION_END)

    @property
    def field(self) -> TargetField:
        if self in (Baseline.CONDITION_START, Baseline.TARGET_START):
            return TargetField.START
        return TargetField.END


class CoverageStatus(Enum):
    UNDERSTAFFED = "understaffed"
    MET = "met"
    OVERSTAFFED = "overstaffed"


@dataclass(frozen=True)
class Window:
    """A half-open ``[start, end)`` span of wall-clock time."""

    start: datetime.datetime
    end: datetime.datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def with_field(self, target: TargetField, value: datetime.datetime) -> "Window":
        if target is TargetField.START:
            return Window(start=value, end=self.end)
        return Window(start=self.start, end=value)

    def get(self, target: TargetField) -> datetime.datetime:
        return self.start if target is TargetField.START else self.end


@dataclass(frozen=True)
class SegmentDef:
    """Catalog entry for a named segment of the working day.

    Attributes:
        name: Segment name, e.g. ``"AM"``.
        start: Nominal start as minutes after midnight.
        end: Nominal end as minutes after midnight.
        order: Display/sort key.
    """

    name: str
    start: int
    end: int
    order: int = 0

    def nominal_window(self, day: datetime.date) -> Window:
        midnight = datetime.datetime.combine(day, datetime.time())
        return Window(
            start=midnight + datetime.timedelta(minutes=self.start),
            end=midnight + datetime.timedelta(minutes=self.end),
        )


@dataclass(frozen=True)
class GroupRecord:
    id: int
    name: str
    theme: str = ""
    color: str = ""


@dataclass(frozen=True)
class RoleRecord:
    id: int
    code: str
    name: str
    group_id: int
    segments: FrozenSet[str] = field(default_factory=frozenset)

    def applies_to(self, segment: str) -> bool:
        return segment in self.segments


@dataclass(frozen=True)
class PersonRecord:
    id: int
    last_name: str
    first_name: str
    work_email: str = ""
    active: bool = True
    weekly: tuple = (Availability.UNAVAILABLE,) * 5

    @property
    def name(self) -> str:
        if self.first_name:
            return f"{self.last_name}, {self.first_name}"
        return self.last_name

    def weekday_availability(self, weekday_index: int) -> Availability:
        """Availability for ``weekday_index`` (0 = Monday .. 4 = Friday)."""
        return self.weekly[weekday_index]


@dataclass(frozen=True)
class AvailabilityOverrideRecord:
    person_id: int
    date: datetime.date
    avail: Availability


@dataclass(frozen=True)
class TimeOffRecord:
    person_id: int
    start: datetime.datetime
    end: datetime.datetime
    reason: str = ""

    @property
    def window(self) -> Window:
        return Window(start=self.start, end=self.end)


@dataclass(frozen=True)
class AdjustmentRule:
    """Shift ``target_segment``'s boundary when ``condition_segment`` is worked.

    The new value is ``baseline + offset_minutes``. ``condition_role_id``
    narrows the rule to people holding that role in the condition segment.
    """

    id: int
    condition_segment: str
    target_segment: str
    target_field: TargetField
    baseline: Baseline
    offset_minutes: int = 0
    condition_role_id: Optional[int] = None


@dataclass(frozen=True)
class NeedsBaselineRecord:
    group_id: int
    role_id: int
    segment: str
    required: int


@dataclass(frozen=True)
class NeedsOverrideRecord:
    date: datetime.date
    group_id: int
    role_id: int
    segment: str
    required: int


@dataclass(frozen=True)
class AssignmentRecord:
    id: int
    date: datetime.date
    person_id: int
    role_id: int
    segment: str


@dataclass(frozen=True)
class MonthlyDefaultRecord:
    month: str
    person_id: int
    segment: str
    role_id: int


@dataclass(frozen=True)
class MonthlyDefaultDayRecord:
    month: str
    person_id: int
    weekday: int  # 1 = Monday .. 5 = Friday
    segment: str
    role_id: int


@dataclass(frozen=True)
class ShiftRow:
    """One contiguous worked interval, ready for export."""

    person_id: int
    member: str
    work_email: str
    date: datetime.date
    start: datetime.datetime
    end: datetime.datetime
    segment: str
    role_id: int
    role_name: str
    role_code: str
    group_id: int
    group_name: str
    theme: str = ""

    @property
    def window(self) -> Window:
        return Window(start=self.start, end=self.end)

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "member": self.member,
            "work_email": self.work_email,
            "date": self.date.isoformat(),
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "segment": self.segment,
            "role_id": self.role_id,
            "role": self.role_name,
            "role_code": self.role_code,
            "group_id": self.group_id,
            "group": self.group_name,
            "theme": self.theme,
        }
