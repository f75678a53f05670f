from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from crew_scheduler.dates import parse_clock, parse_date, parse_month
from crew_scheduler.domain import (
    WEEKDAY_FIELDS,
    AdjustmentRule,
    AssignmentRecord,
    Availability,
    AvailabilityOverrideRecord,
    Baseline,
    GroupRecord,
    MonthlyDefaultDayRecord,
    MonthlyDefaultRecord,
    NeedsBaselineRecord,
    NeedsOverrideRecord,
    PersonRecord,
    RoleRecord,
    SegmentDef,
    TargetField,
    TimeOffRecord,
)


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
SCHEDULE_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'schedule.db').as_posix()}"
DEFAULT_TIMEZONE = "America/New_York"
LEGACY_SEGMENT_NAMES = {"early shift": "Early"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for every table living in schedule.db."""

    pass


class Segment(Base):
    __tablename__ = "segment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False, default="08:00")
    end_time: Mapped[str] = mapped_column(String(5), nullable=False, default="12:00")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=999)

    def to_record(self) -> SegmentDef:
        start = parse_clock(self.start_time)
        end = parse_clock(self.end_time)
        if end <= start:
            raise ValueError(f"Segment {self.name!r} ends before it starts.")
        return SegmentDef(name=self.name, start=start, end=end, order=int(self.sort_order or 0))


class Group(Base):
    __tablename__ = "grp"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    theme: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="")

    roles: Mapped[List["Role"]] = relationship(back_populates="group", cascade="all, delete-orphan")

    def to_record(self) -> GroupRecord:
        return GroupRecord(id=self.id, name=self.name, theme=self.theme or "", color=self.color or "")


class Role(Base):
    __tablename__ = "role"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    group_id: Mapped[int] = mapped_column(ForeignKey("grp.id", ondelete="CASCADE"), nullable=False)
    segments: Mapped[str] = mapped_column(String(255), nullable=False, default="[]")

    group: Mapped[Group] = relationship(back_populates="roles")

    __table_args__ = (UniqueConstraint("group_id", "name", name="uq_role_group_name"),)

    @property
    def segment_list(self) -> List[str]:
        try:
            value = json.loads(self.segments or "[]")
        except json.JSONDecodeError:
            raise ValueError(f"Role {self.name!r} has malformed segment list {self.segments!r}.") from None
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"Role {self.name!r} segment list must be a list of names.")
        return [normalize_segment_name(item) for item in value]

    @segment_list.setter
    def segment_list(self, segments: Iterable[str]) -> None:
        self.segments = json.dumps([normalize_segment_name(item) for item in segments])

    def to_record(self) -> RoleRecord:
        return RoleRecord(
            id=self.id,
            code=self.code or "",
            name=self.name,
            group_id=self.group_id,
            segments=frozenset(self.segment_list),
        )


class Person(Base):
    __tablename__ = "person"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    first_name: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    work_email: Mapped[str] = mapped_column(String(160), nullable=False, default="")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    avail_mon: Mapped[str] = mapped_column(String(2), nullable=False, default="U")
    avail_tue: Mapped[str] = mapped_column(String(2), nullable=False, default="U")
    avail_wed: Mapped[str] = mapped_column(String(2), nullable=False, default="U")
    avail_thu: Mapped[str] = mapped_column(String(2), nullable=False, default="U")
    avail_fri: Mapped[str] = mapped_column(String(2), nullable=False, default="U")

    def to_record(self) -> PersonRecord:
        weekly = tuple(Availability.parse(getattr(self, name)) for name in WEEKDAY_FIELDS)
        return PersonRecord(
            id=self.id,
            last_name=self.last_name or "",
            first_name=self.first_name or "",
            work_email=(self.work_email or "").strip().lower(),
            active=bool(self.active),
            weekly=weekly,
        )


class AvailabilityOverride(Base):
    __tablename__ = "availability_override"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    avail: Mapped[str] = mapped_column(String(2), nullable=False)

    __table_args__ = (UniqueConstraint("person_id", "date", name="uq_availability_override"),)

    def to_record(self) -> AvailabilityOverrideRecord:
        return AvailabilityOverrideRecord(
            person_id=self.person_id, date=self.date, avail=Availability.parse(self.avail)
        )


class TimeOff(Base):
    __tablename__ = "timeoff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id", ondelete="CASCADE"), nullable=False)
    start_ts: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    end_ts: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def to_record(self) -> TimeOffRecord:
        if self.end_ts < self.start_ts:
            raise ValueError(f"Time-off {self.id} ends before it starts.")
        return TimeOffRecord(
            person_id=self.person_id, start=self.start_ts, end=self.end_ts, reason=self.reason or ""
        )


class SegmentAdjustment(Base):
    __tablename__ = "segment_adjustment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    condition_segment: Mapped[str] = mapped_column(String(40), nullable=False)
    condition_role_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_segment: Mapped[str] = mapped_column(String(40), nullable=False)
    target_field: Mapped[str] = mapped_column(String(8), nullable=False)
    baseline: Mapped[str] = mapped_column(String(20), nullable=False)
    offset_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_record(self) -> AdjustmentRule:
        return AdjustmentRule(
            id=self.id,
            condition_segment=normalize_segment_name(self.condition_segment),
            condition_role_id=self.condition_role_id,
            target_segment=normalize_segment_name(self.target_segment),
            target_field=TargetField.parse(self.target_field),
            baseline=Baseline.parse(self.baseline),
            offset_minutes=int(self.offset_minutes or 0),
        )


class NeedsBaseline(Base):
    __tablename__ = "needs_baseline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, nullable=False)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False)
    segment: Mapped[str] = mapped_column(String(40), nullable=False)
    required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("group_id", "role_id", "segment", name="ux_needs_baseline"),)

    def to_record(self) -> NeedsBaselineRecord:
        return NeedsBaselineRecord(
            group_id=self.group_id, role_id=self.role_id, segment=self.segment, required=int(self.required)
        )


class NeedsOverride(Base):
    __tablename__ = "needs_override"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    group_id: Mapped[int] = mapped_column(Integer, nullable=False)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False)
    segment: Mapped[str] = mapped_column(String(40), nullable=False)
    required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("date", "group_id", "role_id", "segment", name="ux_needs_override"),
    )

    def to_record(self) -> NeedsOverrideRecord:
        return NeedsOverrideRecord(
            date=self.date,
            group_id=self.group_id,
            role_id=self.role_id,
            segment=self.segment,
            required=int(self.required),
        )


class Assignment(Base):
    __tablename__ = "assignment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id", ondelete="CASCADE"), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey("role.id", ondelete="CASCADE"), nullable=False)
    segment: Mapped[str] = mapped_column(String(40), nullable=False)

    __table_args__ = (UniqueConstraint("date", "person_id", "segment", name="ux_assignment_slot"),)

    def to_record(self) -> AssignmentRecord:
        return AssignmentRecord(
            id=self.id, date=self.date, person_id=self.person_id, role_id=self.role_id, segment=self.segment
        )


class MonthlyDefault(Base):
    __tablename__ = "monthly_default"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id", ondelete="CASCADE"), nullable=False)
    segment: Mapped[str] = mapped_column(String(40), nullable=False)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("month", "person_id", "segment", name="ux_monthly_default"),)

    def to_record(self) -> MonthlyDefaultRecord:
        return MonthlyDefaultRecord(
            month=parse_month(self.month), person_id=self.person_id, segment=self.segment, role_id=self.role_id
        )


class MonthlyDefaultDay(Base):
    __tablename__ = "monthly_default_day"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id", ondelete="CASCADE"), nullable=False)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = Monday
    segment: Mapped[str] = mapped_column(String(40), nullable=False)
    role_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("month", "person_id", "weekday", "segment", name="ux_monthly_default_day"),
    )

    def to_record(self) -> MonthlyDefaultDayRecord:
        if not 1 <= int(self.weekday) <= 5:
            raise ValueError(f"Monthly weekday override has weekday {self.weekday}; expected 1-5.")
        return MonthlyDefaultDayRecord(
            month=parse_month(self.month),
            person_id=self.person_id,
            weekday=int(self.weekday),
            segment=self.segment,
            role_id=self.role_id,
        )


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("name", name="uq_policies_name"),)

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Assignment")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


schedule_engine = create_engine(
    SCHEDULE_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=schedule_engine, expire_on_commit=False, future=True)


def init_database(engine=None) -> None:
    Base.metadata.create_all(engine or schedule_engine)


def normalize_segment_name(name: str) -> str:
    cleaned = (name or "").strip()
    return LEGACY_SEGMENT_NAMES.get(cleaned.lower(), cleaned)


def _require_segment(session, name: str) -> str:
    cleaned = normalize_segment_name(name)
    exists = session.scalar(select(Segment.id).where(Segment.name == cleaned))
    if exists is None:
        raise ValueError(f"Unknown segment {name!r}.")
    return cleaned


# ---------------------------------------------------------------------------
# Catalogs


def load_segment_catalog(session) -> Dict[str, SegmentDef]:
    """Return the segment catalog keyed by name, in display order."""
    stmt = select(Segment).order_by(Segment.sort_order.asc(), Segment.name.asc())
    return {row.name: row.to_record() for row in session.scalars(stmt)}


def add_segment(session, name: str, start: str, end: str, *, sort_order: int = 999) -> Segment:
    parse_clock(start)
    parse_clock(end)
    segment = Segment(name=normalize_segment_name(name), start_time=start, end_time=end, sort_order=sort_order)
    session.add(segment)
    session.commit()
    return segment


def list_adjustment_rules(session) -> List[AdjustmentRule]:
    """Adjustment rules in application order (ascending id)."""
    stmt = select(SegmentAdjustment).order_by(SegmentAdjustment.id.asc())
    return [row.to_record() for row in session.scalars(stmt)]


def add_adjustment_rule(
    session,
    condition_segment: str,
    target_segment: str,
    target_field: str,
    baseline: str,
    offset_minutes: int = 0,
    *,
    condition_role_id: Optional[int] = None,
) -> SegmentAdjustment:
    rule = SegmentAdjustment(
        condition_segment=_require_segment(session, condition_segment),
        condition_role_id=condition_role_id,
        target_segment=_require_segment(session, target_segment),
        target_field=TargetField.parse(target_field).value,
        baseline=Baseline.parse(baseline).value,
        offset_minutes=int(offset_minutes),
    )
    session.add(rule)
    session.commit()
    return rule


def add_group(session, name: str, *, theme: str = "", color: str = "") -> Group:
    group = Group(name=name.strip(), theme=theme, color=color)
    session.add(group)
    session.commit()
    return group


def list_groups(session) -> List[GroupRecord]:
    return [row.to_record() for row in session.scalars(select(Group).order_by(Group.name.asc()))]


def add_role(session, group_id: int, name: str, segments: Iterable[str], *, code: str = "") -> Role:
    role = Role(group_id=group_id, name=name.strip(), code=code.strip())
    role.segment_list = [_require_segment(session, segment) for segment in segments]
    session.add(role)
    session.commit()
    return role


def get_role(session, role_id: int) -> Optional[RoleRecord]:
    row = session.get(Role, role_id)
    return row.to_record() if row else None


def list_roles(session, segment: Optional[str] = None) -> List[RoleRecord]:
    stmt = select(Role).join(Group).order_by(Group.name.asc(), Role.name.asc())
    roles = [row.to_record() for row in session.scalars(stmt)]
    if segment is not None:
        roles = [role for role in roles if role.applies_to(segment)]
    return roles


def add_person(
    session,
    last_name: str,
    first_name: str = "",
    *,
    work_email: str = "",
    active: bool = True,
    weekly: Optional[Dict[str, str]] = None,
) -> Person:
    person = Person(
        last_name=last_name.strip(),
        first_name=first_name.strip(),
        work_email=work_email.strip().lower(),
        active=active,
    )
    for field_name, code in (weekly or {}).items():
        if field_name not in WEEKDAY_FIELDS:
            raise ValueError(f"Unknown weekday field {field_name!r}.")
        setattr(person, field_name, Availability.parse(code).value)
    session.add(person)
    session.commit()
    return person


def get_person(session, person_id: int) -> Optional[PersonRecord]:
    row = session.get(Person, person_id)
    return row.to_record() if row else None


def list_people(session, only_active: bool = True) -> List[PersonRecord]:
    stmt = select(Person)
    if only_active:
        stmt = stmt.where(Person.active.is_(True))
    stmt = stmt.order_by(Person.last_name.asc(), Person.first_name.asc())
    return [row.to_record() for row in session.scalars(stmt)]


# ---------------------------------------------------------------------------
# Availability and time off


def get_availability_override(session, person_id: int, day: datetime.date) -> Optional[AvailabilityOverrideRecord]:
    stmt = select(AvailabilityOverride).where(
        AvailabilityOverride.person_id == person_id,
        AvailabilityOverride.date == day,
    )
    row = session.scalars(stmt).first()
    return row.to_record() if row else None


def set_availability_override(session, person_id: int, day, avail: Optional[str]) -> None:
    """Store an override for one date; ``avail=None`` clears it."""
    day = parse_date(day)
    session.execute(
        delete(AvailabilityOverride).where(
            AvailabilityOverride.person_id == person_id,
            AvailabilityOverride.date == day,
        )
    )
    if avail is not None:
        session.add(AvailabilityOverride(person_id=person_id, date=day, avail=Availability.parse(avail).value))
    session.commit()


def _as_local_naive(value: datetime.datetime, timezone: str) -> datetime.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(timezone)).replace(tzinfo=None)


def add_time_off(
    session,
    person_id: int,
    start: datetime.datetime,
    end: datetime.datetime,
    reason: str = "",
    *,
    timezone: Optional[str] = None,
) -> TimeOff:
    """Store a time-off span as naive local time.

    Aware datetimes are converted to ``timezone``, or to the active policy's
    zone when none is given.
    """
    if not isinstance(start, datetime.datetime) or not isinstance(end, datetime.datetime):
        raise TypeError("Time-off start and end must be datetime instances.")
    if timezone is None:
        from crew_scheduler.policy import load_active_policy, policy_timezone  # late import to avoid circular deps

        timezone = policy_timezone(load_active_policy(session))
    start = _as_local_naive(start, timezone)
    end = _as_local_naive(end, timezone)
    if end <= start:
        raise ValueError("Time-off end must be after start.")
    row = TimeOff(person_id=person_id, start_ts=start, end_ts=end, reason=reason or "")
    session.add(row)
    session.commit()
    return row


def list_time_off(session, person_id: int) -> List[TimeOffRecord]:
    stmt = select(TimeOff).where(TimeOff.person_id == person_id).order_by(TimeOff.start_ts.asc())
    return [row.to_record() for row in session.scalars(stmt)]


# ---------------------------------------------------------------------------
# Needs


def get_needs_override(session, day: datetime.date, group_id: int, role_id: int, segment: str) -> Optional[NeedsOverrideRecord]:
    stmt = select(NeedsOverride).where(
        NeedsOverride.date == day,
        NeedsOverride.group_id == group_id,
        NeedsOverride.role_id == role_id,
        NeedsOverride.segment == segment,
    )
    row = session.scalars(stmt).first()
    return row.to_record() if row else None


def get_needs_baseline(session, group_id: int, role_id: int, segment: str) -> Optional[NeedsBaselineRecord]:
    stmt = select(NeedsBaseline).where(
        NeedsBaseline.group_id == group_id,
        NeedsBaseline.role_id == role_id,
        NeedsBaseline.segment == segment,
    )
    row = session.scalars(stmt).first()
    return row.to_record() if row else None


def _validate_required(required) -> int:
    value = int(required)
    if value < 0:
        raise ValueError("Required headcount cannot be negative.")
    return value


def upsert_needs_baseline(session, group_id: int, role_id: int, segment: str, required: int) -> None:
    segment = _require_segment(session, segment)
    required = _validate_required(required)
    stmt = select(NeedsBaseline).where(
        NeedsBaseline.group_id == group_id,
        NeedsBaseline.role_id == role_id,
        NeedsBaseline.segment == segment,
    )
    row = session.scalars(stmt).first()
    if row:
        row.required = required
    else:
        session.add(NeedsBaseline(group_id=group_id, role_id=role_id, segment=segment, required=required))
    session.commit()


def upsert_needs_override(session, day, group_id: int, role_id: int, segment: str, required: int) -> None:
    day = parse_date(day)
    segment = _require_segment(session, segment)
    required = _validate_required(required)
    stmt = select(NeedsOverride).where(
        NeedsOverride.date == day,
        NeedsOverride.group_id == group_id,
        NeedsOverride.role_id == role_id,
        NeedsOverride.segment == segment,
    )
    row = session.scalars(stmt).first()
    if row:
        row.required = required
    else:
        session.add(
            NeedsOverride(date=day, group_id=group_id, role_id=role_id, segment=segment, required=required)
        )
    session.commit()


# ---------------------------------------------------------------------------
# Assignments


def list_assignments(
    session,
    *,
    day: Optional[datetime.date] = None,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
    person_id: Optional[int] = None,
    role_id: Optional[int] = None,
    segment: Optional[str] = None,
) -> List[AssignmentRecord]:
    stmt = select(Assignment)
    if day is not None:
        stmt = stmt.where(Assignment.date == day)
    if start is not None:
        stmt = stmt.where(Assignment.date >= start)
    if end is not None:
        stmt = stmt.where(Assignment.date <= end)
    if person_id is not None:
        stmt = stmt.where(Assignment.person_id == person_id)
    if role_id is not None:
        stmt = stmt.where(Assignment.role_id == role_id)
    if segment is not None:
        stmt = stmt.where(Assignment.segment == segment)
    stmt = stmt.order_by(Assignment.date.asc(), Assignment.person_id.asc(), Assignment.id.asc())
    return [row.to_record() for row in session.scalars(stmt)]


def get_assignment(session, assignment_id: int) -> Optional[AssignmentRecord]:
    row = session.get(Assignment, assignment_id)
    return row.to_record() if row else None


def count_assignments(session, day: datetime.date, role_id: int, segment: str) -> int:
    stmt = select(func.count(Assignment.id)).where(
        Assignment.date == day,
        Assignment.role_id == role_id,
        Assignment.segment == segment,
    )
    return int(session.scalar(stmt) or 0)


def upsert_assignment(
    session,
    day: datetime.date,
    person_id: int,
    role_id: int,
    segment: str,
    *,
    commit: bool = True,
) -> AssignmentRecord:
    """Write the assignment for (day, person, segment), replacing any existing role."""
    segment = _require_segment(session, segment)
    stmt = select(Assignment).where(
        Assignment.date == day,
        Assignment.person_id == person_id,
        Assignment.segment == segment,
    )
    row = session.scalars(stmt).first()
    if row:
        row.role_id = role_id
    else:
        row = Assignment(date=day, person_id=person_id, role_id=role_id, segment=segment)
        session.add(row)
    session.flush()
    if commit:
        session.commit()
    return row.to_record()


def delete_assignment_row(session, assignment_id: int, *, commit: bool = True) -> Optional[AssignmentRecord]:
    row = session.get(Assignment, assignment_id)
    if not row:
        return None
    record = row.to_record()
    session.delete(row)
    session.flush()
    if commit:
        session.commit()
    return record


# ---------------------------------------------------------------------------
# Monthly templates


def list_monthly_defaults(session, month: str) -> List[MonthlyDefaultRecord]:
    key = parse_month(month)
    stmt = select(MonthlyDefault).where(MonthlyDefault.month == key).order_by(MonthlyDefault.id.asc())
    return [row.to_record() for row in session.scalars(stmt)]


def list_monthly_default_days(session, month: str) -> List[MonthlyDefaultDayRecord]:
    key = parse_month(month)
    stmt = select(MonthlyDefaultDay).where(MonthlyDefaultDay.month == key).order_by(MonthlyDefaultDay.id.asc())
    return [row.to_record() for row in session.scalars(stmt)]


def upsert_monthly_default(
    session, month: str, person_id: int, segment: str, role_id: Optional[int], *, commit: bool = True
) -> None:
    """Set the monthly role for (person, segment); ``role_id=None`` removes it."""
    key = parse_month(month)
    segment = _require_segment(session, segment)
    stmt = select(MonthlyDefault).where(
        MonthlyDefault.month == key,
        MonthlyDefault.person_id == person_id,
        MonthlyDefault.segment == segment,
    )
    row = session.scalars(stmt).first()
    if role_id is None:
        if row:
            session.delete(row)
    elif row:
        row.role_id = role_id
    else:
        session.add(MonthlyDefault(month=key, person_id=person_id, segment=segment, role_id=role_id))
    if commit:
        session.commit()


def upsert_monthly_default_day(
    session,
    month: str,
    person_id: int,
    weekday: int,
    segment: str,
    role_id: Optional[int],
    *,
    commit: bool = True,
) -> None:
    """Set the weekday-specific role (weekday 1 = Monday .. 5 = Friday)."""
    key = parse_month(month)
    if not 1 <= int(weekday) <= 5:
        raise ValueError("Weekday overrides only exist for Monday (1) through Friday (5).")
    segment = _require_segment(session, segment)
    stmt = select(MonthlyDefaultDay).where(
        MonthlyDefaultDay.month == key,
        MonthlyDefaultDay.person_id == person_id,
        MonthlyDefaultDay.weekday == int(weekday),
        MonthlyDefaultDay.segment == segment,
    )
    row = session.scalars(stmt).first()
    if role_id is None:
        if row:
            session.delete(row)
    elif row:
        row.role_id = role_id
    else:
        session.add(
            MonthlyDefaultDay(
                month=key, person_id=person_id, weekday=int(weekday), segment=segment, role_id=role_id
            )
        )
    if commit:
        session.commit()


def copy_monthly_defaults(session, from_month: str, to_month: str) -> int:
    """Copy every monthly and weekday template entry into another month."""
    copied = 0
    for entry in list_monthly_defaults(session, from_month):
        upsert_monthly_default(session, to_month, entry.person_id, entry.segment, entry.role_id, commit=False)
        copied += 1
    for entry in list_monthly_default_days(session, from_month):
        upsert_monthly_default_day(
            session, to_month, entry.person_id, entry.weekday, entry.segment, entry.role_id, commit=False
        )
        copied += 1
    session.commit()
    return copied


# ---------------------------------------------------------------------------
# Policy and audit


def get_policies(session) -> List[Policy]:
    stmt = select(Policy).order_by(Policy.name.asc(), Policy.id.asc())
    return list(session.scalars(stmt))


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing: Optional[Policy] = session.execute(select(Policy).where(Policy.name == name)).scalars().first()
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    policy = Policy(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Assignment",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log
