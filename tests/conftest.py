from __future__ import annotations

import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crew_scheduler.database import Base, add_person
from crew_scheduler.policy import seed_catalog
from crew_scheduler.roles import find_role

# June 2024: the 3rd is a Monday, the 1st and 2nd fall on a weekend.
MONDAY = datetime.date(2024, 6, 3)
TUESDAY = datetime.date(2024, 6, 4)
WEDNESDAY = datetime.date(2024, 6, 5)
SATURDAY = datetime.date(2024, 6, 8)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def session(session_factory):
    with session_factory() as session:
        seed_catalog(session)
        yield session


@pytest.fixture()
def roles(session):
    """Seeded roles used across tests, keyed by a short name."""
    return {
        "buffet": find_role(session, "Buffet", "Dining Room"),
        "pattern": find_role(session, "Pattern", "Dining Room"),
        "breakfast": find_role(session, "Breakfast", "Dining Room"),
        "feeder": find_role(session, "Feeder", "Machine Room"),
        "hot_end": find_role(session, "Hot End", "Machine Room"),
        "waiter": find_role(session, "Waiter", "Lunch"),
    }


def make_person(session, last_name: str, weekly="B", *, first_name: str = "Pat", active: bool = True):
    """Create a person; ``weekly`` is one code for every weekday or a list of five."""
    codes = [weekly] * 5 if isinstance(weekly, str) else list(weekly)
    fields = ("avail_mon", "avail_tue", "avail_wed", "avail_thu", "avail_fri")
    return add_person(
        session,
        last_name,
        first_name,
        work_email=f"{last_name.lower()}@example.org",
        active=active,
        weekly=dict(zip(fields, codes)),
    )


def at(day: datetime.date, clock: str) -> datetime.datetime:
    hour, minute = (int(part) for part in clock.split(":"))
    return datetime.datetime.combine(day, datetime.time(hour, minute))
