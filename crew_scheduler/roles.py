from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from sqlalchemy import select

from crew_scheduler.database import Group, Role, add_group, add_role
from crew_scheduler.domain import RoleRecord


GROUPS: Dict[str, Dict[str, str]] = {
    "Bakery": {"theme": "4. Purple", "color": "#e9d5ff"},
    "Lunch": {"theme": "11. DarkPink", "color": "#f9a8d4"},
    "Dining Room": {"theme": "12. DarkYellow", "color": "#fde68a"},
    "Veggie Room": {"theme": "3. Green", "color": "#bbf7d0"},
    "Machine Room": {"theme": "10. DarkPurple", "color": "#c4b5fd"},
    "Main Course": {"theme": "5. Pink", "color": "#fbcfe8"},
    "Prepack": {"theme": "9. DarkGreen", "color": "#a7f3d0"},
    "Office": {"theme": "12. DarkYellow", "color": "#fde68a"},
    "Receiving": {"theme": "8. DarkBlue", "color": "#bfdbfe"},
}

HALF_DAY = ["AM", "PM"]

# (code, name, group, segments)
ROLE_SEED: List[Tuple[str, str, str, List[str]]] = [
    ("DR", "Buffet", "Dining Room", HALF_DAY),
    ("DR", "Buffet Training", "Dining Room", HALF_DAY),
    ("DR", "Buffet Sup", "Dining Room", HALF_DAY),
    ("DR", "Pattern", "Dining Room", HALF_DAY),
    ("DR", "Pattern Supervisor", "Dining Room", HALF_DAY),
    ("DR", "Breakfast", "Dining Room", ["Early"]),
    ("MR", "MRC", "Machine Room", HALF_DAY),
    ("MR", "Feeder", "Machine Room", HALF_DAY),
    ("MR", "Silverware", "Machine Room", HALF_DAY),
    ("MR", "Cold End", "Machine Room", HALF_DAY),
    ("MR", "Hot End", "Machine Room", HALF_DAY),
    ("MC", "Main Course", "Main Course", HALF_DAY),
    ("MC", "Main Course Coordinator", "Main Course", HALF_DAY),
    ("VEG", "Veggie Room", "Veggie Room", HALF_DAY),
    ("VEG", "Veggie Room Coordinator", "Veggie Room", HALF_DAY),
    ("BKRY", "Bakery", "Bakery", HALF_DAY),
    ("BKRY", "Bakery Coordinator", "Bakery", HALF_DAY),
    ("RCVG", "Receiving", "Receiving", HALF_DAY),
    ("PP", "Prepack", "Prepack", HALF_DAY),
    ("PP", "Prepack Coordinator", "Prepack", HALF_DAY),
    ("OFF", "Office", "Office", HALF_DAY),
    ("L SUP", "Lunch Supervisor", "Lunch", ["Lunch"]),
    ("ATT SUP", "Attendant Supervisor", "Lunch", ["Lunch"]),
    ("CK-IN", "Guest Check-In", "Lunch", ["Lunch"]),
    ("ATT", "Attendant", "Lunch", ["Lunch"]),
    ("WAITER", "Waiter", "Lunch", ["Lunch"]),
    ("TL", "Tray Line", "Lunch", ["Lunch"]),
    ("TKO", "Take-Out Line", "Lunch", ["Lunch"]),
    # Lunch duties owned by kitchen groups still count as the Lunch segment.
    ("MC", "Consolidation Table", "Main Course", ["Lunch"]),
    ("VEG", "Consolidation Table", "Veggie Room", ["Lunch"]),
]


def normalize_role(role: str) -> str:
    return " ".join((role or "").split()).lower()


def seed_groups_and_roles(session) -> int:
    """Create the stock groups and roles when the role catalog is empty."""
    if session.scalar(select(Role.id).limit(1)) is not None:
        return 0
    group_ids: Dict[str, int] = {
        group.name: group.id for group in session.scalars(select(Group))
    }
    for name, details in GROUPS.items():
        if name not in group_ids:
            group_ids[name] = add_group(session, name, theme=details["theme"], color=details["color"]).id
    created = 0
    for code, name, group_name, segments in ROLE_SEED:
        add_role(session, group_ids[group_name], name, segments, code=code)
        created += 1
    return created


def find_role(session, name: str, group_name: Optional[str] = None) -> Optional[RoleRecord]:
    """Look a role up by name (case and spacing insensitive)."""
    wanted = normalize_role(name)
    group_wanted = normalize_role(group_name) if group_name else None
    stmt = select(Role).join(Group).order_by(Group.name.asc(), Role.id.asc())
    for role in session.scalars(stmt):
        if normalize_role(role.name) != wanted:
            continue
        if group_wanted and normalize_role(role.group.name) != group_wanted:
            continue
        return role.to_record()
    return None
