from __future__ import annotations

import copy
from typing import Any, Dict, List

from sqlalchemy import select

from crew_scheduler.database import (
    DEFAULT_TIMEZONE,
    Segment,
    SegmentAdjustment,
    add_adjustment_rule,
    add_segment,
    get_active_policy,
    upsert_policy,
)
from crew_scheduler.roles import seed_groups_and_roles


SEGMENT_DEFAULTS: List[Dict[str, Any]] = [
    {"name": "Early", "start": "06:20", "end": "07:20", "order": 0},
    {"name": "AM", "start": "08:00", "end": "12:00", "order": 1},
    {"name": "Lunch", "start": "11:00", "end": "13:00", "order": 2},
    {"name": "PM", "start": "13:00", "end": "17:00", "order": 3},
]

# Applied in this order; later entries see the boundaries earlier ones wrote.
ADJUSTMENT_DEFAULTS: List[Dict[str, Any]] = [
    {"condition": "Lunch", "target": "AM", "field": "end", "baseline": "condition.start", "offset": 0},
    {"condition": "Lunch", "target": "PM", "field": "start", "baseline": "condition.end", "offset": 60},
    {"condition": "Early", "target": "PM", "field": "end", "baseline": "target.end", "offset": -60},
]

EXPORT_DEFAULTS: Dict[str, Any] = {
    "unpaid_break_minutes": 0,
    "notes": "",
    "shared": "2. Not Shared",
    "date_format": "%m/%d/%Y",
    "time_format": "%H:%M",
}

PROJECTION_DEFAULTS: Dict[str, Any] = {
    "time_off_exempt_segments": ["Early"],
}

BASELINE_POLICY: Dict[str, Any] = {
    "name": "Default Crew Policy",
    "timezone": DEFAULT_TIMEZONE,
    "segments": SEGMENT_DEFAULTS,
    "adjustments": ADJUSTMENT_DEFAULTS,
    "export": EXPORT_DEFAULTS,
    "projection": PROJECTION_DEFAULTS,
}


def load_active_policy(conn) -> Dict:
    """Return the active policy payload as a dict, filled with defaults."""
    if conn is None:
        return _normalize_policy({})
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return _normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return _normalize_policy(policy.params_dict() if policy else {})


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _normalize_policy(policy: Dict) -> Dict:
    if not isinstance(policy, dict):
        policy = {}
    normalized = _deep_update(BASELINE_POLICY, policy)
    if not isinstance(normalized.get("timezone"), str) or not normalized["timezone"].strip():
        normalized["timezone"] = DEFAULT_TIMEZONE
    exempt = normalized["projection"].get("time_off_exempt_segments")
    if not isinstance(exempt, list):
        normalized["projection"]["time_off_exempt_segments"] = list(PROJECTION_DEFAULTS["time_off_exempt_segments"])
    return normalized


def export_settings(policy: Dict) -> Dict[str, Any]:
    payload = policy.get("export") if isinstance(policy, dict) else None
    return _deep_update(EXPORT_DEFAULTS, payload if isinstance(payload, dict) else {})


def time_off_exempt_segments(policy: Dict) -> frozenset:
    payload = policy.get("projection") if isinstance(policy, dict) else None
    if isinstance(payload, dict) and isinstance(payload.get("time_off_exempt_segments"), list):
        return frozenset(payload["time_off_exempt_segments"])
    return frozenset(PROJECTION_DEFAULTS["time_off_exempt_segments"])


def policy_timezone(policy: Dict) -> str:
    value = policy.get("timezone") if isinstance(policy, dict) else None
    return value if isinstance(value, str) and value.strip() else DEFAULT_TIMEZONE


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline policy exactly once."""
    with session_factory() as session:
        if get_active_policy(session):
            return
        spec = build_default_policy()
        name = spec.get("name", "Default Crew Policy")
        params = {key: value for key, value in spec.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")


def seed_catalog(session, policy: Dict | None = None) -> Dict[str, int]:
    """Fill empty segment, adjustment and role catalogs from the policy."""
    policy = _normalize_policy(policy or {})
    created = {"segments": 0, "adjustments": 0, "roles": 0}
    if session.scalar(select(Segment.id).limit(1)) is None:
        for entry in policy["segments"]:
            add_segment(session, entry["name"], entry["start"], entry["end"], sort_order=int(entry.get("order", 999)))
            created["segments"] += 1
    if session.scalar(select(SegmentAdjustment.id).limit(1)) is None:
        for entry in policy["adjustments"]:
            add_adjustment_rule(
                session,
                entry["condition"],
                entry["target"],
                entry["field"],
                entry["baseline"],
                int(entry.get("offset", 0)),
                condition_role_id=entry.get("condition_role_id"),
            )
            created["adjustments"] += 1
    created["roles"] = seed_groups_and_roles(session)
    return created
