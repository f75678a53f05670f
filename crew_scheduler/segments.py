"""Effective segment windows for one person on one day.

The nominal catalog times are folded through the adjustment rules in
ascending rule id. Every step returns a fresh mapping, so a rule that reads
a boundary written by an earlier rule sees the adjusted value and the last
rule to write a boundary wins.
"""

from __future__ import annotations

import datetime
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple, Union

from crew_scheduler.database import (
    list_adjustment_rules,
    list_assignments,
    load_segment_catalog,
)
from crew_scheduler.domain import AdjustmentRule, SegmentDef, Window

PresentSegments = Union[Mapping[str, Iterable[int]], Iterable[str]]


def _normalize_present(present: PresentSegments) -> Dict[str, Set[int]]:
    if isinstance(present, Mapping):
        return {name: set(roles or ()) for name, roles in present.items()}
    return {name: set() for name in present}


def _rule_fires(rule: AdjustmentRule, present: Dict[str, Set[int]]) -> bool:
    if rule.condition_segment not in present:
        return False
    if rule.condition_role_id is not None and rule.condition_role_id not in present[rule.condition_segment]:
        return False
    return True


def apply_rule(windows: Mapping[str, Window], rule: AdjustmentRule) -> Mapping[str, Window]:
    """Return a new mapping with ``rule`` applied; ``windows`` is left untouched."""
    target = windows.get(rule.target_segment)
    if target is None:
        return windows
    source = windows.get(rule.condition_segment) if rule.baseline.reads_condition else target
    if source is None:
        return windows
    value = source.get(rule.baseline.field) + datetime.timedelta(minutes=rule.offset_minutes)
    updated = dict(windows)
    updated[rule.target_segment] = target.with_field(rule.target_field, value)
    return MappingProxyType(updated)


def resolve_segment_windows(
    day: datetime.date,
    present: PresentSegments,
    catalog: Mapping[str, SegmentDef],
    rules: Iterable[AdjustmentRule],
) -> Dict[str, Window]:
    """Resolve the start/end of every segment the person works on ``day``.

    Args:
        day: Calendar date the windows belong to.
        present: Segments the person works that day, either as a mapping of
            segment name to the role ids held in it, or as plain names.
        catalog: Segment catalog keyed by name.
        rules: Adjustment rules; applied in ascending id order.

    Returns:
        Window per present segment. Segments missing from the catalog are
        left out rather than raising.
    """
    held = _normalize_present(present)
    windows: Mapping[str, Window] = MappingProxyType(
        {name: catalog[name].nominal_window(day) for name in held if name in catalog}
    )
    for rule in sorted(rules, key=lambda item: item.id):
        if _rule_fires(rule, held):
            windows = apply_rule(windows, rule)
    return dict(windows)


def present_segments_for_person(
    session,
    day: datetime.date,
    person_id: int,
    *,
    extra: Optional[Tuple[str, int]] = None,
) -> Dict[str, Set[int]]:
    present: Dict[str, Set[int]] = {}
    for assignment in list_assignments(session, day=day, person_id=person_id):
        present.setdefault(assignment.segment, set()).add(assignment.role_id)
    if extra is not None:
        segment, role_id = extra
        present.setdefault(segment, set()).add(role_id)
    return present


def segment_windows_for_person(
    session,
    day: datetime.date,
    person_id: int,
    *,
    extra: Optional[Tuple[str, int]] = None,
) -> Dict[str, Window]:
    """Resolve windows from the person's stored assignments plus an optional candidate."""
    present = present_segments_for_person(session, day, person_id, extra=extra)
    return resolve_segment_windows(day, present, load_segment_catalog(session), list_adjustment_rules(session))


def preview_rule(rule: AdjustmentRule, catalog: Mapping[str, SegmentDef]) -> Optional[Dict[str, int]]:
    """Before/after minutes for the target segment when only ``rule`` applies."""
    condition = catalog.get(rule.condition_segment)
    target = catalog.get(rule.target_segment)
    if condition is None or target is None:
        return None
    day = datetime.date(2000, 1, 3)
    windows = {
        condition.name: condition.nominal_window(day),
        target.name: target.nominal_window(day),
    }
    adjusted = apply_rule(windows, rule)[target.name]
    midnight = datetime.datetime.combine(day, datetime.time())
    return {
        "condition_start": condition.start,
        "condition_end": condition.end,
        "target_start": target.start,
        "target_end": target.end,
        "new_start": int((adjusted.start - midnight).total_seconds() // 60),
        "new_end": int((adjusted.end - midnight).total_seconds() // 60),
    }
