from __future__ import annotations

import datetime
from typing import Iterable, List

from crew_scheduler.dates import day_start
from crew_scheduler.domain import TimeOffRecord, Window


def overlaps(first: Window, second: Window) -> bool:
    """True when the two spans share time; touching endpoints do not count."""
    return max(first.start, second.start) < min(first.end, second.end)


def subtract_intervals(window: Window, offs: Iterable[Window]) -> List[Window]:
    """Return the parts of ``window`` not covered by any of ``offs``.

    Each time-off span splits every working piece it overlaps into at most
    two pieces (before and after the overlap). Empty pieces are dropped, so a
    fully covered window yields an empty list.
    """
    pieces = [window]
    for off in offs:
        remaining: List[Window] = []
        for piece in pieces:
            if off.end <= piece.start or off.start >= piece.end:
                remaining.append(piece)
                continue
            if off.start > piece.start:
                remaining.append(Window(start=piece.start, end=min(off.start, piece.end)))
            if off.end < piece.end:
                remaining.append(Window(start=max(off.end, piece.start), end=piece.end))
        pieces = [piece for piece in remaining if not piece.is_empty]
    return [piece for piece in pieces if not piece.is_empty]


def clip_to_day(offs: Iterable[TimeOffRecord], day: datetime.date) -> List[Window]:
    """Time-off touching ``day``, clipped to that day's midnight-to-midnight span."""
    start = day_start(day)
    end = start + datetime.timedelta(days=1)
    clipped = []
    for off in offs:
        if off.end <= start or off.start >= end:
            continue
        clipped.append(Window(start=max(off.start, start), end=min(off.end, end)))
    return clipped


def blocked_by_time_off(window: Window, offs: Iterable[Window]) -> bool:
    return any(overlaps(window, off) for off in offs)
