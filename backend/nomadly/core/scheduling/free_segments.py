"""
Free-time computation: day window minus fixed commitments.

Classic interval subtraction. Fixed windows come from users (flights,
bookings) and are normalised rather than rejected: a window whose end is not
after its start carries no time and is dropped, and anything outside the day
is clipped away.
"""

import logging
from collections import namedtuple
from datetime import datetime
from typing import Iterable, List, Optional

from nomadly.core.scheduling.day_bounds import DayWindow, as_utc

logger = logging.getLogger(__name__)


class FixedWindow(namedtuple("FixedWindow", ["start", "end", "title"])):
    """Immovable block of time (flight, booked tour, reservation)"""

    __slots__ = ()

    def __new__(cls, start: datetime, end: datetime, title: Optional[str] = None):
        return super().__new__(cls, start, end, title)

    @property
    def is_valid(self) -> bool:
        return self.end > self.start


class FreeSegment(namedtuple("FreeSegment", ["start", "end"])):
    """Unscheduled stretch of a day; always non-empty"""

    __slots__ = ()

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def can_hold(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def merge_windows(bounds: DayWindow, fixed_windows: Iterable[FixedWindow]) -> List[FixedWindow]:
    """
    Drop malformed windows, clip the rest to the day, and merge overlapping
    or touching ones into maximal runs sorted by start.
    """
    clipped = []
    for window in fixed_windows:
        start, end = as_utc(window.start), as_utc(window.end)
        if end <= start:
            logger.debug("Dropping malformed fixed window %r", window)
            continue
        start = max(start, bounds.start_utc)
        end = min(end, bounds.end_utc)
        if end <= start:
            continue
        clipped.append((start, end))

    clipped.sort()

    merged: List[FixedWindow] = []
    for start, end in clipped:
        if merged and start <= merged[-1].end:
            if end > merged[-1].end:
                merged[-1] = FixedWindow(merged[-1].start, end)
        else:
            merged.append(FixedWindow(start, end))
    return merged


def compute_free_segments(bounds: DayWindow, fixed_windows: Iterable[FixedWindow]) -> List[FreeSegment]:
    """
    Gaps of ``bounds`` not covered by any fixed window.

    The result is sorted, pairwise disjoint and non-empty, and together with
    ``merge_windows(bounds, fixed_windows)`` tiles the whole day exactly.
    """
    segments: List[FreeSegment] = []
    cursor = bounds.start_utc
    for window in merge_windows(bounds, fixed_windows):
        if window.start > cursor:
            segments.append(FreeSegment(cursor, window.start))
        cursor = window.end
    if cursor < bounds.end_utc:
        segments.append(FreeSegment(cursor, bounds.end_utc))
    return segments


def total_free_minutes(segments: Iterable[FreeSegment]) -> int:
    return sum(segment.minutes for segment in segments)
