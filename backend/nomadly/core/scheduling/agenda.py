"""
Agenda layout and conflict detection.

``materialize_day`` turns a validated plan into concrete start/end instants.
It stacks visits from the day start with a fixed buffer between them; when
the free segments of the day are supplied, each visit is additionally pushed
past fixed commitments into the next segment that can hold it, and visits
that fit nowhere are left out.

Persisting the drafts (delete + insert, one transaction per regeneration)
is the job of ``ItineraryService``; this module stays free of I/O.
"""

import logging
from collections import namedtuple
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Union

from nomadly.core.errors import ConflictError
from nomadly.core.scheduling.candidates import PoiMode
from nomadly.core.scheduling.day_bounds import as_utc, coerce_local_date, load_zone, local_clock_to_utc
from nomadly.core.scheduling.free_segments import FreeSegment
from nomadly.core.scheduling.plan_validator import ValidatedPlan
from nomadly.core.scheduling.time_utils import from_minutes, parse_time, to_minutes

logger = logging.getLogger(__name__)

VISIT_BUFFER_MINUTES = 30

AgendaDraft = namedtuple(
    "AgendaDraft",
    ["day_id", "poi_id", "start_at", "end_at", "mode", "locked", "is_meal", "note"],
    defaults=(False, False, None),
)


def _day_start_utc(day_start_hhmm: str, anchor_date: Union[date, datetime, str], time_zone: str) -> datetime:
    zone = load_zone(time_zone)
    day = coerce_local_date(anchor_date, zone)
    return local_clock_to_utc(day, parse_time(day_start_hhmm), zone)


def _place_in_segments(
    cursor: datetime,
    duration: timedelta,
    segments: Sequence[FreeSegment],
    first: int,
):
    """First (index, start) from segment ``first`` on that holds the visit whole"""
    for index in range(first, len(segments)):
        segment = segments[index]
        start = max(cursor, segment.start)
        if start + duration <= segment.end:
            return index, start
    return None


def materialize_day(
    day_id,
    plan: ValidatedPlan,
    day_start_hhmm: str,
    anchor_date: Union[date, datetime, str],
    *,
    time_zone: str = "UTC",
    mode: PoiMode = PoiMode.LOCATION_AWARE,
    buffer_minutes: int = VISIT_BUFFER_MINUTES,
    segments: Optional[Sequence[FreeSegment]] = None,
) -> List[AgendaDraft]:
    """
    Lay a validated plan out on a calendar day.

    Without ``segments``::

        start[i] = day_start + sum(duration[j] + buffer for j < i)
        end[i]   = start[i] + duration[i]

    and the stack stops at the first visit that would reach midnight.

    With ``segments`` the same cursor walk is used, but a visit that would
    run into a fixed window starts at the next free segment instead.
    """
    if not isinstance(plan, ValidatedPlan):
        raise TypeError("materialize_day only accepts a ValidatedPlan; run validate_plan first")

    buffer = timedelta(minutes=buffer_minutes)
    day_start = _day_start_utc(day_start_hhmm, anchor_date, time_zone)
    day_start_minutes = to_minutes(parse_time(day_start_hhmm))
    cursor = day_start
    ordered_segments = sorted(segments, key=lambda s: s.start) if segments is not None else None
    segment_index = 0

    drafts: List[AgendaDraft] = []
    for item in plan.items:
        duration = timedelta(minutes=item.duration_minutes)

        if ordered_segments is None:
            start = cursor
        else:
            placement = _place_in_segments(cursor, duration, ordered_segments, segment_index)
            if placement is None:
                logger.debug("No free time left for POI %s on day %s", item.poi_id, day_id)
                continue
            segment_index, start = placement

        end = start + duration
        if ordered_segments is None:
            elapsed = int((end - day_start).total_seconds() // 60)
            if from_minutes(day_start_minutes + elapsed).overflows_day:
                logger.debug("Stack for day %s reaches midnight at POI %s", day_id, item.poi_id)
                break
        drafts.append(
            AgendaDraft(
                day_id=day_id,
                poi_id=item.poi_id,
                start_at=start,
                end_at=end,
                mode=PoiMode(mode),
                locked=False,
                is_meal=item.is_meal,
                note=item.notes,
            )
        )
        cursor = end + buffer

    return drafts


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap: touching intervals do not conflict"""
    return as_utc(a_start) < as_utc(b_end) and as_utc(a_end) > as_utc(b_start)


def _bounds(interval):
    if isinstance(interval, tuple) and not hasattr(interval, "start_at"):
        return interval[0], interval[1]
    return interval.start_at, interval.end_at


def detect_conflicts(day_id, proposed, existing_items: Iterable) -> bool:
    """
    True when ``proposed`` (a ``(start, end)`` pair or anything with
    ``start_at`` / ``end_at``) overlaps an existing item of the same day.
    """
    new_start, new_end = _bounds(proposed)
    for item in existing_items:
        if str(item.day_id) != str(day_id):
            continue
        if intervals_overlap(new_start, new_end, item.start_at, item.end_at):
            return True
    return False


def ensure_no_conflict(day_id, proposed, existing_items: Iterable) -> None:
    if detect_conflicts(day_id, proposed, existing_items):
        raise ConflictError("Time conflict with an existing agenda item", field="start_at")
