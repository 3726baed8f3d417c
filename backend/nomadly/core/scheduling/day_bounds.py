"""
Day-bounds resolution: (local date, start, end, zone) -> absolute UTC window.
"""

from collections import namedtuple
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nomadly.core.errors import InvalidRangeError, InvalidTimeZoneError
from nomadly.core.scheduling.time_utils import parse_time, to_minutes, format_clock


class DayWindow(namedtuple("DayWindow", ["start_utc", "end_utc"])):
    """When a calendar day is open for scheduling, as UTC instants"""

    __slots__ = ()

    def __new__(cls, start_utc: datetime, end_utc: datetime):
        if end_utc <= start_utc:
            raise InvalidRangeError("Day window end must be after its start")
        return super().__new__(cls, start_utc, end_utc)

    # Shared interval vocabulary with FixedWindow / FreeSegment
    @property
    def start(self) -> datetime:
        return self.start_utc

    @property
    def end(self) -> datetime:
        return self.end_utc

    @property
    def minutes(self) -> int:
        return int((self.end_utc - self.start_utc).total_seconds() // 60)


def load_zone(time_zone: str) -> ZoneInfo:
    if not isinstance(time_zone, str) or not time_zone.strip():
        raise InvalidTimeZoneError(f"Unknown time zone: {time_zone!r}", field="time_zone")
    try:
        return ZoneInfo(time_zone.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimeZoneError(f"Unknown time zone: {time_zone!r}", field="time_zone") from e


def coerce_local_date(local_date: Union[date, datetime, str], zone: ZoneInfo) -> date:
    if isinstance(local_date, datetime):
        if local_date.tzinfo is not None:
            return local_date.astimezone(zone).date()
        return local_date.date()
    if isinstance(local_date, date):
        return local_date
    if isinstance(local_date, str):
        raw = local_date.strip()
        try:
            return date.fromisoformat(raw)
        except ValueError:
            pass
        try:
            return coerce_local_date(datetime.fromisoformat(raw.replace("Z", "+00:00")), zone)
        except ValueError:
            pass
    raise InvalidTimeZoneError(
        f"Cannot interpret {local_date!r} as a local date in {zone.key}", field="local_date"
    )


def resolve_day_bounds(
    local_date: Union[date, datetime, str],
    day_start_hhmm: str,
    day_end_hhmm: str,
    time_zone: str,
) -> DayWindow:
    """
    Resolve a trip day into the UTC window it is open for scheduling.

    Only same-day windows are supported; an end clock time that does not
    strictly follow the start is rejected rather than read as overnight.
    A wall time that occurs twice (DST fold) or not at all (DST gap) has two
    readings; the start takes the earlier one and the end the later one, so
    an ordered clock range always gives a non-empty window.
    """
    zone = load_zone(time_zone)
    day = coerce_local_date(local_date, zone)

    start = parse_time(day_start_hhmm)
    end = parse_time(day_end_hhmm)
    if to_minutes(end) <= to_minutes(start):
        raise InvalidRangeError(
            f"Day end {format_clock(end)} must be after day start {format_clock(start)}",
            field="day_end",
        )

    return DayWindow(local_clock_to_utc(day, start, zone), local_clock_to_utc(day, end, zone, latest=True))


def local_clock_to_utc(day: date, clock, zone: ZoneInfo, latest: bool = False) -> datetime:
    """Wall clock on a local date -> UTC, picking the earlier or later DST reading"""
    readings = [
        datetime.combine(day, time(clock.hour, clock.minute, fold=fold), tzinfo=zone).astimezone(timezone.utc)
        for fold in (0, 1)
    ]
    return max(readings) if latest else min(readings)


def as_utc(instant: datetime) -> datetime:
    """Attach UTC to naive instants (SQLite hands timestamps back naive)"""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_local_clock(instant: datetime, time_zone: str) -> str:
    """UTC instant -> 'HH:MM' in the given zone. Naive instants are read as UTC."""
    local = as_utc(instant).astimezone(load_zone(time_zone))
    return format_clock(local)


def trip_dates(start_date: date, end_date: date) -> List[date]:
    """Every local calendar date of a trip, both ends included"""
    if end_date <= start_date:
        raise InvalidRangeError("Trip end date must be after start date", field="end_date")
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days + 1)]
