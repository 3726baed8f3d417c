"""
Clock-time helpers: "HH:MM" strings <-> minute offsets.

Everything here is wall-clock only; no dates and no time zones. Day bounds
and absolute instants live in ``day_bounds``.
"""

import re
from collections import namedtuple
from datetime import date

from nomadly.core.errors import FormatError

# Same pattern the trip form accepts: single-digit hours are allowed
_HHMM_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_DAY = 24 * 60


class TimeOfDay(namedtuple("TimeOfDay", ["hour", "minute"])):
    """Immutable wall-clock time, 00:00 through 23:59"""

    __slots__ = ()

    def __new__(cls, hour: int, minute: int):
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
            raise FormatError(f"Hour out of range: {hour!r}")
        if isinstance(minute, bool) or not isinstance(minute, int) or not 0 <= minute <= 59:
            raise FormatError(f"Minute out of range: {minute!r}")
        return super().__new__(cls, hour, minute)

    def __str__(self) -> str:
        return format_clock(self)


class ClockReading(namedtuple("ClockReading", ["hour", "minute"])):
    """
    Result of ``from_minutes``. Unlike ``TimeOfDay`` the hour is not capped,
    so stacking durations past midnight shows up as ``hour >= 24``.
    """

    __slots__ = ()

    @property
    def overflows_day(self) -> bool:
        return self.hour >= 24

    def to_time_of_day(self) -> TimeOfDay:
        return TimeOfDay(self.hour, self.minute)


def parse_time(hhmm: str) -> TimeOfDay:
    """Parse "HH:MM" (or "H:MM") into a TimeOfDay"""
    if not isinstance(hhmm, str):
        raise FormatError(f"Invalid time format (HH:MM): {hhmm!r}")
    match = _HHMM_RE.match(hhmm.strip())
    if not match:
        raise FormatError(f"Invalid time format (HH:MM): {hhmm!r}")
    return TimeOfDay(int(match.group(1)), int(match.group(2)))


def to_minutes(t: TimeOfDay) -> int:
    return t.hour * 60 + t.minute


def from_minutes(total_minutes: int) -> ClockReading:
    if total_minutes < 0:
        raise FormatError(f"Minute offset cannot be negative: {total_minutes}")
    hour, minute = divmod(int(total_minutes), 60)
    return ClockReading(hour, minute)


def is_range_valid(start_hhmm: str, end_hhmm: str) -> bool:
    """True iff end is strictly after start on the same day"""
    return to_minutes(parse_time(end_hhmm)) > to_minutes(parse_time(start_hhmm))


def format_clock(t) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def format_time(hhmm: str) -> str:
    """'14:45' -> '2:45 PM'"""
    t = parse_time(hhmm)
    suffix = "PM" if t.hour >= 12 else "AM"
    display_hour = t.hour % 12 or 12
    return f"{display_hour}:{t.minute:02d} {suffix}"


def format_duration(minutes: int) -> str:
    """90 -> '1h 30m', 120 -> '2h', 45 -> '45m'"""
    hours, mins = divmod(max(0, int(minutes)), 60)
    if hours:
        return f"{hours}h {mins}m" if mins else f"{hours}h"
    return f"{mins}m"


def trip_length_days(start_date: date, end_date: date) -> int:
    """Inclusive number of days in a trip, 0 when the range is invalid"""
    if end_date <= start_date:
        return 0
    return (end_date - start_date).days + 1
