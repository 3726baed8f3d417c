"""
Scheduling error taxonomy.

Each error carries the HTTP status the route layer should answer with, so a
single exception handler in ``nomadly.main`` can translate all of them.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for caller-visible scheduling failures"""

    status_code: int = 400

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": type(self).__name__, "detail": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class FormatError(SchedulingError):
    """Malformed clock time or date string"""


class InvalidRangeError(SchedulingError):
    """End does not strictly follow start (day window or trip dates)"""


class InvalidTimeZoneError(SchedulingError):
    """Unknown IANA zone, or a local date that cannot be read in it"""


class ConflictError(SchedulingError):
    """A new agenda item overlaps one already scheduled on the same day"""

    status_code = 409
