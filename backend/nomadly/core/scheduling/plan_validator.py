"""
Boundary between the untrusted plan producer and the rest of the system.

A producer (a language model, or anything else non-deterministic) returns a
``RawPlan``. Nothing in it is trusted. ``validate_plan`` is the only way to
turn it into a ``ValidatedPlan``, and it never raises: a malformed plan just
comes out shorter, possibly empty.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 20
MAX_DURATION_MINUTES = 240
DEFAULT_MAX_ITEMS = 6
DEFAULT_REASONING = "No reasoning provided"

_FALSE_STRINGS = {"", "0", "false", "no", "off", "none", "null"}


class RawPlan:
    """Whatever the producer handed back, unexamined"""

    __slots__ = ("payload",)

    def __init__(self, payload: Any):
        self.payload = payload

    @property
    def items(self) -> Any:
        if isinstance(self.payload, Mapping):
            return self.payload.get("items")
        if isinstance(self.payload, (list, tuple)):
            return self.payload
        return getattr(self.payload, "items", None)

    @property
    def reasoning(self) -> Any:
        if isinstance(self.payload, Mapping):
            return self.payload.get("reasoning")
        return getattr(self.payload, "reasoning", None)


class ValidatedItem(BaseModel):
    poi_id: str
    duration_minutes: int = Field(..., ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    is_meal: bool = False
    notes: Optional[str] = None

    model_config = {"frozen": True}


class ValidatedPlan(BaseModel):
    items: List[ValidatedItem] = Field(default_factory=list)
    reasoning: str = DEFAULT_REASONING

    @property
    def poi_ids(self) -> List[str]:
        return [item.poi_id for item in self.items]


def _field(entry: Any, *names: str) -> Any:
    for name in names:
        if isinstance(entry, Mapping):
            if name in entry:
                return entry[name]
        elif hasattr(entry, name):
            return getattr(entry, name)
    return None


def _normalise_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value).strip()
    if isinstance(value, UUID):
        return str(value)
    return None


def clamp_duration(value: Any, low: int = MIN_DURATION_MINUTES, high: int = MAX_DURATION_MINUTES) -> int:
    """Force any value into [low, high]; unreadable values become ``low``"""
    try:
        minutes = float(value)
    except OverflowError:
        # integers too large for a float
        try:
            return high if value > 0 else low
        except TypeError:
            return low
    except (TypeError, ValueError):
        return low
    if math.isnan(minutes):
        return low
    if math.isinf(minutes):
        return high if minutes > 0 else low
    return int(max(low, min(high, round(minutes))))


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    try:
        return bool(value)
    except Exception:
        # objects with a broken __bool__ / __len__
        return False


def validate_plan(
    raw: Any,
    valid_poi_ids: Iterable[Any],
    max_items: int = DEFAULT_MAX_ITEMS,
) -> ValidatedPlan:
    """
    Normalise an untrusted plan.

    1. keep only the first ``max_items`` entries
    2. drop entries whose POI id is not in ``valid_poi_ids``
    3. clamp durations into [20, 240] minutes
    4. coerce ``isMeal`` to a strict bool
    5. keep the relative order of what survives
    """
    if not isinstance(raw, RawPlan):
        raw = RawPlan(raw)

    valid_ids = {str(poi_id) for poi_id in valid_poi_ids}
    try:
        cap = max(0, int(max_items))
    except (TypeError, ValueError):
        cap = DEFAULT_MAX_ITEMS

    entries = raw.items
    if not isinstance(entries, (list, tuple)):
        entries = []

    items: List[ValidatedItem] = []
    dropped = 0
    for entry in entries[:cap]:
        poi_id = _normalise_id(_field(entry, "poiId", "poi_id"))
        if poi_id is None or poi_id not in valid_ids:
            dropped += 1
            continue
        notes = _field(entry, "notes", "note")
        items.append(
            ValidatedItem(
                poi_id=poi_id,
                duration_minutes=clamp_duration(_field(entry, "durationMinutes", "duration_minutes")),
                is_meal=coerce_bool(_field(entry, "isMeal", "is_meal")),
                notes=notes if isinstance(notes, str) and notes.strip() else None,
            )
        )

    if len(entries) > cap or dropped:
        logger.debug(
            "Normalised producer plan: %d entries in, %d truncated, %d unknown POIs dropped",
            len(entries), max(0, len(entries) - cap), dropped,
        )

    reasoning = raw.reasoning
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = DEFAULT_REASONING
    return ValidatedPlan(items=items, reasoning=reasoning)
