"""
Candidate selection: narrow the POI catalog to what one trip day may use.
"""

from collections import namedtuple
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Set


class PoiMode(str, Enum):
    LOCATION_AWARE = "location_aware"
    ACTIVITY_FOCUSED = "activity_focused"


CandidatePOI = namedtuple(
    "CandidatePOI",
    [
        "id",
        "name",
        "district",
        "tags",
        "mode",
        "estimated_duration",  # minutes, optional
        "city",
    ],
    defaults=(None, (), PoiMode.LOCATION_AWARE, None, None),
)

# Minimal views of the trip / day rows; ORM rows with the same attributes work too
TripContext = namedtuple("TripContext", ["city"], defaults=(None,))
DayContext = namedtuple("DayContext", ["area_focus"], defaults=((),))


def to_candidate(poi) -> CandidatePOI:
    """Build a CandidatePOI from any POI-like object (e.g. a ``Poi`` row)"""
    mode = getattr(poi, "mode", None) or PoiMode.LOCATION_AWARE
    return CandidatePOI(
        id=str(poi.id),
        name=poi.name,
        district=getattr(poi, "district", None),
        tags=tuple(getattr(poi, "tags", None) or ()),
        mode=PoiMode(mode),
        estimated_duration=getattr(poi, "estimated_duration", None),
        city=getattr(poi, "city", None),
    )


def _matches_trip(poi: CandidatePOI, city: Optional[str]) -> bool:
    if city:
        return poi.city == city
    return PoiMode(poi.mode) == PoiMode.ACTIVITY_FOCUSED


def select_candidates(all_pois: Iterable[CandidatePOI], trip, day=None) -> List[CandidatePOI]:
    """
    POIs eligible for a trip day.

    With a trip city, candidates are the POIs in that city; without one, the
    activity-focused POIs. A day's area focus only re-orders: POIs in a focus
    district come first, each group sorted by name. With no focus the
    catalog's own order is kept. ``all_pois`` is never mutated.
    """
    city = getattr(trip, "city", None)
    candidates = [poi for poi in all_pois if _matches_trip(poi, city)]

    area_focus = set(getattr(day, "area_focus", None) or ()) if day is not None else set()
    if not area_focus:
        return candidates

    return sorted(
        candidates,
        key=lambda poi: (0 if poi.district in area_focus else 1, poi.name or ""),
    )


def limit_candidates(
    candidates: Sequence[CandidatePOI],
    used_ids: Set[str],
    limit: int = 40,
) -> List[CandidatePOI]:
    """
    Prefer POIs the trip has not used yet. Only when every candidate has
    already been scheduled is the full pool offered again.
    """
    unused = [poi for poi in candidates if poi.id not in used_ids]
    pool = unused if unused else list(candidates)
    return pool[:limit]
