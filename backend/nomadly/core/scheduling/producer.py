"""
Day-plan producers.

A producer proposes an ordered list of visits for one day. Its output is
treated as untrusted and always goes through ``validate_plan``. The app keeps
the active producer on ``app.state.plan_producer`` so a model-backed one can
be swapped in without touching the routes.
"""

import logging
from collections import namedtuple
from typing import Any, Dict, List, Protocol, Sequence

from nomadly.core.scheduling.candidates import CandidatePOI
from nomadly.core.scheduling.free_segments import FixedWindow

logger = logging.getLogger(__name__)

DEFAULT_VISIT_MINUTES = 60
DEFAULT_MEAL_MINUTES = 75
MAX_MEALS_PER_DAY = 2

MEAL_TAGS = {"restaurant", "food", "cafe", "coffee", "bakery", "street_food", "dessert", "bar"}

DayPlanContext = namedtuple(
    "DayPlanContext",
    ["destination", "day_number", "interests", "budget", "travel_style", "max_items"],
    defaults=((), None, None, 6),
)


class PlanProducer(Protocol):
    def propose_day(
        self,
        context: DayPlanContext,
        candidates: Sequence[CandidatePOI],
        fixed_windows: Sequence[FixedWindow],
    ) -> Dict[str, Any]:
        ...


def is_meal_poi(poi: CandidatePOI) -> bool:
    return any(str(tag).lower() in MEAL_TAGS for tag in poi.tags or ())


class HeuristicPlanProducer:
    """
    Deterministic stand-in for a recommender.

    Candidates matching more of the traveller's interests go first (stable,
    so catalog order breaks ties), at most two meals a day, durations taken
    from the POI estimate.
    """

    def propose_day(
        self,
        context: DayPlanContext,
        candidates: Sequence[CandidatePOI],
        fixed_windows: Sequence[FixedWindow] = (),
    ) -> Dict[str, Any]:
        interests = {str(i).lower() for i in context.interests or ()}

        def interest_score(poi: CandidatePOI) -> int:
            return -sum(1 for tag in poi.tags or () if str(tag).lower() in interests)

        ranked = sorted(candidates, key=interest_score)

        items: List[Dict[str, Any]] = []
        meals = 0
        for poi in ranked:
            if len(items) >= context.max_items:
                break
            meal = is_meal_poi(poi)
            if meal:
                if meals >= MAX_MEALS_PER_DAY:
                    continue
                meals += 1
            default = DEFAULT_MEAL_MINUTES if meal else DEFAULT_VISIT_MINUTES
            items.append({
                "poiId": poi.id,
                "durationMinutes": poi.estimated_duration or default,
                "isMeal": meal,
                "notes": f"Visit {poi.name}",
            })

        logger.debug("Heuristic plan for day %s: %d items", context.day_number, len(items))
        return {
            "items": items,
            "reasoning": (
                f"Picked {len(items)} stops in {context.destination or 'the area'} "
                f"for day {context.day_number}, favouring your interests."
            ),
        }
