import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Set

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.api.deps import get_owned_trip, get_plan_producer, limiter
from nomadly.api.schemas import (
    AgendaItemCreate,
    GenerateRequest,
    GenerateResponse,
    GeneratedDay,
    ItineraryDayView,
    ItineraryItemView,
    ItineraryView,
)
from nomadly.core.errors import InvalidRangeError, SchedulingError
from nomadly.core.scheduling.agenda import ensure_no_conflict, materialize_day
from nomadly.core.scheduling.candidates import (
    DayContext,
    PoiMode,
    TripContext,
    limit_candidates,
    select_candidates,
    to_candidate,
)
from nomadly.core.scheduling.day_bounds import as_utc, resolve_day_bounds, to_local_clock
from nomadly.core.scheduling.free_segments import FixedWindow, compute_free_segments
from nomadly.core.scheduling.plan_validator import RawPlan, ValidatedPlan, validate_plan
from nomadly.core.scheduling.producer import DayPlanContext, PlanProducer
from nomadly.core.scheduling.time_utils import format_duration, format_time
from nomadly.core.settings import PACE_MAX_ITEMS, Settings
from nomadly.db import crud
from nomadly.db.models import AgendaItem, Trip, TripDay
from nomadly.db.session import get_session

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["itinerary"])

settings = Settings()

EMPTY_ITINERARY_REASONING = "No itinerary items found for this trip."


@asynccontextmanager
async def performance_timer(operation: str):
    """Context manager for timing operations"""
    start = time.time()
    try:
        yield
    finally:
        duration = time.time() - start
        logger.info(f"{operation} completed in {duration:.2f}s")


def trip_time_zone(trip: Trip) -> str:
    return trip.dest_tz or settings.DEFAULT_TIMEZONE


def max_items_for(trip: Trip) -> int:
    pace = getattr(trip.pace, "value", trip.pace)
    return min(PACE_MAX_ITEMS.get(pace, settings.MAX_ITEMS_PER_DAY), settings.MAX_ITEMS_PER_DAY)


class ItineraryService:
    """Regenerates, extends and renders the agenda of a trip"""

    def __init__(self, session: AsyncSession, app_settings: Optional[Settings] = None):
        self.session = session
        self.settings = app_settings or settings

    async def _fixed_windows_by_day(self, days: List[TripDay]) -> Dict[str, List[FixedWindow]]:
        grouped: Dict[str, List[FixedWindow]] = defaultdict(list)
        for window in await crud.get_fixed_windows(self.session, [day.id for day in days]):
            grouped[str(window.day_id)].append(
                FixedWindow(as_utc(window.start_at), as_utc(window.end_at), window.title)
            )
        return grouped

    async def _propose(
        self,
        producer: PlanProducer,
        context: DayPlanContext,
        candidates,
        fixed_windows,
    ) -> ValidatedPlan:
        try:
            raw = await run_in_threadpool(producer.propose_day, context, candidates, fixed_windows)
        except Exception as e:
            logger.warning(f"Plan producer failed for day {context.day_number}, leaving it empty: {e}")
            raw = {"items": [], "reasoning": None}
        return validate_plan(RawPlan(raw), [poi.id for poi in candidates], max_items=context.max_items)

    async def regenerate_trip(
        self,
        trip: Trip,
        producer: PlanProducer,
        request: Optional[GenerateRequest] = None,
    ) -> GenerateResponse:
        """
        Replace every agenda item of the trip with a freshly generated plan.

        All deletes and inserts share one transaction: on any failure the
        previous agenda is left untouched.
        """
        request = request or GenerateRequest()
        time_zone = trip_time_zone(trip)
        max_items = max_items_for(trip)
        if request.poi_mode is not None:
            mode = request.poi_mode
        else:
            mode = PoiMode.LOCATION_AWARE if trip.city else PoiMode.ACTIVITY_FOCUSED
        interests = tuple(request.interests if request.interests is not None else trip.interests or ())
        budget = request.budget or getattr(trip.budget, "value", trip.budget)

        try:
            await crud.lock_trip(self.session, trip.id)
            days = await crud.get_trip_days(self.session, trip.id)
            windows_by_day = await self._fixed_windows_by_day(days)
            catalog = [to_candidate(poi) for poi in await crud.get_pois(self.session, city=trip.city)]

            removed = await crud.delete_agenda_items(self.session, [day.id for day in days])

            used_ids: Set[str] = set()
            generated: List[GeneratedDay] = []
            total = 0
            for day_number, day in enumerate(days, start=1):
                bounds = resolve_day_bounds(day.date_local, trip.day_start, trip.day_end, time_zone)
                fixed = windows_by_day.get(str(day.id), [])
                segments = compute_free_segments(bounds, fixed)

                candidates = select_candidates(
                    catalog,
                    TripContext(city=trip.city),
                    DayContext(area_focus=day.area_focus or []),
                )
                candidates = limit_candidates(candidates, used_ids, self.settings.CANDIDATE_POOL_LIMIT)

                context = DayPlanContext(
                    destination=day.city or trip.city,
                    day_number=day_number,
                    interests=interests,
                    budget=budget,
                    travel_style=request.travel_style,
                    max_items=max_items,
                )
                plan = await self._propose(producer, context, candidates, fixed)

                drafts = materialize_day(
                    day.id,
                    plan,
                    trip.day_start,
                    day.date_local,
                    time_zone=time_zone,
                    mode=mode,
                    buffer_minutes=self.settings.VISIT_BUFFER_MINUTES,
                    segments=segments,
                )
                placed = []
                for draft in drafts:
                    ensure_no_conflict(day.id, draft, placed)
                    placed.append(draft)
                crud.add_agenda_items(self.session, placed)

                used_ids.update(str(draft.poi_id) for draft in placed)
                total += len(placed)
                generated.append(
                    GeneratedDay(
                        day_id=day.id,
                        date_local=day.date_local,
                        item_count=len(placed),
                        reasoning=plan.reasoning,
                    )
                )

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(f"Regenerated trip {trip.id}: {total} items over {len(generated)} days, {removed} removed")
        return GenerateResponse(trip_id=trip.id, days=generated, total_items=total, removed_items=removed)

    async def add_agenda_item(self, trip: Trip, day: TripDay, payload: AgendaItemCreate) -> AgendaItem:
        """Insert one item, refusing anything that overlaps the day's agenda"""
        start_at = as_utc(payload.start_at)
        end_at = as_utc(payload.end_at)
        if end_at <= start_at:
            raise InvalidRangeError("end_at must be after start_at", field="end_at")

        if not await crud.get_poi(self.session, payload.poi_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="POI not found")

        try:
            await crud.lock_trip_day(self.session, day.id)
            existing = await crud.get_agenda_items(self.session, [day.id])
            ensure_no_conflict(day.id, (start_at, end_at), existing)

            item = AgendaItem(
                day_id=day.id,
                poi_id=payload.poi_id,
                start_at=start_at,
                end_at=end_at,
                mode=payload.mode,
                locked=payload.locked,
                note=payload.note,
            )
            self.session.add(item)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(item)
        logger.info(f"Added agenda item {item.id} to day {day.id}")
        return item

    async def build_itinerary_view(self, trip: Trip) -> ItineraryView:
        days = await crud.get_trip_days(self.session, trip.id)
        if not days:
            return ItineraryView(days=[], reasoning=EMPTY_ITINERARY_REASONING)

        time_zone = trip_time_zone(trip)
        items = await crud.get_agenda_items(self.session, [day.id for day in days])
        pois = {}
        for poi_id in {item.poi_id for item in items}:
            pois[poi_id] = await crud.get_poi(self.session, poi_id)

        items_by_day: Dict[str, List[AgendaItem]] = defaultdict(list)
        for item in items:
            items_by_day[str(item.day_id)].append(item)

        views = []
        for day in days:
            day_items = []
            for item in items_by_day.get(str(day.id), []):
                poi = pois.get(item.poi_id)
                name = poi.name if poi else "Unknown place"
                notes = item.note or f"Visit {name}"
                if poi and poi.iconic and "(Iconic location)" not in notes:
                    notes += " (Iconic location)"
                start_at, end_at = as_utc(item.start_at), as_utc(item.end_at)
                minutes = round((end_at - start_at).total_seconds() / 60)
                start_time = to_local_clock(start_at, time_zone)
                end_time = to_local_clock(end_at, time_zone)
                day_items.append(
                    ItineraryItemView(
                        poi_id=item.poi_id,
                        poi_name=name,
                        duration_minutes=minutes,
                        duration_label=format_duration(minutes),
                        is_meal=bool(item.is_meal or (poi and poi.cuisine)),
                        notes=notes,
                        start_time=start_time,
                        end_time=end_time,
                        display_time=f"{format_time(start_time)} - {format_time(end_time)}",
                    )
                )
            views.append(ItineraryDayView(id=day.id, date_local=day.date_local, items=day_items))

        return ItineraryView(
            days=views,
            reasoning=(
                f"Your personalized itinerary for {len(days)} days, planned around "
                f"your preferences and the local attractions."
            ),
        )


@router.post("/{trip_id}/generate",
    response_model=GenerateResponse,
    responses={
        404: {"description": "Trip not found"},
        409: {"description": "Generated plan conflicts with the existing agenda"},
        429: {"description": "Rate limit exceeded"},
    },
    summary="Regenerate the agenda of every trip day",
)
@limiter.limit(settings.RATE_LIMIT_GENERATE)
async def generate_trip_agenda(
    request: Request,
    payload: Optional[GenerateRequest] = None,
    trip: Trip = Depends(get_owned_trip),
    producer: PlanProducer = Depends(get_plan_producer),
    session: AsyncSession = Depends(get_session),
):
    trip_id = trip.id
    async with performance_timer("agenda_generation"):
        try:
            service = ItineraryService(session)
            return await service.regenerate_trip(trip, producer, payload)
        except (HTTPException, SchedulingError):
            raise
        except Exception as e:
            logger.error(f"Unexpected error generating agenda for trip {trip_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate itinerary")


@router.get("/{trip_id}/itinerary", response_model=ItineraryView)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_trip_itinerary(
    request: Request,
    trip: Trip = Depends(get_owned_trip),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ItineraryService(session).build_itinerary_view(trip)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch itinerary for trip {trip.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch itinerary")
