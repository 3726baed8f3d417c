from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.api.deps import get_owned_day, get_owned_trip, limiter, settings
from nomadly.api.itinerary import ItineraryService, trip_time_zone
from nomadly.api.schemas import (
    AgendaItemCreate,
    AgendaItemRead,
    FixedWindowCreate,
    FixedWindowRead,
    FreeSegmentRead,
    FreeTimeResponse,
    TripCreate,
    TripDayDetail,
    TripDayRead,
    TripDayUpdate,
    TripDetailRead,
    TripRead,
)
from nomadly.core.errors import InvalidRangeError
from nomadly.core.scheduling.day_bounds import as_utc, load_zone, resolve_day_bounds, trip_dates
from nomadly.core.scheduling.free_segments import FixedWindow, compute_free_segments, total_free_minutes
from nomadly.core.scheduling.time_utils import is_range_valid, trip_length_days
from nomadly.core.security import get_current_user
from nomadly.db import crud
from nomadly.db.models import Trip, TripDay, User
from nomadly.db.session import get_session

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("/", response_model=List[TripRead])
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_trips(
    request: Request,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await crud.get_user_trips(session, current_user.id)


@router.post("/", response_model=TripRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def create_trip(
    request: Request,
    payload: TripCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a trip with one day per local date, both ends inclusive"""
    if payload.dest_tz:
        load_zone(payload.dest_tz)
    if not is_range_valid(payload.day_start, payload.day_end):
        raise InvalidRangeError("day_end must be after day_start", field="day_end")

    if trip_length_days(payload.start_date, payload.end_date) > settings.MAX_TRIP_DAYS:
        raise InvalidRangeError(
            f"Trips are limited to {settings.MAX_TRIP_DAYS} days", field="end_date"
        )
    dates = trip_dates(payload.start_date, payload.end_date)

    trip = await crud.create_trip(session, current_user.id, payload.model_dump(), dates)
    logger.info("trip_created", trip_id=str(trip.id), days=len(dates))
    return trip


@router.get("/{trip_id}", response_model=TripDetailRead)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_trip(
    request: Request,
    trip: Trip = Depends(get_owned_trip),
    session: AsyncSession = Depends(get_session),
):
    days = await crud.get_trip_days(session, trip.id)
    day_ids = [day.id for day in days]
    windows = await crud.get_fixed_windows(session, day_ids)
    items = await crud.get_agenda_items(session, day_ids)

    detail = TripDetailRead.model_validate(trip)
    detail.days = [
        TripDayDetail(
            **TripDayRead.model_validate(day).model_dump(),
            fixed_windows=[FixedWindowRead.model_validate(w) for w in windows if w.day_id == day.id],
            items=[AgendaItemRead.model_validate(i) for i in items if i.day_id == day.id],
        )
        for day in days
    ]
    return detail


@router.get("/{trip_id}/days", response_model=List[TripDayRead])
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_trip_days(
    request: Request,
    trip: Trip = Depends(get_owned_trip),
    session: AsyncSession = Depends(get_session),
):
    return await crud.get_trip_days(session, trip.id)


@router.patch("/{trip_id}/days/{day_id}", response_model=TripDayRead)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def update_trip_day(
    request: Request,
    payload: TripDayUpdate,
    day: TripDay = Depends(get_owned_day),
    session: AsyncSession = Depends(get_session),
):
    """Set a day's city, area focus or theme; the next generation picks it up"""
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return day
    return await crud.update_trip_day(session, day, updates)


@router.post(
    "/{trip_id}/days/{day_id}/fixed-windows",
    response_model=FixedWindowRead,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def add_fixed_window(
    request: Request,
    payload: FixedWindowCreate,
    day: TripDay = Depends(get_owned_day),
    session: AsyncSession = Depends(get_session),
):
    start_at, end_at = as_utc(payload.start_at), as_utc(payload.end_at)
    if end_at <= start_at:
        raise InvalidRangeError("end_at must be after start_at", field="end_at")
    return await crud.create_fixed_window(
        session, day.id, payload.title, start_at, end_at, payload.location
    )


@router.get("/{trip_id}/days/{day_id}/free-segments", response_model=FreeTimeResponse)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_free_segments(
    request: Request,
    trip: Trip = Depends(get_owned_trip),
    day: TripDay = Depends(get_owned_day),
    session: AsyncSession = Depends(get_session),
):
    """Free time of a day: the day window minus its fixed windows"""
    bounds = resolve_day_bounds(day.date_local, trip.day_start, trip.day_end, trip_time_zone(trip))
    windows = [
        FixedWindow(as_utc(w.start_at), as_utc(w.end_at), w.title)
        for w in await crud.get_fixed_windows(session, [day.id])
    ]
    segments = compute_free_segments(bounds, windows)
    return FreeTimeResponse(
        day_id=day.id,
        day_start=bounds.start,
        day_end=bounds.end,
        segments=[FreeSegmentRead(start=s.start, end=s.end, minutes=s.minutes) for s in segments],
        free_minutes=total_free_minutes(segments),
    )


@router.post(
    "/{trip_id}/days/{day_id}/items",
    response_model=AgendaItemRead,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Overlaps an existing agenda item"}},
)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def add_agenda_item(
    request: Request,
    payload: AgendaItemCreate,
    trip: Trip = Depends(get_owned_trip),
    day: TripDay = Depends(get_owned_day),
    session: AsyncSession = Depends(get_session),
):
    item = await ItineraryService(session).add_agenda_item(trip, day, payload)
    logger.info("agenda_item_added", day_id=str(day.id), item_id=str(item.id))
    return item
