"""
Shared route dependencies: rate limiter, ownership checks, plan producer.
"""
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.core.scheduling.producer import HeuristicPlanProducer, PlanProducer
from nomadly.core.security import get_current_user
from nomadly.core.settings import Settings
from nomadly.db.crud import get_trip, get_trip_day
from nomadly.db.models import Trip, TripDay, User
from nomadly.db.session import get_session

settings = Settings()

limiter = Limiter(key_func=get_remote_address, enabled=settings.ENABLE_RATE_LIMITING)


async def get_owned_trip(
    trip_id: UUID,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Trip:
    """Trip of the caller; someone else's trip is reported as missing"""
    trip = await get_trip(session, trip_id)
    if not trip or trip.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    return trip


async def get_owned_day(
    day_id: UUID,
    trip: Trip = Depends(get_owned_trip),
    session: AsyncSession = Depends(get_session),
) -> TripDay:
    day = await get_trip_day(session, trip.id, day_id)
    if not day:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip day not found")
    return day


def get_plan_producer(request: Request) -> PlanProducer:
    producer = getattr(request.app.state, "plan_producer", None)
    if producer is None:
        producer = HeuristicPlanProducer()
        request.app.state.plan_producer = producer
    return producer
