"""
Async CRUD helpers over the trip / POI / agenda tables
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, delete, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.core.scheduling.agenda import AgendaDraft
from nomadly.db.models import User, Trip, TripDay, Poi, DayFixedWindow, AgendaItem

logger = logging.getLogger(__name__)

# ===== USER CRUD OPERATIONS =====

async def create_user(
    session: AsyncSession,
    email: str,
    password_hash: str,
    name: Optional[str] = None,
) -> User:
    """Create a new user"""
    try:
        user = User(email=email.strip().lower(), password_hash=password_hash, name=name)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        logger.info(f"Created user: {user.email}")
        return user
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating user: {e}")
        raise

async def get_user_by_id(session: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()

async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()

# ===== TRIP CRUD OPERATIONS =====

async def create_trip(
    session: AsyncSession,
    user_id: UUID,
    trip_data: Dict[str, Any],
    day_dates: Sequence[date],
) -> Trip:
    """Create a trip together with one day row per local date"""
    try:
        trip = Trip(user_id=user_id, **trip_data)
        session.add(trip)
        await session.flush()
        for day in day_dates:
            session.add(TripDay(trip_id=trip.id, date_local=day))
        await session.commit()
        await session.refresh(trip)
        logger.info(f"Created trip {trip.id} with {len(day_dates)} days")
        return trip
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating trip: {e}")
        raise

async def get_trip(session: AsyncSession, trip_id: UUID) -> Optional[Trip]:
    result = await session.execute(select(Trip).where(Trip.id == trip_id))
    return result.scalar_one_or_none()

async def get_user_trips(session: AsyncSession, user_id: UUID) -> List[Trip]:
    """Trips of a user, most recent first"""
    result = await session.execute(
        select(Trip)
        .where(Trip.user_id == user_id)
        .order_by(desc(Trip.created_at))
    )
    return list(result.scalars().all())

async def get_trip_days(session: AsyncSession, trip_id: UUID) -> List[TripDay]:
    result = await session.execute(
        select(TripDay)
        .where(TripDay.trip_id == trip_id)
        .order_by(asc(TripDay.date_local))
    )
    return list(result.scalars().all())

async def get_trip_day(session: AsyncSession, trip_id: UUID, day_id: UUID) -> Optional[TripDay]:
    result = await session.execute(
        select(TripDay).where(TripDay.id == day_id, TripDay.trip_id == trip_id)
    )
    return result.scalar_one_or_none()

async def update_trip_day(session: AsyncSession, day: TripDay, updates: Dict[str, Any]) -> TripDay:
    try:
        for field, value in updates.items():
            setattr(day, field, value)
        session.add(day)
        await session.commit()
        await session.refresh(day)
        return day
    except Exception as e:
        await session.rollback()
        logger.error(f"Error updating day {day.id}: {e}")
        raise

# ===== FIXED WINDOW OPERATIONS =====

async def get_fixed_windows(session: AsyncSession, day_ids: Iterable[UUID]) -> List[DayFixedWindow]:
    day_ids = list(day_ids)
    if not day_ids:
        return []
    result = await session.execute(
        select(DayFixedWindow)
        .where(DayFixedWindow.day_id.in_(day_ids))
        .order_by(asc(DayFixedWindow.start_at))
    )
    return list(result.scalars().all())

async def create_fixed_window(
    session: AsyncSession,
    day_id: UUID,
    title: str,
    start_at: datetime,
    end_at: datetime,
    location: Optional[str] = None,
) -> DayFixedWindow:
    try:
        window = DayFixedWindow(day_id=day_id, title=title, start_at=start_at, end_at=end_at, location=location)
        session.add(window)
        await session.commit()
        await session.refresh(window)
        return window
    except Exception as e:
        await session.rollback()
        logger.error(f"Error creating fixed window: {e}")
        raise

# ===== POI CATALOG OPERATIONS =====

async def get_pois(
    session: AsyncSession,
    city: Optional[str] = None,
    district: Optional[str] = None,
    tag: Optional[str] = None,
    query: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Poi]:
    """Catalog query ordered by popularity, then name"""
    stmt = select(Poi)
    if city:
        stmt = stmt.where(Poi.city == city)
    if district:
        stmt = stmt.where(Poi.district == district)
    if query:
        stmt = stmt.where(Poi.name.ilike(f"%{query}%"))
    stmt = stmt.order_by(desc(Poi.popularity_score), asc(Poi.name))

    result = await session.execute(stmt)
    pois = list(result.scalars().all())

    # JSON tag filtering kept in Python so it behaves the same on SQLite and PostgreSQL
    if tag:
        pois = [poi for poi in pois if tag in (poi.tags or [])]
    if limit is not None:
        pois = pois[:limit]
    return pois


async def get_poi(session: AsyncSession, poi_id: UUID) -> Optional[Poi]:
    result = await session.execute(select(Poi).where(Poi.id == poi_id))
    return result.scalar_one_or_none()

# ===== AGENDA OPERATIONS =====
# These do not commit: callers group them into one transaction.

async def get_agenda_items(session: AsyncSession, day_ids: Iterable[UUID]) -> List[AgendaItem]:
    day_ids = list(day_ids)
    if not day_ids:
        return []
    result = await session.execute(
        select(AgendaItem)
        .where(AgendaItem.day_id.in_(day_ids))
        .order_by(asc(AgendaItem.start_at))
    )
    return list(result.scalars().all())

async def delete_agenda_items(session: AsyncSession, day_ids: Iterable[UUID]) -> int:
    day_ids = list(day_ids)
    if not day_ids:
        return 0
    result = await session.execute(delete(AgendaItem).where(AgendaItem.day_id.in_(day_ids)))
    return result.rowcount or 0

def add_agenda_items(session: AsyncSession, drafts: Iterable[AgendaDraft]) -> List[AgendaItem]:
    items = [
        AgendaItem(
            day_id=draft.day_id,
            poi_id=UUID(str(draft.poi_id)),
            start_at=draft.start_at,
            end_at=draft.end_at,
            mode=draft.mode,
            locked=draft.locked,
            is_meal=draft.is_meal,
            note=draft.note,
        )
        for draft in drafts
    ]
    session.add_all(items)
    return items

# ===== ROW LOCKS =====
# FOR UPDATE serialises concurrent agenda writers on PostgreSQL; SQLite ignores it
# and relies on its database-level write lock instead.

async def lock_trip(session: AsyncSession, trip_id: UUID) -> Optional[Trip]:
    result = await session.execute(select(Trip).where(Trip.id == trip_id).with_for_update())
    return result.scalar_one_or_none()

async def lock_trip_day(session: AsyncSession, day_id: UUID) -> Optional[TripDay]:
    result = await session.execute(select(TripDay).where(TripDay.id == day_id).with_for_update())
    return result.scalar_one_or_none()
