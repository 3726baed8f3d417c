import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Index, CheckConstraint, JSON
from uuid import UUID as PyUUID

from nomadly.core.scheduling.candidates import PoiMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# Enums
class TripPace(str, Enum):
    RELAX = "relax"
    NORMAL = "normal"
    MAX = "max"

class BudgetBand(str, Enum):
    DOLLAR = "dollar"
    DOLLAR_DOLLAR = "dollarDollar"
    DOLLAR_DOLLAR_DOLLAR = "dollarDollarDollar"

class MealPlan(str, Enum):
    LIGHT = "light"
    STANDARD = "standard"
    FOOD_FOCUSED = "food_focused"

class DayTheme(str, Enum):
    FOOD = "food"
    SHOPPING = "shopping"
    NIGHTLIFE = "nightlife"
    RAINY_DAY = "rainy_day"
    SCENIC = "scenic"

# Base model with common audit fields
class TimestampedModel(SQLModel):
    """Audit timestamps shared by every table"""
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
    )

# Models
class User(TimestampedModel, table=True):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint('length(email) > 0', name='check_email_not_empty'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(
        index=True,
        unique=True,
        nullable=False,
        max_length=255,
        description="Login email, stored lower-cased"
    )
    name: Optional[str] = Field(default=None, max_length=100)
    password_hash: str = Field(nullable=False, max_length=255)


class Trip(TimestampedModel, table=True):
    __tablename__ = "trips"

    __table_args__ = (
        Index('idx_trips_user_id', 'user_id'),
        Index('idx_trips_dates', 'start_date', 'end_date'),
        CheckConstraint('start_date < end_date', name='check_trip_date_range'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: PyUUID = Field(foreign_key="users.id", nullable=False)
    title: str = Field(max_length=100)
    city: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Destination city; trips without one schedule activity-focused POIs"
    )
    dest_tz: Optional[str] = Field(default=None, max_length=64, description="IANA zone of the destination")
    start_date: date
    end_date: date
    pace: TripPace = Field(default=TripPace.NORMAL)
    day_start: str = Field(default="09:30", max_length=5, description="Local HH:MM the day opens")
    day_end: str = Field(default="20:30", max_length=5, description="Local HH:MM the day closes")
    budget: BudgetBand = Field(default=BudgetBand.DOLLAR_DOLLAR)
    meal_plan: MealPlan = Field(default=MealPlan.STANDARD)
    interests: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    cuisines: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


class TripDay(TimestampedModel, table=True):
    __tablename__ = "trip_days"

    __table_args__ = (
        Index('idx_trip_days_trip_date', 'trip_id', 'date_local', unique=True),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    trip_id: PyUUID = Field(foreign_key="trips.id", nullable=False)
    date_local: date
    city: Optional[str] = Field(default=None, max_length=50)
    area_focus: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Preferred districts; a soft ordering preference, never a filter"
    )
    theme: Optional[DayTheme] = Field(default=None)


class Poi(TimestampedModel, table=True):
    __tablename__ = "pois"

    __table_args__ = (
        Index('idx_pois_city_district', 'city', 'district'),
        Index('idx_pois_popularity', 'popularity_score'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=200)
    city: Optional[str] = Field(default=None, max_length=50)
    district: Optional[str] = Field(default=None, max_length=100)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    cuisine: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    mode: PoiMode = Field(default=PoiMode.LOCATION_AWARE)
    estimated_duration: Optional[int] = Field(default=None, ge=0, description="Typical visit length in minutes")
    price_band: Optional[str] = Field(default=None, max_length=20)
    iconic: bool = Field(default=False)
    popularity_score: float = Field(default=0.0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class DayFixedWindow(TimestampedModel, table=True):
    """Immovable commitment on a trip day (flight, booked tour)"""
    __tablename__ = "fixed_windows"

    __table_args__ = (
        Index('idx_fixed_windows_day_start', 'day_id', 'start_at'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    day_id: PyUUID = Field(foreign_key="trip_days.id", nullable=False)
    title: str = Field(max_length=100)
    start_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    location: Optional[str] = Field(default=None, max_length=200)


class AgendaItem(TimestampedModel, table=True):
    """
    Scheduled POI visit. Items of one day never overlap on [start_at, end_at);
    the scheduling layer checks this before every insert.
    """
    __tablename__ = "agenda_items"

    __table_args__ = (
        Index('idx_agenda_items_day_start', 'day_id', 'start_at'),
        CheckConstraint('start_at < end_at', name='check_agenda_item_range'),
    )

    id: PyUUID = Field(default_factory=uuid.uuid4, primary_key=True)
    day_id: PyUUID = Field(foreign_key="trip_days.id", nullable=False)
    poi_id: PyUUID = Field(foreign_key="pois.id", nullable=False)
    start_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    mode: PoiMode = Field(default=PoiMode.LOCATION_AWARE)
    locked: bool = Field(default=False, description="Hint for editors; not enforced by scheduling")
    is_meal: bool = Field(default=False)
    note: Optional[str] = Field(default=None, max_length=500)
