from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from uuid import UUID
from datetime import date, datetime

from nomadly.core.errors import FormatError
from nomadly.core.settings import Settings
from nomadly.core.scheduling.candidates import PoiMode
from nomadly.core.scheduling.time_utils import parse_time, format_clock
from nomadly.db.models import TripPace, BudgetBand, MealPlan, DayTheme

_settings = Settings()


def _clock_field(v: str) -> str:
    try:
        return format_clock(parse_time(v))
    except FormatError as e:
        raise ValueError(e.message)

# ===== AUTH SCHEMAS =====

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    name: Optional[str] = Field(None, max_length=100)

class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: Optional[str] = None
    created_at: datetime

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

# ===== TRIP SCHEMAS =====

class TripCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=100)
    city: Optional[str] = Field(None, min_length=1, max_length=50)
    dest_tz: Optional[str] = Field(None, min_length=1, max_length=64)
    start_date: date
    end_date: date
    pace: TripPace = TripPace.NORMAL
    day_start: str = Field(default_factory=lambda: _settings.DEFAULT_DAY_START)
    day_end: str = Field(default_factory=lambda: _settings.DEFAULT_DAY_END)
    budget: BudgetBand = BudgetBand.DOLLAR_DOLLAR
    meal_plan: MealPlan = MealPlan.STANDARD
    interests: List[str] = Field(default_factory=list)
    cuisines: List[str] = Field(default_factory=list)

    @field_validator('day_start', 'day_end')
    @classmethod
    def validate_clock(cls, v):
        return _clock_field(v)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError("Title is required")
        return v.strip()

class TripRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    city: Optional[str] = None
    dest_tz: Optional[str] = None
    start_date: date
    end_date: date
    pace: TripPace
    day_start: str
    day_end: str
    budget: BudgetBand
    meal_plan: MealPlan
    interests: List[str] = []
    cuisines: List[str] = []
    created_at: datetime

class TripDayRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    trip_id: UUID
    date_local: date
    city: Optional[str] = None
    area_focus: List[str] = []
    theme: Optional[DayTheme] = None

class TripDayUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    city: Optional[str] = Field(None, max_length=50)
    area_focus: Optional[List[str]] = None
    theme: Optional[DayTheme] = None

# ===== FIXED WINDOW / FREE TIME SCHEMAS =====

class FixedWindowCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=100)
    start_at: datetime
    end_at: datetime
    location: Optional[str] = Field(None, max_length=200)

class FixedWindowRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    day_id: UUID
    title: str
    start_at: datetime
    end_at: datetime
    location: Optional[str] = None

class FreeSegmentRead(BaseModel):
    start: datetime
    end: datetime
    minutes: int

class FreeTimeResponse(BaseModel):
    day_id: UUID
    day_start: datetime
    day_end: datetime
    segments: List[FreeSegmentRead]
    free_minutes: int

# ===== AGENDA SCHEMAS =====

class AgendaItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    poi_id: UUID
    start_at: datetime
    end_at: datetime
    mode: PoiMode
    locked: bool = False
    note: Optional[str] = Field(None, max_length=500)

class AgendaItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    day_id: UUID
    poi_id: UUID
    start_at: datetime
    end_at: datetime
    mode: PoiMode
    locked: bool
    is_meal: bool = False
    note: Optional[str] = None

class TripDayDetail(TripDayRead):
    fixed_windows: List[FixedWindowRead] = []
    items: List[AgendaItemRead] = []

class TripDetailRead(TripRead):
    days: List[TripDayDetail] = []

# ===== GENERATION / ITINERARY SCHEMAS =====

class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interests: Optional[List[str]] = None
    budget: Optional[str] = Field(None, max_length=50)
    travel_style: Optional[str] = Field(None, max_length=50)
    poi_mode: Optional[PoiMode] = None

class GeneratedDay(BaseModel):
    day_id: UUID
    date_local: date
    item_count: int
    reasoning: str

class GenerateResponse(BaseModel):
    trip_id: UUID
    days: List[GeneratedDay]
    total_items: int
    removed_items: int

class ItineraryItemView(BaseModel):
    poi_id: UUID
    poi_name: str
    duration_minutes: int
    duration_label: str
    is_meal: bool
    notes: Optional[str] = None
    start_time: str
    end_time: str
    display_time: str

class ItineraryDayView(BaseModel):
    id: UUID
    date_local: date
    items: List[ItineraryItemView]

class ItineraryView(BaseModel):
    days: List[ItineraryDayView]
    reasoning: str

# ===== POI SCHEMAS =====

class PoiRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    city: Optional[str] = None
    district: Optional[str] = None
    tags: List[str] = []
    cuisine: List[str] = []
    mode: PoiMode
    estimated_duration: Optional[int] = None
    price_band: Optional[str] = None
    iconic: bool = False
    popularity_score: float = 0.0
