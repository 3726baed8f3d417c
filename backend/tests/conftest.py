"""
Shared fixtures: in-memory SQLite database, seeded trip, ASGI client
"""

from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import nomadly.db.models  # noqa: F401
from nomadly.core.scheduling.candidates import PoiMode
from nomadly.core.scheduling.day_bounds import trip_dates
from nomadly.db import crud
from nomadly.db.models import Poi, User


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(session):
    # Pre-hashed placeholder; these tests never log in with a password
    user = User(email="ana@example.com", name="Ana", password_hash="not-a-real-hash")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(session):
    user = User(email="bo@example.com", name="Bo", password_hash="not-a-real-hash")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def pois(session):
    rows = [
        Poi(name="Belem Tower", city="Lisbon", district="Belem", tags=["history", "landmark"],
            estimated_duration=90, iconic=True, popularity_score=9.5),
        Poi(name="Jeronimos Monastery", city="Lisbon", district="Belem", tags=["history"],
            estimated_duration=120, popularity_score=9.0),
        Poi(name="Time Out Market", city="Lisbon", district="Cais do Sodre", tags=["food", "restaurant"],
            cuisine=["portuguese"], estimated_duration=75, popularity_score=8.8),
        Poi(name="Alfama Walk", city="Lisbon", district="Alfama", tags=["walking", "views"],
            estimated_duration=60, popularity_score=8.5),
        Poi(name="Sao Jorge Castle", city="Lisbon", district="Alfama", tags=["history", "views"],
            estimated_duration=90, iconic=True, popularity_score=9.1),
        Poi(name="Pasteis de Belem", city="Lisbon", district="Belem", tags=["bakery", "food"],
            cuisine=["pastry"], estimated_duration=30, popularity_score=8.9),
        Poi(name="LX Factory", city="Lisbon", district="Alcantara", tags=["shopping", "art"],
            estimated_duration=90, popularity_score=7.5),
        Poi(name="Oceanario", city="Lisbon", district="Parque das Nacoes", tags=["family", "nature"],
            estimated_duration=120, popularity_score=8.7),
        Poi(name="Sintra Day Hike", city=None, district=None, tags=["hiking", "nature"],
            mode=PoiMode.ACTIVITY_FOCUSED, estimated_duration=180, popularity_score=7.0),
        Poi(name="Porto Ribeira", city="Porto", district="Ribeira", tags=["views"],
            estimated_duration=60, popularity_score=8.0),
    ]
    session.add_all(rows)
    await session.commit()
    return rows


@pytest_asyncio.fixture
async def trip(session, user, pois):
    start, end = date(2025, 6, 10), date(2025, 6, 12)
    return await crud.create_trip(
        session,
        user.id,
        {
            "title": "Lisbon long weekend",
            "city": "Lisbon",
            "dest_tz": "Europe/Lisbon",
            "start_date": start,
            "end_date": end,
            "day_start": "09:30",
            "day_end": "20:30",
            "interests": ["history"],
        },
        trip_dates(start, end),
    )


@pytest.fixture
def disable_rate_limits():
    from nomadly.api.deps import limiter

    previous = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = previous


@pytest_asyncio.fixture
async def client(session, user, disable_rate_limits):
    """Client authenticated as ``user``, sharing the test session"""
    from nomadly.core.security import get_current_user
    from nomadly.db.session import get_session
    from nomadly.main import app

    async def override_session():
        yield session

    user_id = user.id

    async def override_user():
        # re-read so a rollback in an earlier request cannot leave it expired
        return await session.get(User, user_id)

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_user] = override_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
