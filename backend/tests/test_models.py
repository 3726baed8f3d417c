"""
Table constraints and CRUD helpers on SQLite
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from nomadly.core.scheduling.agenda import AgendaDraft
from nomadly.core.scheduling.candidates import PoiMode
from nomadly.db import crud
from nomadly.db.models import AgendaItem, Trip, TripDay


class TestConstraints:
    @pytest.mark.asyncio
    async def test_trip_dates_must_be_ordered(self, session, user):
        session.add(Trip(user_id=user.id, title="Backwards", start_date=date(2025, 6, 12), end_date=date(2025, 6, 10)))
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_one_day_row_per_date(self, session, trip):
        session.add(TripDay(trip_id=trip.id, date_local=date(2025, 6, 10)))
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_agenda_item_needs_positive_length(self, session, trip, pois):
        days = await crud.get_trip_days(session, trip.id)
        instant = datetime(2025, 6, 10, 10, tzinfo=timezone.utc)
        session.add(AgendaItem(day_id=days[0].id, poi_id=pois[0].id, start_at=instant, end_at=instant))
        with pytest.raises(IntegrityError):
            await session.commit()
        await session.rollback()


class TestCrud:
    @pytest.mark.asyncio
    async def test_create_trip_creates_days(self, session, trip):
        days = await crud.get_trip_days(session, trip.id)
        assert [d.date_local for d in days] == [date(2025, 6, 10), date(2025, 6, 11), date(2025, 6, 12)]
        assert all(d.area_focus == [] for d in days)

    @pytest.mark.asyncio
    async def test_emails_are_case_insensitive(self, session, user):
        assert (await crud.get_user_by_email(session, "  ANA@example.com ")).id == user.id

    @pytest.mark.asyncio
    async def test_poi_queries(self, session, pois):
        assert [p.name for p in await crud.get_pois(session, city="Lisbon", district="Alfama")] == [
            "Sao Jorge Castle", "Alfama Walk"
        ]
        assert [p.name for p in await crud.get_pois(session, query="belem")] == ["Belem Tower", "Pasteis de Belem"]
        assert len(await crud.get_pois(session, limit=3)) == 3

    @pytest.mark.asyncio
    async def test_agenda_add_and_delete(self, session, trip, pois):
        days = await crud.get_trip_days(session, trip.id)
        start = datetime(2025, 6, 10, 9, tzinfo=timezone.utc)
        end = datetime(2025, 6, 10, 10, tzinfo=timezone.utc)
        crud.add_agenda_items(session, [
            AgendaDraft(days[0].id, str(pois[0].id), start, end, PoiMode.LOCATION_AWARE),
            AgendaDraft(days[1].id, str(pois[1].id), start, end, PoiMode.LOCATION_AWARE, is_meal=True),
        ])
        await session.commit()

        assert len(await crud.get_agenda_items(session, [d.id for d in days])) == 2
        assert await crud.delete_agenda_items(session, [days[0].id]) == 1
        await session.commit()
        remaining = await crud.get_agenda_items(session, [d.id for d in days])
        assert [(r.day_id, r.is_meal) for r in remaining] == [(days[1].id, True)]

    @pytest.mark.asyncio
    async def test_empty_id_lists(self, session):
        assert await crud.get_agenda_items(session, []) == []
        assert await crud.delete_agenda_items(session, []) == 0
        assert await crud.get_fixed_windows(session, []) == []
