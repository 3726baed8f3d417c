"""
POI catalog endpoints
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.api.deps import limiter, settings
from nomadly.api.schemas import PoiRead
from nomadly.db.crud import get_poi, get_pois
from nomadly.db.session import get_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/pois", tags=["pois"])


@router.get("/",
    response_model=List[PoiRead],
    summary="Browse the POI catalog",
    description="Filter by city, district, tag or a name fragment; most popular first",
)
@limiter.limit(settings.RATE_LIMIT_READ)
async def list_pois(
    request: Request,
    city: Optional[str] = None,
    district: Optional[str] = None,
    tag: Optional[str] = None,
    q: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    pois = await get_pois(session, city=city, district=district, tag=tag, query=q, limit=limit)
    logger.info(f"POI catalog query returned {len(pois)} rows")
    return pois


@router.get("/{poi_id}", response_model=PoiRead)
@limiter.limit(settings.RATE_LIMIT_READ)
async def read_poi(
    request: Request,
    poi_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    poi = await get_poi(session, poi_id)
    if not poi:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="POI not found")
    return poi
