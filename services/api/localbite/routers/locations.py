"""Locations API router.

Endpoints:
- GET /api/loc/all - Every known location
- GET /api/loc/all/coords - Just the [lng, lat] pairs (Redis-cached)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..infra.redis_cache import get_or_set_json_sync
from ..schemas import LocationCoordsOut, LocationListOut, LocationOut, PointOut
from ..services.locations import COORDS_CACHE_KEY, list_location_coords, list_locations
from ..settings import settings

router = APIRouter()


@router.get("/all", response_model=LocationListOut)
def get_all_locations(db: Session = Depends(get_db)):
    locations = list_locations(db)
    return LocationListOut(
        count=len(locations),
        locations=[
            LocationOut(
                id=loc.id,
                key=loc.key,
                locality=loc.locality,
                area=loc.area,
                country=loc.country,
                country_code=loc.country_code,
                point=PointOut(**loc.point),
                provider=loc.provider,
            )
            for loc in locations
        ],
    )


@router.get("/all/coords", response_model=LocationCoordsOut)
def get_all_location_coords(db: Session = Depends(get_db)):
    coords, _hit = get_or_set_json_sync(
        COORDS_CACHE_KEY,
        settings.coords_cache_ttl_sec,
        lambda: list_location_coords(db),
    )
    return LocationCoordsOut(count=len(coords), coords=coords)
