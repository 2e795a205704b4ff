"""Location resolution with a database-backed geocoding cache.

Every distinct (locality, area, country) triple, after normalization, maps to
exactly one row in ``locations``. The geocoder is only called on a miss, and
concurrent misses for the same key are settled by the unique constraint:
whoever loses the insert re-reads the winner's row.
"""

import logging
import re
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.errors import ConflictRetried, UnknownCountryError, ValidationError
from ..infra.redis_cache import cache_key, invalidate
from ..models import Location
from .countries import derive_iso2
from .geocoding import PROVIDER_NAME, get_geocoder

logger = logging.getLogger("localbite.locations")

COORDS_CACHE_KEY = cache_key("locations", "coords")

_WS_RE = re.compile(r"\s+")


class Geocoder(Protocol):
    name: str

    def geocode(
        self, locality: str, area: str, country: str, language: Optional[str] = None, limit: int = 1
    ) -> tuple[float, float]: ...


def normalize(value: Optional[str]) -> str:
    return _WS_RE.sub(" ", str(value or "").strip()).lower()


def make_location_key(locality: str, area: str, country_code: str) -> str:
    return "|".join([normalize(locality), normalize(area), normalize(country_code)])


def find_location_by_key(db: Session, key: str) -> Optional[Location]:
    return db.query(Location).filter(Location.key == key).first()


def resolve_or_create_location(
    db: Session,
    locality: Optional[str],
    area: Optional[str],
    country: Optional[str],
    *,
    geocoder: Optional[Geocoder] = None,
) -> Location:
    """Return the canonical Location for the given place, creating it on first use.

    Commits the session when a new row is inserted, so call it before staging
    other changes.

    Raises:
        ValidationError: a field is blank after trimming
        UnknownCountryError: the country text maps to no ISO code
        GeocodingError: cache miss and the provider gave no usable point
    """
    locality = str(locality or "").strip()
    area = str(area or "").strip()
    country = str(country or "").strip()

    missing = [name for name, value in (("locality", locality), ("area", area), ("country", country)) if not value]
    if missing:
        raise ValidationError(f"Missing required location fields: {', '.join(missing)}")

    country_code = derive_iso2(country)
    if not country_code:
        raise UnknownCountryError(country)

    key = make_location_key(locality, area, country_code)

    existing = find_location_by_key(db, key)
    if existing:
        return existing

    geocoder = geocoder or get_geocoder()
    lng, lat = geocoder.geocode(locality, area, country, limit=1)

    location = Location(
        key=key,
        locality=locality,
        area=area,
        country=country,
        country_code=country_code,
        lng=lng,
        lat=lat,
        provider=getattr(geocoder, "name", PROVIDER_NAME),
    )
    db.add(location)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = find_location_by_key(db, key)
        if winner is None:
            raise
        logger.warning(ConflictRetried(key).message)
        return winner

    db.refresh(location)
    logger.info(f"Created location {location.id} for key '{key}'")
    invalidate(COORDS_CACHE_KEY)
    return location


def list_locations(db: Session) -> list[Location]:
    return db.query(Location).order_by(Location.id).all()


def list_location_coords(db: Session) -> list[list[float]]:
    return [[lng, lat] for lng, lat in db.query(Location.lng, Location.lat).order_by(Location.id).all()]
