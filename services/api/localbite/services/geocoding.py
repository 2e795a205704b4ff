"""MapTiler forward geocoding client.

Turns "locality, area, country" into a single (longitude, latitude) pair.
Any failure is raised as GeocodingError so the resolver can surface it.
"""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from ..domain.errors import GeocodingError
from ..settings import settings

logger = logging.getLogger("localbite.geocoding")

PROVIDER_NAME = "maptiler"


def build_query(*parts: Optional[str]) -> str:
    """Join the non-empty parts with ", "."""
    return ", ".join(p for p in parts if p)


def _extract_coordinates(payload: dict) -> tuple[float, float]:
    features = (payload or {}).get("features") or []
    if not features:
        raise GeocodingError("No geocoding match", retryable=False)

    feat = features[0] or {}
    coords = (feat.get("geometry") or {}).get("coordinates")
    if not isinstance(coords, list):
        coords = feat.get("center")

    if not isinstance(coords, list) or len(coords) != 2:
        raise GeocodingError("Geocoding result missing coordinates", retryable=False)

    try:
        lng, lat = (float(c) for c in coords)
    except (TypeError, ValueError):
        raise GeocodingError("Geocoding result has non-numeric coordinates", retryable=False)
    return lng, lat


class MapTilerGeocoder:
    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.maptiler_api_key
        self.base_url = (base_url or settings.maptiler_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.geocoder_timeout_sec

    def geocode(
        self,
        locality: str,
        area: str,
        country: str,
        language: Optional[str] = None,
        limit: int = 1,
    ) -> tuple[float, float]:
        if not self.api_key:
            raise GeocodingError("Missing MAPTILER_API_KEY")

        query = build_query(locality, area, country)
        url = f"{self.base_url}/{quote(query, safe='')}.json"
        params = {
            "key": self.api_key,
            "limit": limit,
            "language": language or settings.geocoder_language,
        }

        logger.info(f"Geocoding '{query}'")
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        if not response.ok:
            raise GeocodingError(
                f"Geocoding failed: {response.status_code} {response.reason} {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GeocodingError("Geocoding response was not valid JSON") from e

        return _extract_coordinates(payload)


_geocoder: Optional[MapTilerGeocoder] = None


def get_geocoder() -> MapTilerGeocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = MapTilerGeocoder()
    return _geocoder
