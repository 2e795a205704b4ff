from unittest.mock import MagicMock, patch

import pytest
import requests

from localbite.domain.errors import GeocodingError
from localbite.services.geocoding import MapTilerGeocoder, build_query


def _response(status=200, payload=None, reason="OK"):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = reason
    resp.text = "" if payload is None else str(payload)
    resp.json.return_value = payload
    return resp


def test_build_query_skips_blanks():
    assert build_query("Paris", "", "France") == "Paris, France"
    assert build_query("Paris", "Ile-de-France", "France") == "Paris, Ile-de-France, France"


def test_geocode_success_uses_first_feature():
    payload = {
        "features": [
            {"geometry": {"type": "Point", "coordinates": [2.3522, 48.8566]}},
            {"geometry": {"type": "Point", "coordinates": [0, 0]}},
        ]
    }
    geocoder = MapTilerGeocoder(api_key="k", base_url="https://geo.test/geocoding", timeout=3)

    with patch("localbite.services.geocoding.requests.get", return_value=_response(payload=payload)) as mock_get:
        lng, lat = geocoder.geocode("Paris", "Ile-de-France", "France")

    assert (lng, lat) == (2.3522, 48.8566)
    args, kwargs = mock_get.call_args
    assert args[0] == "https://geo.test/geocoding/Paris%2C%20Ile-de-France%2C%20France.json"
    assert kwargs["params"]["key"] == "k"
    assert kwargs["params"]["limit"] == 1
    assert kwargs["params"]["language"] == "en"
    assert kwargs["timeout"] == 3


def test_geocode_falls_back_to_center():
    payload = {"features": [{"center": [4.8357, 45.764]}]}
    geocoder = MapTilerGeocoder(api_key="k")

    with patch("localbite.services.geocoding.requests.get", return_value=_response(payload=payload)):
        assert geocoder.geocode("Lyon", "Rhone", "France") == (4.8357, 45.764)


def test_geocode_no_match_is_not_retryable():
    geocoder = MapTilerGeocoder(api_key="k")

    with patch("localbite.services.geocoding.requests.get", return_value=_response(payload={"features": []})):
        with pytest.raises(GeocodingError) as exc:
            geocoder.geocode("Nowhere", "Void", "France")

    assert exc.value.retryable is False
    assert exc.value.status_code == 400


def test_geocode_provider_error_is_retryable():
    geocoder = MapTilerGeocoder(api_key="k")

    with patch(
        "localbite.services.geocoding.requests.get",
        return_value=_response(status=503, payload={"message": "down"}, reason="Service Unavailable"),
    ):
        with pytest.raises(GeocodingError) as exc:
            geocoder.geocode("Paris", "Ile-de-France", "France")

    assert exc.value.retryable is True
    assert exc.value.status_code == 502
    assert "503" in exc.value.message


def test_geocode_network_error_is_retryable():
    geocoder = MapTilerGeocoder(api_key="k")

    with patch("localbite.services.geocoding.requests.get", side_effect=requests.ConnectionError("boom")):
        with pytest.raises(GeocodingError) as exc:
            geocoder.geocode("Paris", "Ile-de-France", "France")

    assert exc.value.status_code == 502


def test_geocode_without_key_never_calls_provider():
    geocoder = MapTilerGeocoder(api_key="")

    with patch("localbite.services.geocoding.requests.get") as mock_get:
        with pytest.raises(GeocodingError, match="MAPTILER_API_KEY"):
            geocoder.geocode("Paris", "Ile-de-France", "France")

    mock_get.assert_not_called()
