import pytest

from conftest import FakeGeocoder, TestingSessionLocal
from localbite.domain.errors import GeocodingError, UnknownCountryError, ValidationError
from localbite.models import Location
from localbite.services.locations import make_location_key, resolve_or_create_location


def test_resolve_creates_then_reuses(db_session, fake_geocoder):
    first = resolve_or_create_location(db_session, "Paris", "Île-de-France", "France", geocoder=fake_geocoder)
    second = resolve_or_create_location(db_session, "Paris", "Île-de-France", "France", geocoder=fake_geocoder)

    assert first.id == second.id
    assert first.country_code == "FR"
    assert first.key == "paris|île-de-france|fr"
    assert first.point == {"type": "Point", "coordinates": [2.3522, 48.8566]}
    assert first.provider == "fake"
    assert len(fake_geocoder.calls) == 1
    assert db_session.query(Location).count() == 1


def test_key_ignores_case_whitespace_and_country_spelling(db_session, fake_geocoder):
    a = resolve_or_create_location(db_session, "  new   york ", "NY", "USA", geocoder=fake_geocoder)
    b = resolve_or_create_location(db_session, "New York", "ny", "United States", geocoder=fake_geocoder)

    assert a.id == b.id
    assert a.key == "new york|ny|us"
    # First spelling wins for display fields
    assert a.locality == "new   york"
    assert len(fake_geocoder.calls) == 1


def test_make_location_key_normalizes():
    assert make_location_key(" Lyon ", "Auvergne-Rhône-Alpes", "FR") == "lyon|auvergne-rhône-alpes|fr"


@pytest.mark.parametrize(
    "locality,area,country",
    [("", "Ile-de-France", "France"), ("Paris", "   ", "France"), ("Paris", "Ile-de-France", None)],
)
def test_missing_fields_rejected(db_session, fake_geocoder, locality, area, country):
    with pytest.raises(ValidationError) as exc:
        resolve_or_create_location(db_session, locality, area, country, geocoder=fake_geocoder)
    assert exc.value.status_code == 400
    assert "Missing required location fields" in exc.value.message
    assert fake_geocoder.calls == []


def test_unknown_country_rejected_before_geocoding(db_session, fake_geocoder):
    with pytest.raises(UnknownCountryError) as exc:
        resolve_or_create_location(db_session, "Somewhere", "Nowhere", "Atlantis", geocoder=fake_geocoder)
    assert exc.value.status_code == 400
    assert fake_geocoder.calls == []
    assert db_session.query(Location).count() == 0


def test_geocoding_failure_leaves_no_row(db_session):
    class BrokenGeocoder:
        name = "broken"

        def geocode(self, *args, **kwargs):
            raise GeocodingError("No geocoding match", retryable=False)

    with pytest.raises(GeocodingError):
        resolve_or_create_location(db_session, "Paris", "Ile-de-France", "France", geocoder=BrokenGeocoder())
    assert db_session.query(Location).count() == 0


def test_concurrent_first_use_converges(db_session):
    """A competing writer inserts the same key while we are geocoding."""
    other_geocoder = FakeGeocoder(default=(2.35, 48.85))

    class RacingGeocoder(FakeGeocoder):
        def geocode(self, locality, area, country, language=None, limit=1):
            other = TestingSessionLocal()
            try:
                self.winner_id = resolve_or_create_location(
                    other, locality, area, country, geocoder=other_geocoder
                ).id
            finally:
                other.close()
            return super().geocode(locality, area, country, language, limit)

    racing = RacingGeocoder()
    loc = resolve_or_create_location(db_session, "Paris", "Ile-de-France", "France", geocoder=racing)

    assert loc.id == racing.winner_id
    assert loc.lng == 2.35
    assert db_session.query(Location).count() == 1
    assert len(other_geocoder.calls) == 1
