import json

from conftest import make_location
from localbite.infra import redis_client
from localbite.services.locations import COORDS_CACHE_KEY, resolve_or_create_location


def test_list_locations(client, db_session, paris):
    make_location(db_session, "Berlin", "Berlin", "Germany", 13.405, 52.52)

    resp = client.get("/api/loc/all")
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    first = data["locations"][0]
    assert first["key"] == "paris|ile-de-france|fr"
    assert first["countryCode"] == "FR"
    assert first["point"] == {"type": "Point", "coordinates": [2.3522, 48.8566]}


def test_coords_are_cached(client, db_session, paris):
    resp = client.get("/api/loc/all/coords")
    assert resp.json() == {"count": 1, "coords": [[2.3522, 48.8566]]}
    assert json.loads(redis_client._redis_sync.get(COORDS_CACHE_KEY)) == [[2.3522, 48.8566]]

    # Rows written behind the resolver's back are not seen until the entry expires
    make_location(db_session, "Berlin", "Berlin", "Germany", 13.405, 52.52)
    assert client.get("/api/loc/all/coords").json()["count"] == 1


def test_new_location_invalidates_coords_cache(client, db_session, paris, fake_geocoder):
    assert client.get("/api/loc/all/coords").json()["count"] == 1

    resolve_or_create_location(db_session, "Lyon", "Rhone", "France", geocoder=fake_geocoder)

    assert redis_client._redis_sync.get(COORDS_CACHE_KEY) is None
    resp = client.get("/api/loc/all/coords")
    assert resp.json() == {"count": 2, "coords": [[2.3522, 48.8566], [4.8357, 45.764]]}


def test_coords_served_when_redis_is_down(client, paris, monkeypatch):
    from redis.exceptions import ConnectionError as RedisConnectionError
    from localbite.infra import redis_cache

    def broken():
        raise RedisConnectionError("redis unavailable")

    monkeypatch.setattr(redis_cache, "get_sync_redis", broken)

    resp = client.get("/api/loc/all/coords")
    assert resp.status_code == 200
    assert resp.json()["count"] == 1
