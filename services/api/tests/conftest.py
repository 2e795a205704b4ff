import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from localbite.main import app
from localbite.db import Base, get_db, register_sqlite_functions
from localbite.deps import get_geocoder_dep
from localbite.models import Location, Recipe, RecipeDishType, RecipeIngredient, User
from localbite.routers import recipes as recipes_router
from localbite.services.countries import derive_iso2
from localbite.services.locations import make_location_key
from localbite.services.users import hash_password
from localbite.settings import settings

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # every session shares the one in-memory connection
)
register_sqlite_functions(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Cheap hashes and no rate limiting under test
settings.bcrypt_rounds = 4
app.state.limiter.enabled = False
recipes_router.limiter.enabled = False


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeGeocoder:
    """Counts calls and returns canned coordinates keyed by lowercase locality."""

    name = "fake"

    def __init__(self, coords=None, default=(2.3522, 48.8566)):
        self.coords = coords or {}
        self.default = default
        self.calls = []

    def geocode(self, locality, area, country, language=None, limit=1):
        self.calls.append((locality, area, country))
        return self.coords.get(locality.lower(), self.default)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder(
        coords={
            "paris": (2.3522, 48.8566),
            "lyon": (4.8357, 45.7640),
            "berlin": (13.4050, 52.5200),
        }
    )


@pytest.fixture
def client(fake_geocoder):
    """Test client with DB and geocoder overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_geocoder_dep] = lambda: fake_geocoder
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


import fakeredis
from localbite.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client.use_clients(
        fakeredis.aioredis.FakeRedis(server=server, decode_responses=True),
        fakeredis.FakeRedis(server=server, decode_responses=True),
    )

    yield

    redis_client.use_clients(None, None)


# --- Data helpers ---

def make_user(db, username="cook", password="password123", email=None):
    user = User(
        fullname=username.title(),
        username=username,
        email=email or f"{username}@example.com",
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_location(db, locality="Paris", area="Ile-de-France", country="France", lng=2.3522, lat=48.8566):
    code = derive_iso2(country)
    key = make_location_key(locality, area, code)
    loc = db.query(Location).filter(Location.key == key).first()
    if loc:
        return loc
    loc = Location(
        key=key, locality=locality, area=area, country=country,
        country_code=code, lng=lng, lat=lat, provider="fake",
    )
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


def make_recipe(db, author, location, title="Dish", description="", ingredients=("salt",), dish_types=(), like_count=0):
    recipe = Recipe(
        author_id=author.id,
        title=title,
        description=description,
        instructions=["Cook it"],
        like_count=like_count,
    )
    recipe.set_location(location)
    recipe.ingredients = [RecipeIngredient(position=i, name=n) for i, n in enumerate(ingredients)]
    recipe.dish_type_links = [RecipeDishType(dish_type=d) for d in dish_types]
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe


@pytest.fixture
def user(db_session):
    return make_user(db_session)


@pytest.fixture
def paris(db_session):
    return make_location(db_session)


@pytest.fixture
def auth_client(client, user):
    """Client with a signed-in session for ``user``."""
    resp = client.post("/api/auth/signin", json={"identifier": user.username, "password": "password123"})
    assert resp.status_code == 200, resp.text
    return client
