"""Pydantic schemas for the LocalBite API.

Request/response models for:
- Auth & profiles
- Locations
- Recipes (with ingredients, dish types and location snapshot)
- The paginated recipe feed

JSON field names are camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Geo ---

class PointOut(BaseModel):
    type: str = "Point"
    coordinates: list[float]  # [lng, lat]


class LocationIn(CamelModel):
    locality: Optional[str] = None
    area: Optional[str] = None
    country: Optional[str] = None


class LocationSnapshot(CamelModel):
    locality: str
    area: str
    country: str


class LocationOut(CamelModel):
    id: int
    key: str
    locality: str
    area: str
    country: str
    country_code: str
    point: PointOut
    provider: str


class LocationListOut(CamelModel):
    count: int
    locations: list[LocationOut]


class LocationCoordsOut(CamelModel):
    count: int
    coords: list[list[float]]


# --- Auth / Users ---

class SignupIn(CamelModel):
    fullname: str = ""
    username: str = ""
    email: str = ""
    password: str = ""


class SigninIn(CamelModel):
    identifier: str = ""
    password: str = ""


class ProfileUpdate(CamelModel):
    fullname: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[LocationIn] = None


class DefaultLocationOut(CamelModel):
    id: int
    locality: str
    area: str
    country: str


class UserOut(CamelModel):
    id: int
    fullname: str
    username: str
    email: str
    bio: Optional[str] = None
    favs: list[int] = []
    default_location_id: Optional[int] = None
    default_location: Optional[DefaultLocationOut] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PublicProfileOut(CamelModel):
    id: int
    fullname: str
    username: str
    bio: Optional[str] = None


class AuthorOut(CamelModel):
    id: int
    username: str
    fullname: str


# --- Recipes ---

class IngredientIn(CamelModel):
    name: str = ""
    amount: Optional[float] = None
    unit: Optional[str] = None


class IngredientOut(CamelModel):
    name: str
    amount: Optional[float] = None
    unit: Optional[str] = None


class RecipeCreate(CamelModel):
    title: str = ""
    description: Optional[str] = None
    ingredients: list[IngredientIn] = []
    instructions: list[str] = []
    dish_types: list[str] = []
    picture: Optional[str] = None
    location: Optional[LocationIn] = None


class RecipePatch(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    ingredients: Optional[list[IngredientIn]] = None
    instructions: Optional[list[str]] = None
    dish_types: Optional[list[str]] = None
    picture: Optional[str] = None
    location: Optional[LocationIn] = None


class RecipeOut(CamelModel):
    id: int
    author_id: int
    author: Optional[AuthorOut] = None
    title: str
    description: str
    ingredients: list[IngredientOut]
    instructions: list[str]
    dish_types: list[str]
    picture: Optional[str] = None
    location_id: int
    location_snapshot: LocationSnapshot
    point: PointOut
    like_count: int
    liked: bool = False
    distance_km: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecipeFeedOut(CamelModel):
    items: list[RecipeOut]
    next_cursor: Optional[str] = None
    has_next_page: bool
    page_size: int
    count: int


class LikeOut(CamelModel):
    recipe_id: int
    like_count: int = Field(..., ge=0)
    liked: bool
