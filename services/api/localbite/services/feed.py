"""Recipe feed query builder.

Turns loosely-typed query parameters into a page of recipes:

- filters: author, dish types (any-of), snapshot country, free text
- proximity: bounding box in SQL, exact haversine distance in Python,
  nearest-first
- sort + keyset pagination: ``createdAt:desc`` is served as ``id DESC`` with
  ``id < cursor``; other sorts and proximity pages carry no cursor
- personalization: one batched favorites lookup for the viewer

Malformed parameters are ignored instead of rejected so the public feed
endpoint stays permissive.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..db import dialect_name
from ..models import DISH_TYPES, Recipe, RecipeDishType, RecipeIngredient, UserFavorite
from ..settings import settings

logger = logging.getLogger("localbite.feed")

EARTH_RADIUS_KM = 6371.0088

DEFAULT_SORT = ("createdAt", "desc")
SORT_FIELDS = {
    "createdAt": Recipe.created_at,
    "updatedAt": Recipe.updated_at,
    "title": Recipe.title,
    "likeCount": Recipe.like_count,
}
TEXT_SORT_FIELDS = {"title"}

NO_COUNTRY_FILTER = {"", "all", "any", "*"}

_DISH_TYPES_FOLDED = {d.lower(): d for d in DISH_TYPES}


@dataclass
class FeedParams:
    limit: Optional[str] = None
    cursor: Optional[str] = None
    q: Optional[str] = None
    dish_types: Optional[str] = None
    country: Optional[str] = None
    author_id: Optional[str] = None
    near_lng: Optional[str] = None
    near_lat: Optional[str] = None
    max_km: Optional[str] = None
    sort: Optional[str] = None


@dataclass
class FeedItem:
    recipe: Recipe
    liked: bool = False
    distance_km: Optional[float] = None


@dataclass
class FeedPage:
    items: list[FeedItem] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_next_page: bool = False
    page_size: int = 0

    @property
    def count(self) -> int:
        return len(self.items)


# --- Parameter parsing ---

def parse_identifier(value) -> Optional[int]:
    """Positive integer id from a query string, or None if malformed."""
    if value is None:
        return None
    text = str(value).strip()
    if not text.isascii() or not text.isdigit():
        return None
    ident = int(text)
    return ident if ident > 0 else None


def parse_limit(value) -> int:
    try:
        limit = int(str(value).strip()) if value is not None else settings.default_page_size
    except ValueError:
        limit = settings.default_page_size
    return max(1, min(limit, settings.max_page_size))


def parse_sort(value) -> tuple[str, str]:
    if not value:
        return DEFAULT_SORT
    field_name, _, direction = str(value).partition(":")
    field_name = field_name.strip()
    if field_name not in SORT_FIELDS:
        field_name = DEFAULT_SORT[0]
    return field_name, "asc" if direction.strip().lower() == "asc" else "desc"


def parse_float(value) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_dish_types(value) -> list[str]:
    tags = []
    for raw in str(value or "").split(","):
        tag = raw.strip()
        if tag:
            tags.append(_DISH_TYPES_FOLDED.get(tag.lower(), tag))
    return tags


def parse_near(params: FeedParams) -> Optional[tuple[float, float, float]]:
    """(lng, lat, max_km) when both coordinates are present and in range."""
    lng = parse_float(params.near_lng)
    lat = parse_float(params.near_lat)
    if lng is None or lat is None:
        return None
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        return None
    max_km = parse_float(params.max_km)
    if max_km is None or max_km <= 0:
        max_km = settings.default_max_km
    return lng, lat, max_km


def cursor_honored(params: FeedParams, near) -> bool:
    """Keyset cursors only apply to the default newest-first order."""
    return near is None and parse_sort(params.sort) == DEFAULT_SORT


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# --- Geo helpers ---

def haversine_km(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def bounding_box_conditions(lng: float, lat: float, max_km: float) -> list:
    """SQL predicates for a box containing every point within max_km."""
    angular = max_km / EARTH_RADIUS_KM
    dlat = math.degrees(angular)
    conditions = [Recipe.lat.between(lat - dlat, lat + dlat)]

    if abs(lat) + dlat >= 90:
        # box reaches a pole
        return conditions
    ratio = math.sin(angular) / math.cos(math.radians(lat))
    if ratio >= 1:
        return conditions
    dlng = math.degrees(math.asin(ratio))

    west, east = lng - dlng, lng + dlng
    if west < -180:
        conditions.append(or_(Recipe.lng >= west + 360, Recipe.lng <= east))
    elif east > 180:
        conditions.append(or_(Recipe.lng >= west, Recipe.lng <= east - 360))
    else:
        conditions.append(Recipe.lng.between(west, east))
    return conditions


# --- Query construction ---

def build_filter_conditions(params: FeedParams) -> list:
    conditions = []

    author_id = parse_identifier(params.author_id)
    if author_id is not None:
        conditions.append(Recipe.author_id == author_id)

    tags = parse_dish_types(params.dish_types)
    if tags:
        conditions.append(Recipe.dish_type_links.any(RecipeDishType.dish_type.in_(tags)))

    country = (params.country or "").strip()
    if country.lower() not in NO_COUNTRY_FILTER:
        conditions.append(Recipe.country == country)

    q = (params.q or "").strip()
    if q:
        pattern = f"%{escape_like(q)}%"
        conditions.append(
            or_(
                Recipe.title.ilike(pattern, escape="\\"),
                Recipe.description.ilike(pattern, escape="\\"),
                Recipe.ingredients.any(RecipeIngredient.name.ilike(pattern, escape="\\")),
            )
        )

    return conditions


def _sort_column(db: Session, field_name: str):
    column = SORT_FIELDS[field_name]
    if field_name in TEXT_SORT_FIELDS:
        if dialect_name(db) == "postgresql" and settings.text_collation:
            return column.collate(settings.text_collation)
        return column.collate("NOCASE") if dialect_name(db) == "sqlite" else column
    return column


def _base_query(db: Session):
    return db.query(Recipe).options(
        selectinload(Recipe.ingredients),
        selectinload(Recipe.dish_type_links),
        selectinload(Recipe.author),
    )


def _near_items(db: Session, conditions: list, near: tuple[float, float, float], limit: int) -> list[FeedItem]:
    lng, lat, max_km = near
    candidates = _base_query(db).filter(*conditions, *bounding_box_conditions(lng, lat, max_km)).all()

    scored = []
    for recipe in candidates:
        distance = haversine_km(lng, lat, recipe.lng, recipe.lat)
        if distance <= max_km:
            scored.append(FeedItem(recipe=recipe, distance_km=round(distance, 3)))
    scored.sort(key=lambda item: (item.distance_km, -item.recipe.id))
    return scored[: limit + 1]


def _sorted_items(db: Session, conditions: list, params: FeedParams, limit: int) -> list[FeedItem]:
    field_name, direction = parse_sort(params.sort)
    column = _sort_column(db, field_name)
    order = column.asc() if direction == "asc" else column.desc()

    query = _base_query(db).filter(*conditions)

    if (field_name, direction) == DEFAULT_SORT:
        # newest first by id; created_at is the transaction start time and can
        # disagree with insert order
        cursor_id = parse_identifier(params.cursor)
        if cursor_id is not None:
            query = query.filter(Recipe.id < cursor_id)
        query = query.order_by(Recipe.id.desc())
    else:
        query = query.order_by(order, Recipe.id.desc())

    recipes = query.limit(limit + 1).all()
    return [FeedItem(recipe=r) for r in recipes]


def annotate_likes(db: Session, items: list[FeedItem], viewer_id: Optional[int]) -> None:
    """Mark items the viewer has liked, with one query for the whole page.

    Errors are logged and leave the page unpersonalized.
    """
    if viewer_id is None or not items:
        return
    ids = [item.recipe.id for item in items]
    try:
        rows = (
            db.query(UserFavorite.recipe_id)
            .filter(UserFavorite.user_id == viewer_id, UserFavorite.recipe_id.in_(ids))
            .all()
        )
    except SQLAlchemyError as e:
        logger.warning(f"Skipping like personalization for viewer {viewer_id}: {e}")
        db.rollback()
        return
    liked = {row[0] for row in rows}
    for item in items:
        item.liked = item.recipe.id in liked


def query_recipes(db: Session, params: FeedParams, viewer_id: Optional[int] = None) -> FeedPage:
    limit = parse_limit(params.limit)
    conditions = build_filter_conditions(params)
    near = parse_near(params)

    if near is not None:
        items = _near_items(db, conditions, near, limit)
    else:
        items = _sorted_items(db, conditions, params, limit)

    has_next_page = len(items) > limit
    items = items[:limit]
    next_cursor = None
    if has_next_page and items and cursor_honored(params, near):
        next_cursor = str(items[-1].recipe.id)

    annotate_likes(db, items, viewer_id)

    logger.debug(f"Feed page: {len(items)} items, near={near is not None}, has_next={has_next_page}")
    return FeedPage(items=items, next_cursor=next_cursor, has_next_page=has_next_page, page_size=limit)
