"""Recipes API router.

Endpoints:
- GET /api/recipes - Paginated, filterable, geo-aware feed
- POST /api/recipes - Create recipe (resolves/geocodes its location)
- GET /api/recipes/{id} - Get recipe
- PATCH /api/recipes/{id} - Update recipe (author only)
- DELETE /api/recipes/{id} - Delete recipe (author only)
- PATCH /api/recipes/{id}/like - Like (idempotent)
- PATCH /api/recipes/{id}/dislike - Remove like (idempotent)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user_id, get_geocoder_dep, get_optional_user_id
from ..models import Recipe
from ..schemas import (
    AuthorOut,
    IngredientOut,
    LikeOut,
    LocationSnapshot,
    PointOut,
    RecipeCreate,
    RecipeFeedOut,
    RecipeOut,
    RecipePatch,
)
from ..services import feed, likes, recipes as recipe_service
from ..services.feed import FeedParams, annotate_likes, FeedItem
from ..settings import settings

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger("localbite.recipes")


def _recipe_to_out(recipe: Recipe, liked: bool = False, distance_km: Optional[float] = None) -> RecipeOut:
    author = recipe.author
    return RecipeOut(
        id=recipe.id,
        author_id=recipe.author_id,
        author=AuthorOut(id=author.id, username=author.username, fullname=author.fullname) if author else None,
        title=recipe.title,
        description=recipe.description or "",
        ingredients=[IngredientOut(name=i.name, amount=i.amount, unit=i.unit) for i in recipe.ingredients],
        instructions=list(recipe.instructions or []),
        dish_types=recipe.dish_types,
        picture=recipe.picture,
        location_id=recipe.location_id,
        location_snapshot=LocationSnapshot(**recipe.location_snapshot),
        point=PointOut(**recipe.point),
        like_count=recipe.like_count,
        liked=liked,
        distance_km=distance_km,
        created_at=recipe.created_at,
        updated_at=recipe.updated_at,
    )


def _parse_recipe_id(recipe_id: str) -> int:
    ident = feed.parse_identifier(recipe_id)
    if ident is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return ident


def _personalized(db: Session, recipe: Recipe, viewer_id: Optional[int]) -> RecipeOut:
    item = FeedItem(recipe=recipe)
    annotate_likes(db, [item], viewer_id)
    return _recipe_to_out(item.recipe, liked=item.liked)


@router.get("/recipes", response_model=RecipeFeedOut)
def list_recipes(
    db: Session = Depends(get_db),
    viewer_id: Optional[int] = Depends(get_optional_user_id),
    limit: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    dish_types: Optional[str] = Query(None, alias="dishTypes"),
    country: Optional[str] = Query(None),
    author_id: Optional[str] = Query(None, alias="authorId"),
    near_lng: Optional[str] = Query(None, alias="nearLng"),
    near_lat: Optional[str] = Query(None, alias="nearLat"),
    max_km: Optional[str] = Query(None, alias="maxKm"),
    sort: Optional[str] = Query(None),
):
    """Recipe feed. Malformed parameters are ignored rather than rejected."""
    params = FeedParams(
        limit=limit,
        cursor=cursor,
        q=q,
        dish_types=dish_types,
        country=country,
        author_id=author_id,
        near_lng=near_lng,
        near_lat=near_lat,
        max_km=max_km,
        sort=sort,
    )
    page = feed.query_recipes(db, params, viewer_id=viewer_id)

    return RecipeFeedOut(
        items=[_recipe_to_out(i.recipe, liked=i.liked, distance_km=i.distance_km) for i in page.items],
        next_cursor=page.next_cursor,
        has_next_page=page.has_next_page,
        page_size=page.page_size,
        count=page.count,
    )


@router.post("/recipes", response_model=RecipeOut, status_code=201)
@limiter.limit(settings.recipe_write_rate_limit)
def create_recipe(
    request: Request,  # Required for rate limiter
    payload: RecipeCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    geocoder=Depends(get_geocoder_dep),
):
    """Create a recipe; its location is resolved (and geocoded on first use)."""
    recipe = recipe_service.create_recipe(db, user_id, payload.model_dump(), geocoder=geocoder)
    return _recipe_to_out(recipe)


@router.get("/recipes/{recipe_id}", response_model=RecipeOut)
def get_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    viewer_id: Optional[int] = Depends(get_optional_user_id),
):
    recipe = recipe_service.get_recipe(db, _parse_recipe_id(recipe_id))
    return _personalized(db, recipe, viewer_id)


@router.patch("/recipes/{recipe_id}", response_model=RecipeOut)
@limiter.limit(settings.recipe_write_rate_limit)
def update_recipe(
    request: Request,  # Required for rate limiter
    recipe_id: str,
    payload: RecipePatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    geocoder=Depends(get_geocoder_dep),
):
    """Partial update; a new location rewrites the location id, snapshot and point together."""
    changes = payload.model_dump(exclude_unset=True)
    recipe = recipe_service.update_recipe(db, _parse_recipe_id(recipe_id), user_id, changes, geocoder=geocoder)
    return _personalized(db, recipe, user_id)


@router.delete("/recipes/{recipe_id}", status_code=204)
def delete_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    recipe_service.delete_recipe(db, _parse_recipe_id(recipe_id), user_id)
    return Response(status_code=204)


@router.patch("/recipes/{recipe_id}/like", response_model=LikeOut)
def like_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    rid = _parse_recipe_id(recipe_id)
    count = likes.like_recipe(db, user_id, rid)
    return LikeOut(recipe_id=rid, like_count=count, liked=True)


@router.patch("/recipes/{recipe_id}/dislike", response_model=LikeOut)
def dislike_recipe(
    recipe_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    rid = _parse_recipe_id(recipe_id)
    count = likes.unlike_recipe(db, user_id, rid)
    return LikeOut(recipe_id=rid, like_count=count, liked=False)
