"""Recipe create / read / update / delete.

Location payloads go through the resolver first; the resulting Location is
then copied onto the recipe (id, snapshot and point together).
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ..domain.errors import ForbiddenError, NotFoundError, ValidationError
from ..models import DISH_TYPES, Recipe, RecipeDishType, RecipeIngredient
from .locations import Geocoder, resolve_or_create_location

logger = logging.getLogger("localbite.recipes")

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_INSTRUCTION_LENGTH = 200
MAX_INGREDIENT_NAME_LENGTH = 100
MAX_UNIT_LENGTH = 20


def clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Missing title.")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title is too long. Max {MAX_TITLE_LENGTH} characters.")
    return title


def clean_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description is too long. Max {MAX_DESCRIPTION_LENGTH} characters.")
    return description


def clean_ingredients(ingredients) -> list[dict]:
    if not ingredients:
        raise ValidationError("Missing ingredients.")
    cleaned = []
    for item in ingredients:
        name = (item.get("name") or "").strip()
        unit = (item.get("unit") or "").strip() or None
        amount = item.get("amount")
        if not name:
            raise ValidationError("Every ingredient needs a name.")
        if len(name) > MAX_INGREDIENT_NAME_LENGTH:
            raise ValidationError(f"Ingredient name is too long. Max {MAX_INGREDIENT_NAME_LENGTH} characters.")
        if unit and len(unit) > MAX_UNIT_LENGTH:
            raise ValidationError(f"Ingredient unit is too long. Max {MAX_UNIT_LENGTH} characters.")
        if amount is not None and amount < 0:
            raise ValidationError("Ingredient amount cannot be negative.")
        cleaned.append({"name": name, "amount": amount, "unit": unit})
    return cleaned


def clean_instructions(instructions) -> list[str]:
    steps = [str(s).strip() for s in (instructions or []) if str(s).strip()]
    if not steps:
        raise ValidationError("Missing instructions.")
    for step in steps:
        if len(step) > MAX_INSTRUCTION_LENGTH:
            raise ValidationError(f"Instruction step is too long. Max {MAX_INSTRUCTION_LENGTH} characters.")
    return steps


def clean_dish_types(dish_types) -> list[str]:
    folded = {d.lower(): d for d in DISH_TYPES}
    result = []
    for raw in dish_types or []:
        tag = folded.get(str(raw).strip().lower())
        if tag is None:
            raise ValidationError(f"Unknown dish type: {raw}. Allowed: {', '.join(DISH_TYPES)}")
        if tag not in result:
            result.append(tag)
    return result


def _set_ingredients(recipe: Recipe, ingredients: list[dict]) -> None:
    recipe.ingredients = [
        RecipeIngredient(position=i, name=ing["name"], amount=ing["amount"], unit=ing["unit"])
        for i, ing in enumerate(ingredients)
    ]


def _set_dish_types(recipe: Recipe, dish_types: list[str]) -> None:
    # keep surviving rows so the composite key is never deleted and re-inserted
    existing = {link.dish_type: link for link in recipe.dish_type_links}
    recipe.dish_type_links = [existing.get(d) or RecipeDishType(dish_type=d) for d in dish_types]


def get_recipe(db: Session, recipe_id: int) -> Recipe:
    recipe = (
        db.query(Recipe)
        .options(
            selectinload(Recipe.ingredients),
            selectinload(Recipe.dish_type_links),
            selectinload(Recipe.author),
        )
        .filter(Recipe.id == recipe_id)
        .first()
    )
    if recipe is None:
        raise NotFoundError("Recipe", recipe_id)
    return recipe


def _require_location(location: Optional[dict]) -> dict:
    if not location or not isinstance(location, dict):
        raise ValidationError("Invalid location payload.")
    return location


def create_recipe(
    db: Session,
    author_id: int,
    payload: dict,
    *,
    geocoder: Optional[Geocoder] = None,
) -> Recipe:
    title = clean_title(payload.get("title"))
    description = clean_description(payload.get("description"))
    ingredients = clean_ingredients(payload.get("ingredients"))
    instructions = clean_instructions(payload.get("instructions"))
    dish_types = clean_dish_types(payload.get("dish_types"))
    location_in = _require_location(payload.get("location"))

    location = resolve_or_create_location(
        db,
        location_in.get("locality"),
        location_in.get("area"),
        location_in.get("country"),
        geocoder=geocoder,
    )

    recipe = Recipe(
        author_id=author_id,
        title=title,
        description=description,
        instructions=instructions,
        picture=(payload.get("picture") or None),
        like_count=0,
    )
    recipe.set_location(location)
    _set_ingredients(recipe, ingredients)
    _set_dish_types(recipe, dish_types)

    db.add(recipe)
    db.commit()
    logger.info(f"User {author_id} created recipe {recipe.id} at location {location.id}")
    return get_recipe(db, recipe.id)


def update_recipe(
    db: Session,
    recipe_id: int,
    actor_id: int,
    changes: dict,
    *,
    geocoder: Optional[Geocoder] = None,
) -> Recipe:
    """Apply a partial update. Only the author may edit."""
    recipe = get_recipe(db, recipe_id)
    if recipe.author_id != actor_id:
        raise ForbiddenError("Only the author can edit this recipe.")

    # Validate everything before touching the row
    updates = {}
    if changes.get("title") is not None:
        updates["title"] = clean_title(changes["title"])
    if changes.get("description") is not None:
        updates["description"] = clean_description(changes["description"])
    if changes.get("instructions") is not None:
        updates["instructions"] = clean_instructions(changes["instructions"])
    if "picture" in changes:
        updates["picture"] = changes["picture"] or None
    ingredients = clean_ingredients(changes["ingredients"]) if changes.get("ingredients") is not None else None
    dish_types = clean_dish_types(changes["dish_types"]) if changes.get("dish_types") is not None else None

    location = None
    if changes.get("location") is not None:
        location_in = _require_location(changes["location"])
        location = resolve_or_create_location(
            db,
            location_in.get("locality"),
            location_in.get("area"),
            location_in.get("country"),
            geocoder=geocoder,
        )
        # the resolver may have committed; reload before mutating
        recipe = get_recipe(db, recipe_id)

    for name, value in updates.items():
        setattr(recipe, name, value)
    if ingredients is not None:
        _set_ingredients(recipe, ingredients)
    if dish_types is not None:
        _set_dish_types(recipe, dish_types)
    if location is not None:
        recipe.set_location(location)

    db.commit()
    logger.info(f"User {actor_id} updated recipe {recipe_id}")
    return get_recipe(db, recipe_id)


def delete_recipe(db: Session, recipe_id: int, actor_id: int) -> None:
    recipe = get_recipe(db, recipe_id)
    if recipe.author_id != actor_id:
        raise ForbiddenError("Only the author can delete this recipe.")
    db.delete(recipe)
    db.commit()
    logger.info(f"User {actor_id} deleted recipe {recipe_id}")
