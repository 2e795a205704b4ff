"""Like / unlike a recipe.

The favorites row and the recipe's ``like_count`` change in the same
transaction; the counter is adjusted with a single ``UPDATE ... SET
like_count = like_count +/- 1`` so concurrent likes never lose updates.
"""

import logging

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.errors import NotFoundError
from ..models import Recipe, User, UserFavorite

logger = logging.getLogger("localbite.likes")


def _require(db: Session, user_id: int, recipe_id: int) -> None:
    if db.get(Recipe, recipe_id) is None:
        raise NotFoundError("Recipe", recipe_id)
    if db.get(User, user_id) is None:
        raise NotFoundError("User", user_id)


def _current_count(db: Session, recipe_id: int) -> int:
    return db.query(Recipe.like_count).filter(Recipe.id == recipe_id).scalar() or 0


def like_recipe(db: Session, user_id: int, recipe_id: int) -> int:
    """Add recipe to the user's favorites. Liking twice is a no-op.

    Returns the recipe's like count after the operation.
    """
    _require(db, user_id, recipe_id)

    try:
        db.execute(insert(UserFavorite).values(user_id=user_id, recipe_id=recipe_id))
    except IntegrityError:
        db.rollback()
        logger.debug(f"User {user_id} already likes recipe {recipe_id}")
        return _current_count(db, recipe_id)

    try:
        db.execute(
            update(Recipe)
            .where(Recipe.id == recipe_id)
            .values(like_count=Recipe.like_count + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"User {user_id} liked recipe {recipe_id}")
    return _current_count(db, recipe_id)


def unlike_recipe(db: Session, user_id: int, recipe_id: int) -> int:
    """Remove recipe from the user's favorites. Unliking twice is a no-op."""
    _require(db, user_id, recipe_id)

    try:
        result = db.execute(
            delete(UserFavorite)
            .where(UserFavorite.user_id == user_id, UserFavorite.recipe_id == recipe_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            return _current_count(db, recipe_id)

        db.execute(
            update(Recipe)
            .where(Recipe.id == recipe_id, Recipe.like_count > 0)
            .values(like_count=Recipe.like_count - 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"User {user_id} unliked recipe {recipe_id}")
    return _current_count(db, recipe_id)


def favorite_ids(db: Session, user_id: int) -> list[int]:
    rows = (
        db.query(UserFavorite.recipe_id)
        .filter(UserFavorite.user_id == user_id)
        .order_by(UserFavorite.created_at, UserFavorite.recipe_id)
        .all()
    )
    return [row[0] for row in rows]
