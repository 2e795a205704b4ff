import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Update

from conftest import make_recipe, make_user
from localbite.domain.errors import NotFoundError
from localbite.models import Recipe, UserFavorite
from localbite.services.likes import favorite_ids, like_recipe, unlike_recipe


def _count(db, recipe_id):
    db.expire_all()
    return db.get(Recipe, recipe_id).like_count


def test_like_is_idempotent(db_session, user, paris):
    recipe = make_recipe(db_session, user, paris)
    fan = make_user(db_session, "fan")

    assert like_recipe(db_session, fan.id, recipe.id) == 1
    assert like_recipe(db_session, fan.id, recipe.id) == 1
    assert _count(db_session, recipe.id) == 1
    assert favorite_ids(db_session, fan.id) == [recipe.id]


def test_likes_from_different_users_add_up(db_session, user, paris):
    recipe = make_recipe(db_session, user, paris)
    for name in ("fan1", "fan2", "fan3"):
        like_recipe(db_session, make_user(db_session, name).id, recipe.id)

    assert _count(db_session, recipe.id) == 3
    assert db_session.query(UserFavorite).filter(UserFavorite.recipe_id == recipe.id).count() == 3


def test_unlike_without_like_is_a_noop(db_session, user, paris):
    recipe = make_recipe(db_session, user, paris, like_count=0)

    assert unlike_recipe(db_session, user.id, recipe.id) == 0
    assert unlike_recipe(db_session, user.id, recipe.id) == 0
    assert _count(db_session, recipe.id) == 0


def test_like_then_unlike_twice(db_session, user, paris):
    recipe = make_recipe(db_session, user, paris)
    fan = make_user(db_session, "fan")

    like_recipe(db_session, fan.id, recipe.id)
    assert unlike_recipe(db_session, fan.id, recipe.id) == 0
    assert unlike_recipe(db_session, fan.id, recipe.id) == 0
    assert favorite_ids(db_session, fan.id) == []


def test_count_never_goes_negative(db_session, user, paris):
    # favorites row exists but the counter is already at zero
    recipe = make_recipe(db_session, user, paris, like_count=0)
    db_session.add(UserFavorite(user_id=user.id, recipe_id=recipe.id))
    db_session.commit()

    assert unlike_recipe(db_session, user.id, recipe.id) == 0
    assert _count(db_session, recipe.id) == 0


def test_missing_recipe(db_session, user):
    with pytest.raises(NotFoundError):
        like_recipe(db_session, user.id, 999)


# --- API ---

def test_like_endpoints_and_personalization(auth_client, db_session, user, paris):
    author = make_user(db_session, "chef")
    recipe = make_recipe(db_session, author, paris, title="Tarte")

    resp = auth_client.patch(f"/api/recipes/{recipe.id}/like")
    assert resp.status_code == 200
    assert resp.json() == {"recipeId": recipe.id, "likeCount": 1, "liked": True}

    resp = auth_client.patch(f"/api/recipes/{recipe.id}/like")
    assert resp.json()["likeCount"] == 1

    feed = auth_client.get("/api/recipes").json()
    assert feed["items"][0]["liked"] is True
    assert auth_client.get(f"/api/recipes/{recipe.id}").json()["liked"] is True
    assert auth_client.get("/api/auth/me").json()["favs"] == [recipe.id]

    resp = auth_client.patch(f"/api/recipes/{recipe.id}/dislike")
    assert resp.json() == {"recipeId": recipe.id, "likeCount": 0, "liked": False}
    assert auth_client.get(f"/api/recipes/{recipe.id}").json()["liked"] is False


def test_like_requires_session(client, db_session, user, paris):
    recipe = make_recipe(db_session, user, paris)

    resp = client.patch(f"/api/recipes/{recipe.id}/like")
    assert resp.status_code == 401


def test_like_unknown_recipe_is_404(auth_client):
    assert auth_client.patch("/api/recipes/424242/like").status_code == 404
    assert auth_client.patch("/api/recipes/not-an-id/like").status_code == 404


def _fail_counter_updates(monkeypatch, db):
    """Make the like_count UPDATE blow up after the favorites row was written."""
    real_execute = db.execute

    def execute(statement, *args, **kwargs):
        if isinstance(statement, Update):
            raise OperationalError(str(statement), {}, Exception("database is locked"))
        return real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)


def test_like_rolls_back_favorite_when_counter_update_fails(db_session, user, paris, monkeypatch):
    recipe = make_recipe(db_session, user, paris, like_count=2)
    fan = make_user(db_session, "fan")
    _fail_counter_updates(monkeypatch, db_session)

    with pytest.raises(OperationalError):
        like_recipe(db_session, fan.id, recipe.id)

    monkeypatch.undo()
    assert _count(db_session, recipe.id) == 2
    assert db_session.query(UserFavorite).filter(UserFavorite.user_id == fan.id).count() == 0

    # nothing half-applied blocks a later like
    assert like_recipe(db_session, fan.id, recipe.id) == 3


def test_unlike_keeps_favorite_when_counter_update_fails(db_session, user, paris, monkeypatch):
    recipe = make_recipe(db_session, user, paris)
    fan = make_user(db_session, "fan")
    like_recipe(db_session, fan.id, recipe.id)
    _fail_counter_updates(monkeypatch, db_session)

    with pytest.raises(OperationalError):
        unlike_recipe(db_session, fan.id, recipe.id)

    monkeypatch.undo()
    assert _count(db_session, recipe.id) == 1
    assert favorite_ids(db_session, fan.id) == [recipe.id]
