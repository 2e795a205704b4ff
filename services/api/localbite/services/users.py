"""Account management: signup, credential checks, profile edits, deletion."""

from __future__ import annotations

import logging
import re
from typing import Optional

import bcrypt
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..domain.errors import NotFoundError, ValidationError
from ..models import Recipe, User, UserFavorite
from ..settings import settings
from .locations import Geocoder, resolve_or_create_location

logger = logging.getLogger("localbite.auth")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
MAX_BIO_LENGTH = 200


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


def _email_taken(db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _username_taken(db: Session, username: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User.id).filter(func.lower(User.username) == username.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def create_user(db: Session, *, fullname: str, username: str, email: str, password: str) -> User:
    fullname = (fullname or "").strip()
    username = (username or "").strip()
    email = (email or "").strip().lower()

    if not fullname or not username or not email or not password:
        raise ValidationError("Missing credentials.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if not EMAIL_RE.match(email):
        raise ValidationError("Not valid email.")
    if _email_taken(db, email):
        raise ValidationError("This email is already used.")
    if _username_taken(db, username):
        raise ValidationError("This username is already used.")

    user = User(
        fullname=fullname,
        username=username,
        email=email,
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {user.id} ({user.username})")
    return user


def authenticate(db: Session, identifier: str, password: str) -> Optional[User]:
    """Look the user up by email or username and check the password."""
    login = (identifier or "").strip()
    if not login or not password:
        return None
    if EMAIL_RE.match(login):
        user = db.query(User).filter(User.email == login.lower()).first()
    else:
        user = db.query(User).filter(User.username == login).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_user_by_username(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFoundError("User", username)
    return user


def update_profile(
    db: Session,
    user_id: int,
    changes: dict,
    *,
    geocoder: Optional[Geocoder] = None,
) -> User:
    """Apply the provided profile fields. ``location`` is resolved to a default location."""
    user = get_user(db, user_id)
    update_values = {}

    if changes.get("fullname") is not None:
        fullname = str(changes["fullname"]).strip()
        if not fullname:
            raise ValidationError("Full name cannot be empty.")
        update_values["fullname"] = fullname

    if changes.get("username") is not None:
        username = str(changes["username"]).strip()
        if not username:
            raise ValidationError("Username cannot be empty.")
        if username != user.username:
            if _username_taken(db, username, exclude_id=user_id):
                raise ValidationError("Username already taken.")
            update_values["username"] = username

    if changes.get("email") is not None:
        email = str(changes["email"]).strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Not valid email.")
        if _email_taken(db, email, exclude_id=user_id):
            raise ValidationError("Email already used.")
        update_values["email"] = email

    if changes.get("bio") is not None:
        bio = str(changes["bio"]).strip()
        if len(bio) > MAX_BIO_LENGTH:
            raise ValidationError(f"Bio is too long. Max {MAX_BIO_LENGTH} characters.")
        update_values["bio"] = bio

    location = changes.get("location")
    if location is not None:
        loc = resolve_or_create_location(
            db,
            location.get("locality"),
            location.get("area"),
            location.get("country"),
            geocoder=geocoder,
        )
        update_values["default_location_id"] = loc.id

    if not update_values:
        raise ValidationError("No changes provided.")

    # resolving a location may have committed and expired the instance
    user = get_user(db, user_id)
    for name, value in update_values.items():
        setattr(user, name, value)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    """Delete the account, handing back every like it contributed."""
    user = get_user(db, user_id)
    liked_ids = [
        row[0] for row in db.query(UserFavorite.recipe_id).filter(UserFavorite.user_id == user_id).all()
    ]
    try:
        if liked_ids:
            db.execute(
                update(Recipe)
                .where(Recipe.id.in_(liked_ids), Recipe.like_count > 0)
                .values(like_count=Recipe.like_count - 1)
                .execution_options(synchronize_session=False)
            )
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted user {user_id}, released {len(liked_ids)} likes")
