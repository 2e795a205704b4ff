"""SQLAlchemy ORM models for LocalBite.

Tables:
- users: Accounts (bcrypt password hash, optional default location)
- locations: Interned, deduplicated geocoded places (append-only, unique key)
- recipes: Shared dishes with a denormalized location snapshot + point
- recipe_ingredients: Ordered ingredient rows for a recipe
- recipe_dish_types: Dish type tags for a recipe
- user_favorites: Which user liked which recipe (source of truth for like_count)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Float,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base

DISH_TYPES = (
    "Breakfast",
    "Lunch",
    "Dinner",
    "Dessert",
    "Vegan",
    "BBQ",
    "Soup",
    "Salad",
    "Drink",
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


def geo_point(lng: float, lat: float) -> dict:
    return {"type": "Point", "coordinates": [lng, lat]}


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    fullname: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    default_location_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("locations.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    default_location: Mapped[Optional["Location"]] = relationship("Location")
    recipes: Mapped[list["Recipe"]] = relationship(
        "Recipe", back_populates="author", cascade="all, delete-orphan"
    )
    favorites: Mapped[list["UserFavorite"]] = relationship(
        "UserFavorite", back_populates="user", cascade="all, delete-orphan"
    )


class Location(Base):
    """Canonical place record, one row per normalized key.

    Rows are created on first reference and never updated afterwards.
    """
    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("key", name="uq_locations_key"),
        Index("ix_locations_lat_lng", "lat", "lng"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(400), nullable=False)

    locality: Mapped[str] = mapped_column(String(120), nullable=False)
    area: Mapped[str] = mapped_column(String(120), nullable=False)
    country: Mapped[str] = mapped_column(String(120), nullable=False)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)

    lng: Mapped[float] = mapped_column(Float, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    provider: Mapped[str] = mapped_column(String(40), nullable=False, server_default="maptiler")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def point(self) -> dict:
        return geo_point(self.lng, self.lat)


class Recipe(Base):
    """A shared dish.

    ``locality``/``area``/``country`` and ``lng``/``lat`` are copies of the
    referenced Location and are only ever written together with ``location_id``.
    """
    __tablename__ = "recipes"
    __table_args__ = (
        CheckConstraint("like_count >= 0", name="ck_recipes_like_count_non_negative"),
        Index("ix_recipes_author_id", "author_id"),
        Index("ix_recipes_location_id", "location_id"),
        Index("ix_recipes_created_id_desc", "created_at", "id"),
        Index("ix_recipes_snapshot", "country", "area", "locality"),
        Index("ix_recipes_lat_lng", "lat", "lng"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    instructions: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    picture: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id"), nullable=False
    )
    locality: Mapped[str] = mapped_column(String(120), nullable=False)
    area: Mapped[str] = mapped_column(String(120), nullable=False)
    country: Mapped[str] = mapped_column(String(120), nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)

    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    author: Mapped["User"] = relationship("User", back_populates="recipes")
    location: Mapped["Location"] = relationship("Location")
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
    )
    dish_type_links: Mapped[list["RecipeDishType"]] = relationship(
        "RecipeDishType", back_populates="recipe", cascade="all, delete-orphan"
    )
    favorited_by: Mapped[list["UserFavorite"]] = relationship(
        "UserFavorite", back_populates="recipe", cascade="all, delete-orphan"
    )

    @property
    def dish_types(self) -> list[str]:
        return sorted(link.dish_type for link in self.dish_type_links)

    @property
    def point(self) -> dict:
        return geo_point(self.lng, self.lat)

    @property
    def location_snapshot(self) -> dict:
        return {"locality": self.locality, "area": self.area, "country": self.country}

    def set_location(self, location: Location) -> None:
        """Point the recipe at ``location`` and refresh every cached copy of it."""
        self.location_id = location.id
        self.locality = location.locality
        self.area = location.area
        self.country = location.country
        self.lng = location.lng
        self.lat = location.lat


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")


class RecipeDishType(Base):
    __tablename__ = "recipe_dish_types"
    __table_args__ = (
        Index("ix_recipe_dish_types_dish_type", "dish_type"),
    )

    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True
    )
    dish_type: Mapped[str] = mapped_column(String(20), primary_key=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="dish_type_links")


class UserFavorite(Base):
    """One row per (user, recipe) like. The composite key makes a like idempotent."""
    __tablename__ = "user_favorites"
    __table_args__ = (
        Index("ix_user_favorites_recipe_id", "recipe_id"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped["User"] = relationship("User", back_populates="favorites")
    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="favorited_by")
