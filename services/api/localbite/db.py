"""Database engine and session wiring for LocalBite.

The engine is created lazily from ``settings.database_url`` so tests can
point the app at SQLite before anything connects.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def init_engine(database_url: str | None = None) -> Engine:
    global _engine, _SessionLocal
    url = database_url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    if url.startswith("sqlite"):
        register_sqlite_functions(_engine)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def register_sqlite_functions(engine: Engine) -> None:
    """Replace SQLite's ASCII-only lower() so ILIKE folds accented letters too."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def SessionLocal() -> sessionmaker:
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def get_db():
    db = SessionLocal()()
    try:
        yield db
    finally:
        db.close()


def dialect_name(db: Session) -> str:
    """Name of the dialect the session is bound to ("postgresql", "sqlite", ...)."""
    return db.get_bind().dialect.name
