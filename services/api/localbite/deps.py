"""FastAPI dependencies for the LocalBite API.

Provides:
- Database session dependency
- Session-cookie identity (required and optional variants)
- The geocoder used by location-resolving endpoints
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .db import get_db
from .domain.errors import AuthenticationError
from .models import User
from .services.feed import parse_identifier
from .services.geocoding import get_geocoder

logger = logging.getLogger("localbite.auth")

SESSION_USER_KEY = "user_id"


def _session_user_id(request: Request) -> Optional[int]:
    session = request.scope.get("session")
    if not session:
        return None
    return parse_identifier(session.get(SESSION_USER_KEY))


def get_current_user_id(
    request: Request,
    db: Session = Depends(get_db),
) -> int:
    """Return the signed-in user's id or 401.

    The cookie is signed and carries its own expiry, so a tampered or expired
    cookie simply shows up as an empty session here.
    """
    user_id = _session_user_id(request)
    if user_id is None:
        raise AuthenticationError("Unauthorized - No Session")
    if db.get(User, user_id) is None:
        request.session.clear()
        raise AuthenticationError("Unauthorized - Unknown User")
    return user_id


def get_optional_user_id(request: Request) -> Optional[int]:
    """Like get_current_user_id but never fails; used for personalization."""
    try:
        return _session_user_id(request)
    except Exception as e:
        logger.warning(f"Could not read session identity: {e}")
        return None


def get_geocoder_dep():
    return get_geocoder()
