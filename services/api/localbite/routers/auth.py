"""Auth & profile API router.

Endpoints:
- POST /api/auth/signup - Create account and start a session
- POST /api/auth/signin - Sign in with email or username
- POST /api/auth/signout - Clear the session
- GET /api/auth/me - Current user
- PATCH /api/auth/profile - Edit profile (location is resolved/geocoded)
- DELETE /api/auth/profile - Delete account, releasing its likes
- GET /api/auth/profile/{username} - Public profile
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import SESSION_USER_KEY, get_current_user_id, get_geocoder_dep
from ..models import User
from ..schemas import (
    DefaultLocationOut,
    ProfileUpdate,
    PublicProfileOut,
    SigninIn,
    SignupIn,
    UserOut,
)
from ..services import users
from ..services.likes import favorite_ids

router = APIRouter()
logger = logging.getLogger("localbite.auth")


def _user_to_out(db: Session, user: User) -> UserOut:
    loc = user.default_location
    return UserOut(
        id=user.id,
        fullname=user.fullname,
        username=user.username,
        email=user.email,
        bio=user.bio,
        favs=favorite_ids(db, user.id),
        default_location_id=user.default_location_id,
        default_location=DefaultLocationOut(
            id=loc.id, locality=loc.locality, area=loc.area, country=loc.country
        ) if loc else None,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.post("/signup", response_model=UserOut, status_code=201)
def signup(payload: SignupIn, request: Request, db: Session = Depends(get_db)):
    user = users.create_user(
        db,
        fullname=payload.fullname,
        username=payload.username,
        email=payload.email,
        password=payload.password,
    )
    request.session[SESSION_USER_KEY] = user.id
    return _user_to_out(db, user)


@router.post("/signin", response_model=UserOut)
def signin(payload: SigninIn, request: Request, db: Session = Depends(get_db)):
    if not payload.identifier or not payload.password:
        raise HTTPException(status_code=400, detail="Missing credentials.")
    user = users.authenticate(db, payload.identifier, payload.password)
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid credentials.")
    request.session[SESSION_USER_KEY] = user.id
    logger.info(f"User {user.id} signed in")
    return _user_to_out(db, user)


@router.post("/signout")
def signout(request: Request):
    request.session.clear()
    return {"message": "Logged Out"}


@router.get("/me", response_model=UserOut)
def me(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return _user_to_out(db, users.get_user(db, user_id))


@router.patch("/profile", response_model=UserOut)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    geocoder=Depends(get_geocoder_dep),
):
    user = users.update_profile(db, user_id, payload.model_dump(exclude_unset=True), geocoder=geocoder)
    return _user_to_out(db, user)


@router.delete("/profile", status_code=204)
def delete_profile(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    users.delete_user(db, user_id)
    request.session.clear()
    return Response(status_code=204)


@router.get("/profile/{username}", response_model=PublicProfileOut)
def get_profile(username: str, db: Session = Depends(get_db)):
    user = users.get_user_by_username(db, username)
    return PublicProfileOut(id=user.id, fullname=user.fullname, username=user.username, bio=user.bio)
