# LocalBite API Main Entry Point
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from .settings import settings
from .domain.errors import LocalBiteError
from .routers.ready import router as ready_router
from .routers.auth import router as auth_router
from .routers.locations import router as locations_router
from .routers.recipes import router as recipes_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("localbite")

# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

app = FastAPI(title="LocalBite API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(LocalBiteError)
async def localbite_error_handler(request: Request, exc: LocalBiteError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="localbite_session",
    max_age=settings.session_max_age_sec,
    same_site="lax",
    https_only=settings.session_https_only,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(locations_router, prefix="/api/loc", tags=["locations"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
