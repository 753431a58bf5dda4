"""
Pumpkin Patch FastAPI Application - Main entry point.

A pumpkin carving contest: users submit carvings, admins moderate them,
and every signed-in user holds exactly one vote they can move between
approved pumpkins at any time.

- /api/v1/auth/*         - Registration, login, current user
- /api/v1/pumpkins/*     - Gallery, submission, live feed
- /api/v1/leaderboard    - Approved pumpkins ranked by votes
- /api/v1/votes/*        - Cast and read votes
- /api/v1/admin/*        - Moderation and vote maintenance
- /api/health            - Health check
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import PumpkinPatchError
from app.db.base import init_db
from app.schemas.common import HealthResponse

from app.api.v1 import auth, pumpkins, votes
from app.api.v1.admin import admin_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: create tables if missing
    await init_db()
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
Pumpkin Patch - carve, submit, vote.

- **Gallery**: approved pumpkins, with a live Server-Sent Events feed
- **Voting**: one vote per user, movable between pumpkins
- **Moderation**: admins approve or reject submissions
    """,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 API ENDPOINTS
# ============================================================================

app.include_router(
    auth.router,
    prefix=f"{settings.API_V1_PREFIX}/auth",
    tags=["auth"]
)

app.include_router(
    pumpkins.router,
    prefix=f"{settings.API_V1_PREFIX}/pumpkins",
    tags=["pumpkins"]
)

app.include_router(
    pumpkins.leaderboard_router,
    prefix=f"{settings.API_V1_PREFIX}/leaderboard",
    tags=["leaderboard"]
)

app.include_router(
    votes.router,
    prefix=f"{settings.API_V1_PREFIX}/votes",
    tags=["votes"]
)

# Admin module - /api/v1/admin/*
app.include_router(
    admin_router,
    prefix=settings.API_V1_PREFIX,
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(PumpkinPatchError)
async def pumpkin_patch_exception_handler(request: Request, exc: PumpkinPatchError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
