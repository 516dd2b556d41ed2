"""Gigmarket Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .logging_config import configure_logging, get_logger
from .marketplace import MarketplaceError
from .rate_limit import limiter
from .routes import (
    applications_router,
    auth_router,
    dashboard_router,
    gigs_router,
    notifications_router,
    skills_router,
    users_router,
)

logger = get_logger("gigmarket.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings)
    logger.info(f"Starting Gigmarket Backend API (debug={settings.debug})")
    yield
    logger.info("Shutting down Gigmarket Backend API")


app = FastAPI(
    title="Gigmarket Backend API",
    description="Gig marketplace: clients post gigs, freelancers apply and get assigned",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Login-Path", "X-Redirect-To"],
)

# Include routers
app.include_router(auth_router)
app.include_router(gigs_router)
app.include_router(applications_router)
app.include_router(notifications_router)
app.include_router(dashboard_router)
app.include_router(users_router)
app.include_router(skills_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "gigmarket-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    from .database import USERS_TABLE, get_supabase_client

    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table(USERS_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
