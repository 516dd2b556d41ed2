"""API routes."""

from .applications import router as applications_router
from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .gigs import router as gigs_router
from .notifications import router as notifications_router
from .skills import router as skills_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "gigs_router",
    "applications_router",
    "notifications_router",
    "dashboard_router",
    "users_router",
    "skills_router",
]
