"""Gig marketplace: documents, lifecycle planning, commits and dashboards."""

from .dashboard import DashboardSummary, compute_dashboard, load_dashboard, refresh_dashboard
from .errors import (
    DuplicateApplicationError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    TransitionConflictError,
    ValidationFailedError,
)
from .lifecycle import (
    TransitionPlan,
    plan_acceptance,
    plan_assignment,
    plan_rejection,
    plan_status_override,
)
from .models import (
    SKILL_CATALOG,
    Application,
    ApplicationStatus,
    Gig,
    GigPriority,
    GigStatus,
    Milestone,
    Notification,
    NotificationType,
    UserProfile,
    UserRole,
)
from .service import CommitResult, GigService, NotificationService

__all__ = [
    # Models
    "SKILL_CATALOG",
    "Application",
    "ApplicationStatus",
    "Gig",
    "GigPriority",
    "GigStatus",
    "Milestone",
    "Notification",
    "NotificationType",
    "UserProfile",
    "UserRole",
    # Errors
    "MarketplaceError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "TransitionConflictError",
    "DuplicateApplicationError",
    "ValidationFailedError",
    # Lifecycle
    "TransitionPlan",
    "plan_acceptance",
    "plan_rejection",
    "plan_assignment",
    "plan_status_override",
    # Services
    "CommitResult",
    "GigService",
    "NotificationService",
    # Dashboards
    "DashboardSummary",
    "compute_dashboard",
    "load_dashboard",
    "refresh_dashboard",
]
