"""Document models for the gig marketplace.

Rows come back from the store as loosely-typed dicts. Every read site
parses them through these models so optional fields get explicit defaults
and unknown statuses fail loudly instead of leaking into the lifecycle.
Money is Decimal in memory and float on the wire to Postgres.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class UserRole(str, Enum):
    """Account roles. Role is fixed at registration."""

    admin = "admin"
    job_poster = "job_poster"
    freelancer = "freelancer"


class GigStatus(str, Enum):
    """Gig lifecycle states, in forward order."""

    open = "open"
    assigned = "assigned"
    in_progress = "in-progress"
    in_review = "in-review"
    completed = "completed"


class GigPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ApplicationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class NotificationType(str, Enum):
    application_accepted = "application_accepted"
    application_rejected = "application_rejected"
    assignment = "assignment"
    status_update = "status_update"
    milestone = "milestone"


# Statuses a client may pick directly from the status selector
OVERRIDE_STATUSES = frozenset({GigStatus.open, GigStatus.in_progress, GigStatus.completed})

# Statuses counted as "active" work on dashboards
ACTIVE_STATUSES = frozenset({GigStatus.assigned, GigStatus.in_progress})

# Selectable skills offered by the gig form and the registration form
SKILL_CATALOG = (
    "Web Development",
    "Mobile Development",
    "UI/UX Design",
    "Graphic Design",
    "Content Writing",
    "Digital Marketing",
    "SEO",
    "Data Analysis",
    "Video Editing",
    "Social Media Management",
    "Data Entry",
    "Virtual Assistant",
)


# =============================================================================
# Documents
# =============================================================================


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserProfile(_Document):
    """Profile record stored under the identity's id."""

    id: str
    email: str
    role: UserRole
    name: str
    skills: list[str] = Field(default_factory=list)
    rating: float | None = Field(None, ge=0, le=5)
    completed_gigs: int | None = Field(None, ge=0)
    created_at: datetime | None = None


class Milestone(_Document):
    id: str
    title: str
    description: str = ""
    completed: bool = False
    due_date: date


class Gig(_Document):
    id: str
    title: str
    description: str
    status: GigStatus
    priority: GigPriority = GigPriority.medium
    poster_id: str
    assigned_to: str | None = None
    budget: Decimal = Field(..., gt=0)
    deadline: date
    skills: list[str] = Field(default_factory=list)
    progress: int | None = Field(None, ge=0, le=100)
    milestones: list[Milestone] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None


class Application(_Document):
    id: str
    gig_id: str
    freelancer_id: str
    cover_letter: str
    status: ApplicationStatus
    created_at: datetime
    updated_at: datetime | None = None


class Notification(_Document):
    id: str
    user_id: str
    type: NotificationType
    message: str
    read: bool = False
    created_at: datetime
    related_gig_id: str | None = None
