"""Gig routes.

Endpoints for posting gigs, applying, and moving a gig through its
lifecycle. Business rules live in :mod:`app.marketplace`; these handlers
validate input, log, and shape responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from ..auth import ClientUser, CurrentUser, FreelancerUser
from ..config import Settings, get_settings
from ..database import Database
from ..logging_config import get_logger
from ..marketplace import (
    SKILL_CATALOG,
    Application,
    CommitResult,
    Gig,
    GigPriority,
    GigService,
    GigStatus,
    UserProfile,
)
from ..rate_limit import limiter

logger = get_logger("gigmarket.gigs")
router = APIRouter(prefix="/gigs", tags=["gigs"])


# =============================================================================
# Request/Response Models
# =============================================================================


def _required_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("This field is required")
    return v


class GigCreate(BaseModel):
    """Request to post a gig. Rejected here, before any write, if invalid."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    budget: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    deadline: date
    skills: list[str] = Field(..., min_length=1)
    priority: GigPriority = GigPriority.medium

    @field_validator("title", "description")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        return _required_text(v)

    @field_validator("deadline")
    @classmethod
    def deadline_not_past(cls, v: date) -> date:
        if v < date.today():
            raise ValueError("Deadline cannot be in the past")
        return v

    @field_validator("skills")
    @classmethod
    def skills_in_catalog(cls, v: list[str]) -> list[str]:
        unknown = [s for s in v if s not in SKILL_CATALOG]
        if unknown:
            raise ValueError(f"Unknown skills: {', '.join(unknown)}")
        return list(dict.fromkeys(v))


class ApplicationCreate(BaseModel):
    cover_letter: str = Field(..., min_length=1, max_length=5000)

    @field_validator("cover_letter")
    @classmethod
    def cover_letter_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Cover letter is required")
        return v


class AssignRequest(BaseModel):
    freelancer_id: str = Field(..., min_length=1)


class StatusUpdate(BaseModel):
    status: GigStatus


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    due_date: date

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _required_text(v)


class ProgressUpdate(BaseModel):
    progress: int = Field(..., ge=0, le=100)


class GigResponse(Gig):
    application_count: int | None = None


class GigListResponse(BaseModel):
    gigs: list[Gig]
    total: int
    limit: int
    offset: int


class ApplicationWithApplicantResponse(Application):
    applicant: UserProfile | None = None


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationWithApplicantResponse]
    total: int


class TransitionResponse(BaseModel):
    """Records changed by a lifecycle transition."""

    gig: Gig | None = None
    applications: list[Application]
    notifications_sent: int


class TransitionLogEntry(BaseModel):
    action: str
    actor_id: str
    from_status: str | None = None
    to_status: str | None = None
    created_at: datetime


def to_transition_response(result: CommitResult) -> TransitionResponse:
    return TransitionResponse(
        gig=result.gig,
        applications=result.applications,
        notifications_sent=len(result.notifications),
    )


AppSettings = Annotated[Settings, Depends(get_settings)]


# =============================================================================
# Gigs
# =============================================================================


@router.post("", response_model=Gig, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_gig(
    request: Request,
    gig: GigCreate,
    auth: ClientUser,
    db: Database,
):
    """
    Post a new gig.

    The caller becomes the gig's client. Gigs start in 'open' status.
    """
    logger.info(f"POST /gigs | client={auth.user_id} | title={gig.title[:50]}")

    created = await GigService.create_gig(
        db,
        auth,
        title=gig.title,
        description=gig.description,
        budget=gig.budget,
        deadline=gig.deadline,
        skills=gig.skills,
        priority=gig.priority,
    )

    logger.info(f"Gig created | id={created.id} | client={auth.user_id}")
    return created


@router.get("", response_model=GigListResponse)
@limiter.limit("60/minute")
async def list_gigs(
    request: Request,
    auth: CurrentUser,
    db: Database,
    status_filter: GigStatus | None = Query(None, alias="status"),
    scope: Literal["all", "posted", "assigned"] = Query("all"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """
    List gigs, newest first.

    Filters:
    - status: only gigs in this status
    - scope: all gigs, gigs I posted, or gigs assigned to me
    """
    logger.info(f"GET /gigs | user={auth.user_id} | status={status_filter} | scope={scope}")

    gigs, total = await GigService.list_gigs(db, auth, status_filter, scope, limit, offset)
    return GigListResponse(gigs=gigs, total=total, limit=limit, offset=offset)


@router.get("/{gig_id}", response_model=GigResponse)
@limiter.limit("60/minute")
async def get_gig(
    request: Request,
    gig_id: str,
    auth: CurrentUser,
    db: Database,
):
    """Get a gig with its application count."""
    logger.info(f"GET /gigs/{gig_id} | user={auth.user_id}")

    gig = await GigService.get_gig(db, gig_id)
    count = await GigService.application_count(db, gig_id)
    return GigResponse(**gig.model_dump(), application_count=count)


@router.patch("/{gig_id}/status", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def update_gig_status(
    request: Request,
    gig_id: str,
    update: StatusUpdate,
    auth: ClientUser,
    db: Database,
    settings: AppSettings,
):
    """
    Set the gig status from the client's status selector.

    Allowed targets are open, in-progress and completed.
    """
    logger.info(f"PATCH /gigs/{gig_id}/status | client={auth.user_id} | status={update.status.value}")

    result = await GigService.override_status(db, auth, gig_id, update.status, settings)

    logger.info(f"Gig status set | id={gig_id} | status={update.status.value}")
    return to_transition_response(result)


@router.post("/{gig_id}/assign", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def assign_freelancer(
    request: Request,
    gig_id: str,
    assign_request: AssignRequest,
    auth: ClientUser,
    db: Database,
    settings: AppSettings,
):
    """
    Assign a freelancer directly, without an application.

    Only an open, unassigned gig can be assigned. Pending applications
    are left as they are.
    """
    logger.info(f"POST /gigs/{gig_id}/assign | client={auth.user_id} | freelancer={assign_request.freelancer_id}")

    result = await GigService.assign_freelancer(db, auth, gig_id, assign_request.freelancer_id, settings)

    logger.info(f"Gig assigned | id={gig_id} | freelancer={assign_request.freelancer_id}")
    return to_transition_response(result)


@router.get("/{gig_id}/transitions", response_model=list[TransitionLogEntry])
@limiter.limit("30/minute")
async def list_gig_transitions(
    request: Request,
    gig_id: str,
    auth: ClientUser,
    db: Database,
):
    """Audit log of lifecycle transitions on a gig, oldest first."""
    logger.info(f"GET /gigs/{gig_id}/transitions | client={auth.user_id}")

    rows = await GigService.list_transitions(db, auth, gig_id)
    return [TransitionLogEntry(**r) for r in rows]


# =============================================================================
# Applications
# =============================================================================


@router.post(
    "/{gig_id}/applications",
    response_model=Application,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def apply_to_gig(
    request: Request,
    gig_id: str,
    application: ApplicationCreate,
    auth: FreelancerUser,
    db: Database,
    settings: AppSettings,
):
    """
    Apply to an open gig.

    Only freelancers can apply. One application per gig unless
    duplicates are enabled in settings.
    """
    logger.info(f"POST /gigs/{gig_id}/applications | freelancer={auth.user_id}")

    created = await GigService.submit_application(db, auth, gig_id, application.cover_letter, settings)

    logger.info(f"Application created | gig={gig_id} | freelancer={auth.user_id}")
    return created


@router.get("/{gig_id}/applications", response_model=ApplicationListResponse)
@limiter.limit("30/minute")
async def list_gig_applications(
    request: Request,
    gig_id: str,
    auth: ClientUser,
    db: Database,
):
    """
    List applications for a gig with each applicant's profile.

    Only the gig's client can view applications.
    """
    logger.info(f"GET /gigs/{gig_id}/applications | client={auth.user_id}")

    entries = await GigService.list_gig_applications(db, auth, gig_id)
    return ApplicationListResponse(
        applications=[
            ApplicationWithApplicantResponse(**e.application.model_dump(), applicant=e.applicant)
            for e in entries
        ],
        total=len(entries),
    )


@router.post("/{gig_id}/applications/{application_id}/accept", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def accept_application(
    request: Request,
    gig_id: str,
    application_id: str,
    auth: ClientUser,
    db: Database,
    settings: AppSettings,
):
    """
    Accept an application.

    The gig moves to 'assigned' with the applicant as assignee and every
    other pending application on the gig is rejected. The first accepted
    application wins: once the gig is assigned, later accepts return 409.
    """
    logger.info(f"POST /gigs/{gig_id}/applications/{application_id}/accept | client={auth.user_id}")

    result = await GigService.accept_application(db, auth, gig_id, application_id, settings)

    logger.info(
        f"Application accepted | gig={gig_id} | app={application_id} | "
        f"notified={len(result.notifications)}"
    )
    return to_transition_response(result)


@router.post("/{gig_id}/applications/{application_id}/reject", response_model=TransitionResponse)
@limiter.limit("10/minute")
async def reject_application(
    request: Request,
    gig_id: str,
    application_id: str,
    auth: ClientUser,
    db: Database,
    settings: AppSettings,
):
    """Reject a single pending application. The gig is not changed."""
    logger.info(f"POST /gigs/{gig_id}/applications/{application_id}/reject | client={auth.user_id}")

    result = await GigService.reject_application(db, auth, gig_id, application_id, settings)

    logger.info(f"Application rejected | gig={gig_id} | app={application_id}")
    return to_transition_response(result)


# =============================================================================
# Milestones and progress
# =============================================================================


@router.post("/{gig_id}/milestones", response_model=Gig, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def add_milestone(
    request: Request,
    gig_id: str,
    milestone: MilestoneCreate,
    auth: ClientUser,
    db: Database,
):
    """Append a milestone to a gig. Only the gig's client can add milestones."""
    logger.info(f"POST /gigs/{gig_id}/milestones | client={auth.user_id}")

    return await GigService.add_milestone(
        db, auth, gig_id, milestone.title, milestone.due_date, milestone.description
    )


@router.post("/{gig_id}/milestones/{milestone_id}/complete", response_model=Gig)
@limiter.limit("20/minute")
async def complete_milestone(
    request: Request,
    gig_id: str,
    milestone_id: str,
    auth: CurrentUser,
    db: Database,
):
    logger.info(f"POST /gigs/{gig_id}/milestones/{milestone_id}/complete | user={auth.user_id}")

    return await GigService.complete_milestone(db, auth, gig_id, milestone_id)


@router.put("/{gig_id}/progress", response_model=Gig)
@limiter.limit("20/minute")
async def update_progress(
    request: Request,
    gig_id: str,
    update: ProgressUpdate,
    auth: CurrentUser,
    db: Database,
):
    """Set progress (0-100). The gig's client or assigned freelancer only."""
    logger.info(f"PUT /gigs/{gig_id}/progress | user={auth.user_id} | progress={update.progress}")

    return await GigService.update_progress(db, auth, gig_id, update.progress)
