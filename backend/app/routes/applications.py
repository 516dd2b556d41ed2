"""Freelancer application routes."""

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from ..auth import FreelancerUser
from ..database import Database
from ..logging_config import get_logger
from ..marketplace import Application, GigService
from ..rate_limit import limiter

logger = get_logger("gigmarket.applications")
router = APIRouter(prefix="/applications", tags=["applications"])


class MyApplicationsResponse(BaseModel):
    """The caller's applications, plus the status of each keyed by gig id."""

    applications: list[Application]
    by_gig: dict[str, str]
    total: int


@router.get("/mine", response_model=MyApplicationsResponse)
@limiter.limit("60/minute")
async def my_applications(
    request: Request,
    auth: FreelancerUser,
    db: Database,
    gig_id: str | None = Query(None),
):
    """List my applications, newest first."""
    logger.info(f"GET /applications/mine | freelancer={auth.user_id} | gig={gig_id}")

    applications = await GigService.my_applications(db, auth, gig_id)
    by_gig: dict[str, str] = {}
    # Newest first, so the latest application per gig wins
    for app in applications:
        by_gig.setdefault(app.gig_id, app.status.value)

    return MyApplicationsResponse(applications=applications, by_gig=by_gig, total=len(applications))
