"""Dashboard routes.

One view per role. Summaries are read from the materialized
dashboard_summaries row that the write path keeps current.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ..auth import ClientUser, CurrentUser, FreelancerUser, landing_path
from ..database import Database
from ..logging_config import get_logger
from ..marketplace import DashboardSummary, Gig, load_dashboard
from ..marketplace.repository import get_gigs_by_ids
from ..rate_limit import limiter

logger = get_logger("gigmarket.dashboard")
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class LandingResponse(BaseModel):
    role: str
    landing_path: str


class DashboardResponse(BaseModel):
    summary: DashboardSummary
    recent_gigs: list[Gig]


async def _dashboard_response(db, user_id: str, perspective: str) -> DashboardResponse:
    summary = await load_dashboard(db, user_id, perspective)
    recent = await get_gigs_by_ids(db, summary.recent_gig_ids)
    return DashboardResponse(summary=summary, recent_gigs=[Gig(**r) for r in recent])


@router.get("", response_model=LandingResponse)
async def dashboard_landing(auth: CurrentUser):
    """Where the caller's dashboard lives."""
    return LandingResponse(role=auth.role.value, landing_path=landing_path(auth.role))


@router.get("/client", response_model=DashboardResponse)
@limiter.limit("60/minute")
async def client_dashboard(
    request: Request,
    auth: ClientUser,
    db: Database,
):
    """Counts, spend and the monthly histogram for gigs I posted."""
    logger.info(f"GET /dashboard/client | user={auth.user_id}")
    return await _dashboard_response(db, auth.user_id, "client")


@router.get("/freelancer", response_model=DashboardResponse)
@limiter.limit("60/minute")
async def freelancer_dashboard(
    request: Request,
    auth: FreelancerUser,
    db: Database,
):
    """Counts, earnings, rating and the monthly histogram for gigs assigned to me."""
    logger.info(f"GET /dashboard/freelancer | user={auth.user_id}")
    return await _dashboard_response(db, auth.user_id, "freelancer")
