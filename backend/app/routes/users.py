"""User directory routes."""

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from ..auth import ClientUser
from ..database import Database, list_users_by_role
from ..logging_config import get_logger
from ..marketplace import UserProfile, UserRole
from ..rate_limit import limiter

logger = get_logger("gigmarket.users")
router = APIRouter(prefix="/users", tags=["users"])


class FreelancerListResponse(BaseModel):
    freelancers: list[UserProfile]
    total: int


@router.get("/freelancers", response_model=FreelancerListResponse)
@limiter.limit("30/minute")
async def list_freelancers(
    request: Request,
    auth: ClientUser,
    db: Database,
    skill: str | None = Query(None, description="Only freelancers with this skill"),
):
    """
    List freelancers for the direct-assignment picker.

    Includes skills, rating and completed gig count.
    """
    logger.info(f"GET /users/freelancers | client={auth.user_id} | skill={skill}")

    rows = await list_users_by_role(db, UserRole.freelancer.value)
    freelancers = [UserProfile(**r) for r in rows]
    if skill:
        freelancers = [f for f in freelancers if skill in f.skills]

    return FreelancerListResponse(freelancers=freelancers, total=len(freelancers))
