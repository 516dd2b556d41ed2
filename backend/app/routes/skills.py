"""Skill catalog route."""

from fastapi import APIRouter
from pydantic import BaseModel

from ..marketplace import SKILL_CATALOG

router = APIRouter(prefix="/skills", tags=["skills"])


class SkillListResponse(BaseModel):
    skills: list[str]
    total: int


@router.get("", response_model=SkillListResponse)
async def list_skills():
    """The fixed list of skills a gig or freelancer profile can name."""
    return SkillListResponse(skills=list(SKILL_CATALOG), total=len(SKILL_CATALOG))
