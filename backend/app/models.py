"""Pydantic models for auth requests and responses."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .marketplace.models import SKILL_CATALOG, UserProfile

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# =============================================================================
# Auth Models
# =============================================================================


class UserRegister(BaseModel):
    """Request to create an account. Role is fixed once registered."""

    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    role: Literal["job_poster", "freelancer"]
    skills: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("skills")
    @classmethod
    def skills_in_catalog(cls, v: list[str]) -> list[str]:
        unknown = [s for s in v if s not in SKILL_CATALOG]
        if unknown:
            raise ValueError(f"Unknown skills: {', '.join(unknown)}")
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def skills_only_for_freelancers(self) -> "UserRegister":
        # Job posters never carry skills
        if self.role != "freelancer":
            self.skills = []
        return self


class UserLogin(BaseModel):
    """Email and password sign-in."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    role: str
    landing_path: str  # Role-appropriate dashboard to redirect to


class ProfileUpdate(BaseModel):
    """Only the display name can be edited."""

    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class ProfileResponse(UserProfile):
    landing_path: str
