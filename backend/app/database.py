"""Database utilities for Supabase integration."""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends

from supabase import Client, create_client

from .config import Settings, get_settings

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


def utc_now() -> str:
    """Current UTC time as an ISO string, the format every table stores."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Table Names
# =============================================================================

USERS_TABLE = "users"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# Columns safe to hand back to callers (never the password hash)
PROFILE_COLUMNS = "id,email,role,name,skills,rating,completed_gigs,created_at"


# =============================================================================
# User Operations
# =============================================================================


async def create_user(
    db: Client,
    email: str,
    password_hash: str,
    name: str,
    role: str,
    skills: list[str] | None = None,
) -> dict | None:
    """Create an identity together with its profile record."""
    data = {
        "email": email,
        "password_hash": password_hash,
        "name": name,
        "role": role,
        "skills": skills or [],
        "rating": 0,
        "completed_gigs": 0,
        "created_at": utc_now(),
    }
    result = db.table(USERS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_user(db: Client, user_id: str) -> dict | None:
    """Get a user profile by ID."""
    result = db.table(USERS_TABLE).select(PROFILE_COLUMNS).eq("id", user_id).execute()
    return result.data[0] if result.data else None


async def get_user_credentials(db: Client, email: str) -> dict | None:
    """Get the id, role and password hash for a sign-in attempt."""
    result = (
        db.table(USERS_TABLE)
        .select("id,email,role,password_hash")
        .eq("email", email)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def email_exists(db: Client, email: str) -> bool:
    result = db.table(USERS_TABLE).select("id").eq("email", email).limit(1).execute()
    return bool(result.data)


async def update_user_name(db: Client, user_id: str, name: str) -> dict | None:
    """Update the display name, the only mutable profile field."""
    result = db.table(USERS_TABLE).update({"name": name}).eq("id", user_id).execute()
    return result.data[0] if result.data else None


async def get_users_by_ids(db: Client, user_ids: list[str]) -> dict[str, dict]:
    """Fetch several profiles at once, keyed by id."""
    if not user_ids:
        return {}
    result = (
        db.table(USERS_TABLE)
        .select(PROFILE_COLUMNS)
        .in_("id", sorted(set(user_ids)))
        .execute()
    )
    return {row["id"]: row for row in result.data or []}


async def list_users_by_role(db: Client, role: str) -> list[dict]:
    result = (
        db.table(USERS_TABLE)
        .select(PROFILE_COLUMNS)
        .eq("role", role)
        .order("name")
        .execute()
    )
    return result.data or []
