"""Store operations for gigs, applications and notifications.

Thin wrappers over Supabase table queries. Functions return raw row dicts;
the service layer parses them into the document models.
"""

from postgrest.exceptions import APIError
from supabase import Client

from ..database import UNIQUE_VIOLATION, utc_now
from ..logging_config import get_logger

logger = get_logger("gigmarket.marketplace.repository")

# =============================================================================
# Table names (keep in sync with SQL migrations)
# =============================================================================

GIGS_TABLE = "gigs"
APPLICATIONS_TABLE = "applications"
NOTIFICATIONS_TABLE = "notifications"
TRANSITIONS_TABLE = "gig_transitions"
DASHBOARD_SUMMARIES_TABLE = "dashboard_summaries"

# source_version of a summary built from no gigs
SOURCE_VERSION_EMPTY = "1970-01-01T00:00:00+00:00"


# =============================================================================
# Gigs
# =============================================================================


async def create_gig(db: Client, data: dict) -> dict | None:
    """Insert a gig document."""
    now = utc_now()
    payload = {"created_at": now, "updated_at": now, **data}
    result = db.table(GIGS_TABLE).insert(payload).execute()
    return result.data[0] if result.data else None


async def get_gig(db: Client, gig_id: str) -> dict | None:
    """Get a gig by ID."""
    result = db.table(GIGS_TABLE).select("*").eq("id", gig_id).execute()
    return result.data[0] if result.data else None


async def list_gigs(
    db: Client,
    status_filter: str | None = None,
    poster_id: str | None = None,
    assigned_to: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[dict]:
    """List gigs, newest first, with equality filters."""
    query = db.table(GIGS_TABLE).select("*")

    if status_filter:
        query = query.eq("status", status_filter)
    if poster_id:
        query = query.eq("poster_id", poster_id)
    if assigned_to:
        query = query.eq("assigned_to", assigned_to)

    query = query.order("created_at", desc=True)
    if limit is not None:
        query = query.range(offset, offset + limit - 1)

    result = query.execute()
    return result.data or []


async def count_gigs(
    db: Client,
    status_filter: str | None = None,
    poster_id: str | None = None,
    assigned_to: str | None = None,
) -> int:
    """Number of gigs matching the same filters as list_gigs."""
    query = db.table(GIGS_TABLE).select("id", count="exact")
    if status_filter:
        query = query.eq("status", status_filter)
    if poster_id:
        query = query.eq("poster_id", poster_id)
    if assigned_to:
        query = query.eq("assigned_to", assigned_to)
    result = query.execute()
    return result.count or 0


async def latest_gig_write(
    db: Client,
    poster_id: str | None = None,
    assigned_to: str | None = None,
) -> str | None:
    """Timestamp of the most recent write to any gig in the given scope."""
    query = db.table(GIGS_TABLE).select("updated_at")
    if poster_id:
        query = query.eq("poster_id", poster_id)
    if assigned_to:
        query = query.eq("assigned_to", assigned_to)
    result = query.order("updated_at", desc=True).limit(1).execute()
    return result.data[0]["updated_at"] if result.data else None


async def get_gigs_by_ids(db: Client, gig_ids: list[str]) -> list[dict]:
    """Fetch several gigs at once, in the order of ``gig_ids``."""
    if not gig_ids:
        return []
    result = db.table(GIGS_TABLE).select("*").in_("id", list(gig_ids)).execute()
    by_id = {row["id"]: row for row in result.data or []}
    return [by_id[gid] for gid in gig_ids if gid in by_id]


async def update_gig(db: Client, gig_id: str, updates: dict) -> dict | None:
    """Partial update of a gig without a status check.

    Only for fields outside the lifecycle (progress, milestones).
    """
    result = (
        db.table(GIGS_TABLE)
        .update({**updates, "updated_at": utc_now()})
        .eq("id", gig_id)
        .execute()
    )
    return result.data[0] if result.data else None


async def atomic_update_gig(
    db: Client,
    gig_id: str,
    expected_status: str,
    updates: dict,
) -> tuple[dict | None, str | None]:
    """Update a gig only if it is still in ``expected_status``.

    Returns:
        Tuple of (updated_gig, error).
        - If successful: (gig_dict, None)
        - If gig not found: (None, "not_found")
        - If status changed underneath us: (None, "conflict")
    """
    result = (
        db.table(GIGS_TABLE)
        .update({**updates, "updated_at": utc_now()})
        .eq("id", gig_id)
        .eq("status", expected_status)
        .execute()
    )

    if result.data:
        return result.data[0], None

    gig = await get_gig(db, gig_id)
    if not gig:
        return None, "not_found"

    logger.warning(
        f"Race condition detected on gig {gig_id}: "
        f"expected status '{expected_status}', found '{gig['status']}'"
    )
    return None, "conflict"


# =============================================================================
# Applications
# =============================================================================


async def create_application(db: Client, gig_id: str, freelancer_id: str, cover_letter: str) -> dict | None:
    """Insert a pending application."""
    data = {
        "gig_id": gig_id,
        "freelancer_id": freelancer_id,
        "cover_letter": cover_letter,
        "status": "pending",
        "created_at": utc_now(),
    }
    result = db.table(APPLICATIONS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def get_application(db: Client, application_id: str) -> dict | None:
    """Get an application by ID."""
    result = db.table(APPLICATIONS_TABLE).select("*").eq("id", application_id).execute()
    return result.data[0] if result.data else None


async def list_applications(
    db: Client,
    gig_id: str | None = None,
    freelancer_id: str | None = None,
    status_filter: str | None = None,
) -> list[dict]:
    """List applications, newest first."""
    query = db.table(APPLICATIONS_TABLE).select("*")
    if gig_id:
        query = query.eq("gig_id", gig_id)
    if freelancer_id:
        query = query.eq("freelancer_id", freelancer_id)
    if status_filter:
        query = query.eq("status", status_filter)

    result = query.order("created_at", desc=True).execute()
    return result.data or []


async def count_applications(db: Client, gig_id: str) -> int:
    result = (
        db.table(APPLICATIONS_TABLE)
        .select("id", count="exact")
        .eq("gig_id", gig_id)
        .execute()
    )
    return result.count or 0


async def atomic_update_application_status(
    db: Client,
    application_id: str,
    expected_status: str,
    new_status: str,
) -> tuple[dict | None, str | None]:
    """Update application status only if it still has ``expected_status``.

    Returns (application, None), (None, "not_found") or (None, "conflict").
    """
    result = (
        db.table(APPLICATIONS_TABLE)
        .update({"status": new_status, "updated_at": utc_now()})
        .eq("id", application_id)
        .eq("status", expected_status)
        .execute()
    )

    if result.data:
        return result.data[0], None

    app = await get_application(db, application_id)
    if not app:
        return None, "not_found"

    logger.warning(
        f"Race condition detected on application {application_id}: "
        f"expected status '{expected_status}', found '{app['status']}'"
    )
    return None, "conflict"


# =============================================================================
# Notifications
# =============================================================================


async def create_notification(
    db: Client,
    user_id: str,
    notification_type: str,
    message: str,
    related_gig_id: str | None = None,
) -> dict | None:
    data = {
        "user_id": user_id,
        "type": notification_type,
        "message": message,
        "read": False,
        "related_gig_id": related_gig_id,
        "created_at": utc_now(),
    }
    result = db.table(NOTIFICATIONS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def list_notifications(
    db: Client,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> list[dict]:
    query = db.table(NOTIFICATIONS_TABLE).select("*").eq("user_id", user_id)
    if unread_only:
        query = query.eq("read", False)
    result = query.order("created_at", desc=True).limit(limit).execute()
    return result.data or []


async def mark_notification_read(db: Client, notification_id: str, user_id: str) -> dict | None:
    """Set the read flag. Scoped to the recipient so nobody flips another user's flag."""
    result = (
        db.table(NOTIFICATIONS_TABLE)
        .update({"read": True})
        .eq("id", notification_id)
        .eq("user_id", user_id)
        .execute()
    )
    return result.data[0] if result.data else None


# =============================================================================
# Audit log
# =============================================================================


async def record_transition(
    db: Client,
    gig_id: str,
    action: str,
    actor_id: str,
    from_status: str | None,
    to_status: str | None,
) -> None:
    """Append a gig_transitions row. Best effort: the transition already committed."""
    data = {
        "gig_id": gig_id,
        "action": action,
        "actor_id": actor_id,
        "from_status": from_status,
        "to_status": to_status,
        "created_at": utc_now(),
    }
    try:
        db.table(TRANSITIONS_TABLE).insert(data).execute()
    except Exception as e:
        logger.warning(f"Failed to record transition for gig {gig_id}: {e}")


async def list_transitions(db: Client, gig_id: str) -> list[dict]:
    result = (
        db.table(TRANSITIONS_TABLE)
        .select("*")
        .eq("gig_id", gig_id)
        .order("created_at")
        .execute()
    )
    return result.data or []


# =============================================================================
# Dashboard summaries
# =============================================================================


async def get_dashboard_summary(db: Client, user_id: str, perspective: str) -> dict | None:
    result = (
        db.table(DASHBOARD_SUMMARIES_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("perspective", perspective)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def save_dashboard_summary(
    db: Client,
    user_id: str,
    perspective: str,
    summary: dict,
    source_version: str | None,
) -> bool:
    """Store a summary unless the stored one was built from newer gig writes.

    Returns False when the stored row was kept.
    """
    row = {
        "summary": summary,
        "source_version": source_version or SOURCE_VERSION_EMPTY,
        "refreshed_at": utc_now(),
    }

    def guarded_update():
        return (
            db.table(DASHBOARD_SUMMARIES_TABLE)
            .update(row)
            .eq("user_id", user_id)
            .eq("perspective", perspective)
            .lte("source_version", row["source_version"])
            .execute()
        )

    if guarded_update().data:
        return True

    try:
        db.table(DASHBOARD_SUMMARIES_TABLE).insert(
            {"user_id": user_id, "perspective": perspective, **row}
        ).execute()
        return True
    except APIError as e:
        if e.code != UNIQUE_VIOLATION:
            raise

    # Another request inserted the row first
    return bool(guarded_update().data)
