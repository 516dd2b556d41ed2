"""Dashboard aggregation.

Summaries are computed from a user's gigs and stored in
dashboard_summaries by the write path, so dashboard reads are a single
row lookup plus a check against the newest gig write. A read that finds
no stored row, or one built before that write, computes and stores it.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, TypeAdapter
from supabase import Client

from ..database import get_user
from ..logging_config import get_logger
from . import repository
from .models import ACTIVE_STATUSES, Gig, GigStatus

logger = get_logger("gigmarket.marketplace.dashboard")

Perspective = Literal["client", "freelancer"]

_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Histogram buckets. Keyed by month name only; the year is ignored.
MONTH_BUCKETS = _MONTH_NAMES[:6]

RECENT_GIGS = 5

_TIMESTAMP = TypeAdapter(datetime)


class StatusBucket(BaseModel):
    name: str
    count: int


class MonthBucket(BaseModel):
    month: str
    amount: Decimal


class DashboardSummary(BaseModel):
    """Derived view of a user's gigs."""

    user_id: str
    perspective: Perspective
    total: int
    status_counts: dict[str, int]
    open: int
    active: int
    completed: int
    # Spent (client) or earned (freelancer) on completed gigs
    completed_budget: Decimal
    distribution: list[StatusBucket]
    monthly_completed_budget: list[MonthBucket]
    recent_gig_ids: list[str]
    rating: float | None = None
    # Newest gig write the summary was computed from
    source_version: datetime | None = None
    refreshed_at: datetime


def compute_dashboard(
    user_id: str,
    perspective: Perspective,
    gigs: list[Gig],
    rating: float | None = None,
) -> DashboardSummary:
    """Aggregate gigs into counts, the completed-budget total and the month histogram.

    ``active`` counts assigned and in-progress gigs. The "In Progress"
    distribution bucket counts only gigs whose status is in-progress.
    """
    status_counts = {s.value: 0 for s in GigStatus}
    for gig in gigs:
        status_counts[gig.status.value] += 1

    completed = [g for g in gigs if g.status == GigStatus.completed]
    active = sum(1 for g in gigs if g.status in ACTIVE_STATUSES)

    monthly = {month: Decimal("0") for month in MONTH_BUCKETS}
    for gig in completed:
        month = _MONTH_NAMES[gig.created_at.month - 1]
        if month in monthly:
            monthly[month] += gig.budget

    recent = sorted(gigs, key=lambda g: g.created_at, reverse=True)[:RECENT_GIGS]

    return DashboardSummary(
        user_id=user_id,
        perspective=perspective,
        total=len(gigs),
        status_counts=status_counts,
        open=status_counts[GigStatus.open.value],
        active=active,
        completed=len(completed),
        completed_budget=sum((g.budget for g in completed), Decimal("0")),
        distribution=[
            StatusBucket(name="Open", count=status_counts[GigStatus.open.value]),
            StatusBucket(name="In Progress", count=status_counts[GigStatus.in_progress.value]),
            StatusBucket(name="Completed", count=len(completed)),
        ],
        monthly_completed_budget=[MonthBucket(month=m, amount=a) for m, a in monthly.items()],
        recent_gig_ids=[g.id for g in recent],
        rating=rating,
        source_version=max((_last_write(g) for g in gigs), default=None),
        refreshed_at=datetime.now(timezone.utc),
    )


def _last_write(gig: Gig) -> datetime:
    return gig.updated_at or gig.created_at


def _scope(user_id: str, perspective: Perspective) -> dict:
    if perspective == "client":
        return {"poster_id": user_id}
    return {"assigned_to": user_id}


async def refresh_dashboard(db: Client, user_id: str, perspective: Perspective) -> DashboardSummary:
    """Recompute a user's summary from the store and persist it.

    The stored row is only replaced by a summary built from the same or
    newer gig writes, so a refresh that read its gigs before a concurrent
    transition cannot overwrite the summary that transition stored.
    """
    rows = await repository.list_gigs(db, **_scope(user_id, perspective))
    rating = None
    if perspective == "freelancer":
        profile = await get_user(db, user_id)
        rating = profile.get("rating") if profile else None

    summary = compute_dashboard(user_id, perspective, [Gig(**r) for r in rows], rating=rating)
    saved = await repository.save_dashboard_summary(
        db,
        user_id,
        perspective,
        summary.model_dump(mode="json"),
        summary.source_version.isoformat() if summary.source_version else None,
    )
    if not saved:
        logger.info(f"Kept newer {perspective} dashboard for {user_id}")
    return summary


async def refresh_for_users(db: Client, poster_id: str, assignee_ids: set[str]) -> None:
    """Refresh summaries after a write. Failures are logged, never raised."""
    targets: list[tuple[str, Perspective]] = [(poster_id, "client")]
    targets += [(uid, "freelancer") for uid in sorted(assignee_ids) if uid != poster_id]
    for user_id, perspective in targets:
        try:
            await refresh_dashboard(db, user_id, perspective)
        except Exception as e:
            logger.warning(f"Failed to refresh {perspective} dashboard for {user_id}: {e}")


async def load_dashboard(db: Client, user_id: str, perspective: Perspective) -> DashboardSummary:
    """Serve the stored summary while it is current.

    The row is recomputed when it is missing or when a gig in the user's
    scope was written after the newest write the row was built from.
    """
    row = await repository.get_dashboard_summary(db, user_id, perspective)
    if row and row.get("summary"):
        summary = DashboardSummary(**row["summary"])
        latest = await repository.latest_gig_write(db, **_scope(user_id, perspective))
        if latest is None:
            if summary.total == 0:
                return summary
        elif summary.source_version is not None and _TIMESTAMP.validate_python(latest) <= summary.source_version:
            return summary
        logger.info(f"Stored {perspective} dashboard for {user_id} is behind gig writes, recomputing")
    return await refresh_dashboard(db, user_id, perspective)
