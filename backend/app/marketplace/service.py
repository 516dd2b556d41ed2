"""Marketplace service: gig and application operations over the store.

Reads parse rows into document models; lifecycle transitions are planned
by :mod:`.lifecycle` and committed here. A commit first goes through the
``commit_gig_transition`` stored procedure, which applies the whole plan
in one Postgres transaction. Where the procedure is not installed, the
plan is applied as optimistic writes (gig first) and a failed required
write undoes the ones before it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from postgrest.exceptions import APIError
from supabase import Client

from ..config import Settings
from ..database import get_user, get_users_by_ids
from ..logging_config import get_logger, log_lifecycle_event
from . import repository
from .dashboard import refresh_for_users
from .errors import (
    DuplicateApplicationError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    TransitionConflictError,
    ValidationFailedError,
)
from .lifecycle import (
    ApplicationChange,
    TransitionPlan,
    plan_acceptance,
    plan_assignment,
    plan_rejection,
    plan_status_override,
)
from .models import (
    Application,
    Gig,
    GigPriority,
    GigStatus,
    Milestone,
    Notification,
    NotificationType,
    UserProfile,
    UserRole,
)

if TYPE_CHECKING:
    from ..auth import AuthContext

logger = get_logger("gigmarket.marketplace.service")

COMMIT_RPC = "commit_gig_transition"
CONFLICT_MARKER = "gig_transition_conflict"
NOT_FOUND_MARKER = "gig_transition_not_found"
# PostgREST: function not found in the schema cache
RPC_MISSING_CODE = "PGRST202"

MILESTONE_MESSAGE = 'Milestone "{milestone}" on "{title}" has been completed.'


@dataclass
class CommitResult:
    """What a committed transition actually changed."""

    gig: Gig | None = None
    applications: list[Application] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)


@dataclass
class ApplicationWithApplicant:
    application: Application
    applicant: UserProfile | None = None


async def load_profile(db: Client, auth: AuthContext) -> UserProfile:
    """Join the caller's identity to the stored profile record."""
    row = await get_user(db, auth.user_id)
    if not row:
        raise NotFoundError("User profile not found")
    return UserProfile(**row)


async def _load_gig(db: Client, gig_id: str) -> Gig:
    row = await repository.get_gig(db, gig_id)
    if not row:
        raise NotFoundError("Gig not found")
    return Gig(**row)


async def _load_application(db: Client, application_id: str) -> Application:
    row = await repository.get_application(db, application_id)
    if not row:
        raise NotFoundError("Application not found")
    return Application(**row)


def _require_participant(gig: Gig, auth: AuthContext, verb: str) -> None:
    if auth.user_id not in (gig.poster_id, gig.assigned_to):
        raise PermissionDeniedError(f"Only the gig's client or assigned freelancer can {verb}")


class GigService:
    """Stateless service. Every method receives a Supabase `Client`."""

    # ------------------------------------------------------------------
    # Gigs
    # ------------------------------------------------------------------

    @staticmethod
    async def create_gig(
        db: Client,
        auth: AuthContext,
        *,
        title: str,
        description: str,
        budget: Decimal,
        deadline: date,
        skills: list[str],
        priority: GigPriority = GigPriority.medium,
    ) -> Gig:
        """Post a new open gig owned by the caller."""
        data = {
            "title": title,
            "description": description,
            "status": GigStatus.open.value,
            "priority": priority.value,
            "poster_id": auth.user_id,
            "budget": float(budget),
            "deadline": deadline.isoformat(),
            "skills": skills,
            "progress": 0,
            "milestones": [],
        }
        row = await repository.create_gig(db, data)
        if not row:
            raise MarketplaceError("Failed to create gig")

        gig = Gig(**row)
        await refresh_for_users(db, auth.user_id, set())
        return gig

    @staticmethod
    async def get_gig(db: Client, gig_id: str) -> Gig:
        return await _load_gig(db, gig_id)

    @staticmethod
    async def list_gigs(
        db: Client,
        auth: AuthContext,
        status_filter: GigStatus | None = None,
        scope: str = "all",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Gig], int]:
        """One page of gigs plus the number matching overall.

        ``scope`` is all, posted (by me) or assigned (to me).
        """
        filters = {
            "status_filter": status_filter.value if status_filter else None,
            "poster_id": auth.user_id if scope == "posted" else None,
            "assigned_to": auth.user_id if scope == "assigned" else None,
        }
        rows = await repository.list_gigs(db, **filters, limit=limit, offset=offset)
        total = await repository.count_gigs(db, **filters)
        return [Gig(**r) for r in rows], total

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    @staticmethod
    async def submit_application(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        cover_letter: str,
        settings: Settings,
    ) -> Application:
        """Create a pending application from a freelancer against an open gig."""
        cover_letter = cover_letter.strip()
        if not cover_letter:
            raise ValidationFailedError("Cover letter is required")
        if auth.role != UserRole.freelancer:
            raise PermissionDeniedError("Only freelancers can apply to gigs")

        gig = await _load_gig(db, gig_id)
        if gig.poster_id == auth.user_id:
            raise InvalidTransitionError("Cannot apply to your own gig")
        if gig.status != GigStatus.open:
            raise InvalidTransitionError(f"Cannot apply to gig in status: {gig.status.value}")

        if not settings.allow_duplicate_applications:
            existing = await repository.list_applications(
                db, gig_id=gig_id, freelancer_id=auth.user_id
            )
            if existing:
                raise DuplicateApplicationError("You have already applied to this gig")

        row = await repository.create_application(db, gig_id, auth.user_id, cover_letter)
        if not row:
            raise MarketplaceError("Failed to submit application")
        return Application(**row)

    @staticmethod
    async def list_gig_applications(
        db: Client,
        auth: AuthContext,
        gig_id: str,
    ) -> list[ApplicationWithApplicant]:
        """All applications on a gig with the applicant's profile. Client only."""
        gig = await _load_gig(db, gig_id)
        if gig.poster_id != auth.user_id:
            raise PermissionDeniedError("Only the gig's client can view applications")

        apps = [Application(**r) for r in await repository.list_applications(db, gig_id=gig_id)]
        profiles = await get_users_by_ids(db, [a.freelancer_id for a in apps])
        return [
            ApplicationWithApplicant(
                application=a,
                applicant=UserProfile(**profiles[a.freelancer_id]) if a.freelancer_id in profiles else None,
            )
            for a in apps
        ]

    @staticmethod
    async def my_applications(db: Client, auth: AuthContext, gig_id: str | None = None) -> list[Application]:
        rows = await repository.list_applications(db, gig_id=gig_id, freelancer_id=auth.user_id)
        return [Application(**r) for r in rows]

    @staticmethod
    async def application_count(db: Client, gig_id: str) -> int:
        return await repository.count_applications(db, gig_id)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    @staticmethod
    async def accept_application(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        application_id: str,
        settings: Settings,
    ) -> CommitResult:
        gig = await _load_gig(db, gig_id)
        application = await _load_application(db, application_id)
        siblings = [Application(**r) for r in await repository.list_applications(db, gig_id=gig_id)]

        plan = plan_acceptance(gig, application, siblings, auth.user_id)
        return await GigService.commit_plan(db, gig, plan, settings)

    @staticmethod
    async def reject_application(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        application_id: str,
        settings: Settings,
    ) -> CommitResult:
        gig = await _load_gig(db, gig_id)
        application = await _load_application(db, application_id)

        plan = plan_rejection(gig, application, auth.user_id)
        return await GigService.commit_plan(db, gig, plan, settings)

    @staticmethod
    async def assign_freelancer(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        freelancer_id: str,
        settings: Settings,
    ) -> CommitResult:
        gig = await _load_gig(db, gig_id)
        row = await get_user(db, freelancer_id)
        if not row:
            raise NotFoundError("Freelancer not found")

        plan = plan_assignment(gig, UserProfile(**row), auth.user_id)
        return await GigService.commit_plan(db, gig, plan, settings)

    @staticmethod
    async def override_status(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        new_status: GigStatus,
        settings: Settings,
    ) -> CommitResult:
        gig = await _load_gig(db, gig_id)
        plan = plan_status_override(gig, new_status, auth.user_id)
        return await GigService.commit_plan(db, gig, plan, settings)

    @staticmethod
    async def list_transitions(db: Client, auth: AuthContext, gig_id: str) -> list[dict]:
        gig = await _load_gig(db, gig_id)
        if gig.poster_id != auth.user_id:
            raise PermissionDeniedError("Only the gig's client can view its history")
        return await repository.list_transitions(db, gig_id)

    @staticmethod
    async def commit_plan(
        db: Client,
        gig: Gig,
        plan: TransitionPlan,
        settings: Settings,
    ) -> CommitResult:
        """Apply a plan all-or-nothing, then refresh the affected dashboards."""
        result = None
        if settings.use_transaction_rpc:
            result = await _commit_via_rpc(db, plan)
        if result is None:
            result = await _commit_sequential(db, plan)
            await repository.record_transition(
                db,
                plan.gig_id,
                plan.action,
                plan.actor_id,
                plan.expected_gig_status.value if plan.expected_gig_status else None,
                plan.new_gig_status.value if plan.new_gig_status else None,
            )

        log_lifecycle_event(
            plan.action,
            plan.gig_id,
            plan.actor_id,
            status=plan.new_gig_status.value if plan.new_gig_status else None,
            applications=len(result.applications),
            notifications=len(result.notifications),
        )

        if plan.writes_gig:
            await refresh_for_users(db, gig.poster_id, plan.affected_users(gig) - {gig.poster_id})
        return result

    # ------------------------------------------------------------------
    # Milestones and progress
    # ------------------------------------------------------------------

    @staticmethod
    async def add_milestone(
        db: Client,
        auth: AuthContext,
        gig_id: str,
        title: str,
        due_date: date,
        description: str = "",
    ) -> Gig:
        """Append a milestone. Milestones are never removed."""
        gig = await _load_gig(db, gig_id)
        if gig.poster_id != auth.user_id:
            raise PermissionDeniedError("Only the gig's client can add milestones")

        milestone = Milestone(
            id=f"ms_{uuid.uuid4().hex[:12]}",
            title=title,
            description=description,
            due_date=due_date,
        )
        milestones = [m.model_dump(mode="json") for m in gig.milestones]
        milestones.append(milestone.model_dump(mode="json"))

        row = await repository.update_gig(db, gig_id, {"milestones": milestones})
        if not row:
            raise NotFoundError("Gig not found")
        return Gig(**row)

    @staticmethod
    async def complete_milestone(db: Client, auth: AuthContext, gig_id: str, milestone_id: str) -> Gig:
        gig = await _load_gig(db, gig_id)
        _require_participant(gig, auth, "complete milestones")

        target = next((m for m in gig.milestones if m.id == milestone_id), None)
        if target is None:
            raise NotFoundError("Milestone not found")
        if target.completed:
            return gig

        milestones = []
        for m in gig.milestones:
            if m.id == milestone_id:
                m = m.model_copy(update={"completed": True})
            milestones.append(m.model_dump(mode="json"))

        row = await repository.update_gig(db, gig_id, {"milestones": milestones})
        if not row:
            raise NotFoundError("Gig not found")

        # Tell the other side of the gig
        recipient = gig.assigned_to if auth.user_id == gig.poster_id else gig.poster_id
        if recipient:
            try:
                await repository.create_notification(
                    db,
                    recipient,
                    NotificationType.milestone.value,
                    MILESTONE_MESSAGE.format(milestone=target.title, title=gig.title),
                    gig_id,
                )
            except Exception as e:
                logger.warning(f"Failed to notify {recipient} about milestone {milestone_id}: {e}")
        return Gig(**row)

    @staticmethod
    async def update_progress(db: Client, auth: AuthContext, gig_id: str, progress: int) -> Gig:
        if not 0 <= progress <= 100:
            raise ValidationFailedError("Progress must be between 0 and 100")

        gig = await _load_gig(db, gig_id)
        _require_participant(gig, auth, "update progress")

        row = await repository.update_gig(db, gig_id, {"progress": progress})
        if not row:
            raise NotFoundError("Gig not found")
        return Gig(**row)


class NotificationService:
    """Per-user notification inbox."""

    @staticmethod
    async def list_for_user(
        db: Client,
        auth: AuthContext,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        rows = await repository.list_notifications(db, auth.user_id, unread_only=unread_only, limit=limit)
        return [Notification(**r) for r in rows]

    @staticmethod
    async def mark_read(db: Client, auth: AuthContext, notification_id: str) -> Notification:
        row = await repository.mark_notification_read(db, notification_id, auth.user_id)
        if not row:
            raise NotFoundError("Notification not found")
        return Notification(**row)


# =============================================================================
# Commit strategies
# =============================================================================


async def _commit_via_rpc(db: Client, plan: TransitionPlan) -> CommitResult | None:
    """Run the plan inside the stored procedure. Returns None if it is not installed."""
    try:
        result = db.rpc(COMMIT_RPC, {"p_plan": plan.to_payload()}).execute()
    except APIError as e:
        message = f"{e.message or ''} {e.details or ''}"
        if CONFLICT_MARKER in message:
            raise TransitionConflictError(
                "The gig or its applications were changed by another request. "
                "Please refresh and try again."
            )
        if NOT_FOUND_MARKER in message:
            raise NotFoundError("Gig not found")
        if e.code == RPC_MISSING_CODE:
            logger.debug(f"{COMMIT_RPC} RPC unavailable, using optimistic writes")
            return None
        raise

    data = result.data or {}
    return CommitResult(
        gig=Gig(**data["gig"]) if data.get("gig") else None,
        applications=[Application(**a) for a in data.get("applications") or []],
        notifications=[Notification(**n) for n in data.get("notifications") or []],
    )


async def _commit_sequential(db: Client, plan: TransitionPlan) -> CommitResult:
    """Apply the plan write by write, undoing earlier writes if a required one fails."""
    result = CommitResult()
    applied: list[ApplicationChange] = []

    if plan.writes_gig:
        updates = {"status": plan.new_gig_status.value, **plan.gig_updates}
        row, error = await repository.atomic_update_gig(
            db, plan.gig_id, plan.expected_gig_status.value, updates
        )
        if error == "not_found":
            raise NotFoundError("Gig not found")
        if error == "conflict":
            raise TransitionConflictError(
                "Gig status was modified by another request. Please refresh and try again."
            )
        result.gig = Gig(**row)

    try:
        for change in plan.application_changes:
            if not change.required:
                continue
            row, error = await repository.atomic_update_application_status(
                db, change.application_id, change.expected_status.value, change.new_status.value
            )
            if error == "not_found":
                raise NotFoundError("Application not found")
            if error == "conflict":
                raise TransitionConflictError(
                    "Application was modified by another request. Please refresh and try again."
                )
            applied.append(change)
            result.applications.append(Application(**row))
    except Exception:
        await _compensate(db, plan, applied)
        raise

    for change in plan.application_changes:
        if change.required:
            continue
        try:
            row, error = await repository.atomic_update_application_status(
                db, change.application_id, change.expected_status.value, change.new_status.value
            )
        except Exception as e:
            logger.warning(f"Failed to update application {change.application_id}: {e}")
            continue
        if error:
            # No longer pending, nothing to do and nobody to notify
            continue
        applied.append(change)
        result.applications.append(Application(**row))

    committed = {c.application_id for c in applied}
    for note in plan.notifications:
        if note.application_id and note.application_id not in committed:
            continue
        try:
            row = await repository.create_notification(
                db, note.user_id, note.type.value, note.message, note.related_gig_id
            )
        except Exception as e:
            logger.warning(f"Failed to notify {note.user_id} about gig {plan.gig_id}: {e}")
            continue
        if row:
            result.notifications.append(Notification(**row))

    return result


async def _compensate(db: Client, plan: TransitionPlan, applied: list[ApplicationChange]) -> None:
    """Undo the writes of a sequential commit that failed part way."""
    for change in reversed(applied):
        _, error = await repository.atomic_update_application_status(
            db, change.application_id, change.new_status.value, change.expected_status.value
        )
        if error:
            logger.error(f"Could not restore application {change.application_id} after failed transition")

    if plan.writes_gig:
        _, error = await repository.atomic_update_gig(
            db, plan.gig_id, plan.new_gig_status.value, plan.gig_restore
        )
        if error:
            logger.error(f"Could not restore gig {plan.gig_id} after failed transition")
        else:
            logger.warning(f"Rolled back gig {plan.gig_id} after failed {plan.action}")
