"""Gig lifecycle decisions.

Given a snapshot of a gig and its applications, these functions decide
which records change and who gets notified. They never touch the store:
the result is a TransitionPlan that the service commits in one go.

Forward path::

    open -> assigned -> in-progress -> in-review -> completed

Every write in a plan names the status it expects to overwrite. A plan
built from a stale snapshot therefore fails on commit instead of
silently overwriting a concurrent decision, which is what makes the
first accepted application win.
"""

from dataclasses import dataclass, field

from .errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    TransitionConflictError,
    ValidationFailedError,
)
from .models import (
    OVERRIDE_STATUSES,
    Application,
    ApplicationStatus,
    Gig,
    GigStatus,
    NotificationType,
    UserProfile,
    UserRole,
)

ACCEPTED_MESSAGE = 'Your application for "{title}" has been accepted!'
REJECTED_MESSAGE = 'Your application for "{title}" was not selected.'
ASSIGNED_MESSAGE = "You have been assigned to the gig: {title}"
STATUS_MESSAGE = 'The gig "{title}" is now {status}.'


@dataclass
class ApplicationChange:
    """One application status write.

    ``required`` changes abort the whole plan when the expected status no
    longer holds; the others are skipped (with their notification).
    """

    application_id: str
    freelancer_id: str
    expected_status: ApplicationStatus
    new_status: ApplicationStatus
    required: bool = True


@dataclass
class PlannedNotification:
    user_id: str
    type: NotificationType
    message: str
    related_gig_id: str
    # Only sent if this application's change commits
    application_id: str | None = None


@dataclass
class TransitionPlan:
    action: str
    gig_id: str
    actor_id: str
    expected_gig_status: GigStatus | None = None
    new_gig_status: GigStatus | None = None
    gig_updates: dict = field(default_factory=dict)
    # Values that undo gig_updates, used when a later write fails
    gig_restore: dict = field(default_factory=dict)
    application_changes: list[ApplicationChange] = field(default_factory=list)
    notifications: list[PlannedNotification] = field(default_factory=list)

    @property
    def writes_gig(self) -> bool:
        return self.new_gig_status is not None

    def affected_users(self, gig: Gig) -> set[str]:
        """Users whose dashboards may change once this plan commits."""
        users = {gig.poster_id}
        assignee = self.gig_updates.get("assigned_to") or gig.assigned_to
        if assignee:
            users.add(assignee)
        return users

    def to_payload(self) -> dict:
        """Serialize for the commit_gig_transition stored procedure."""
        gig_updates = dict(self.gig_updates)
        if self.writes_gig:
            gig_updates["status"] = self.new_gig_status.value
        return {
            "action": self.action,
            "gig_id": self.gig_id,
            "actor_id": self.actor_id,
            "expected_gig_status": self.expected_gig_status.value if self.expected_gig_status else None,
            "gig_updates": gig_updates if self.writes_gig else {},
            "application_changes": [
                {
                    "id": c.application_id,
                    "expected_status": c.expected_status.value,
                    "new_status": c.new_status.value,
                    "required": c.required,
                }
                for c in self.application_changes
            ],
            "notifications": [
                {
                    "user_id": n.user_id,
                    "type": n.type.value,
                    "message": n.message,
                    "related_gig_id": n.related_gig_id,
                    "application_id": n.application_id,
                }
                for n in self.notifications
            ],
        }


def _require_owner(gig: Gig, actor_id: str, verb: str) -> None:
    if gig.poster_id != actor_id:
        raise PermissionDeniedError(f"Only the gig's client can {verb}")


def _require_unassigned_open(gig: Gig) -> None:
    if gig.assigned_to:
        raise TransitionConflictError("Another freelancer was already assigned to this gig.")
    if gig.status != GigStatus.open:
        raise InvalidTransitionError(f"Cannot assign a gig in status: {gig.status.value}")


def _require_pending(application: Application, gig: Gig) -> None:
    if application.gig_id != gig.id:
        raise NotFoundError("Application not found for this gig")
    if application.status != ApplicationStatus.pending:
        raise InvalidTransitionError(f"Application is already {application.status.value}")


def plan_acceptance(
    gig: Gig,
    application: Application,
    applications: list[Application],
    actor_id: str,
) -> TransitionPlan:
    """Accept one application, assign its freelancer, reject the other pending ones."""
    _require_owner(gig, actor_id, "accept applications")
    _require_pending(application, gig)
    _require_unassigned_open(gig)

    plan = TransitionPlan(
        action="accept_application",
        gig_id=gig.id,
        actor_id=actor_id,
        expected_gig_status=GigStatus.open,
        new_gig_status=GigStatus.assigned,
        gig_updates={"assigned_to": application.freelancer_id},
        gig_restore={"status": gig.status.value, "assigned_to": gig.assigned_to},
    )

    plan.application_changes.append(
        ApplicationChange(
            application_id=application.id,
            freelancer_id=application.freelancer_id,
            expected_status=ApplicationStatus.pending,
            new_status=ApplicationStatus.accepted,
        )
    )
    plan.notifications.append(
        PlannedNotification(
            user_id=application.freelancer_id,
            type=NotificationType.application_accepted,
            message=ACCEPTED_MESSAGE.format(title=gig.title),
            related_gig_id=gig.id,
            application_id=application.id,
        )
    )

    for other in applications:
        if other.id == application.id or other.gig_id != gig.id:
            continue
        if other.status != ApplicationStatus.pending:
            continue
        plan.application_changes.append(
            ApplicationChange(
                application_id=other.id,
                freelancer_id=other.freelancer_id,
                expected_status=ApplicationStatus.pending,
                new_status=ApplicationStatus.rejected,
                required=False,
            )
        )
        plan.notifications.append(
            PlannedNotification(
                user_id=other.freelancer_id,
                type=NotificationType.application_rejected,
                message=REJECTED_MESSAGE.format(title=gig.title),
                related_gig_id=gig.id,
                application_id=other.id,
            )
        )

    return plan


def plan_rejection(gig: Gig, application: Application, actor_id: str) -> TransitionPlan:
    """Reject a single pending application on a gig not yet assigned.

    The gig itself is untouched. After a gig is assigned its remaining
    applications are left as they are.
    """
    _require_owner(gig, actor_id, "reject applications")
    _require_pending(application, gig)
    if gig.assigned_to or gig.status != GigStatus.open:
        raise InvalidTransitionError(
            f"Cannot reject applications on a gig in status: {gig.status.value}"
        )

    return TransitionPlan(
        action="reject_application",
        gig_id=gig.id,
        actor_id=actor_id,
        application_changes=[
            ApplicationChange(
                application_id=application.id,
                freelancer_id=application.freelancer_id,
                expected_status=ApplicationStatus.pending,
                new_status=ApplicationStatus.rejected,
            )
        ],
        notifications=[
            PlannedNotification(
                user_id=application.freelancer_id,
                type=NotificationType.application_rejected,
                message=REJECTED_MESSAGE.format(title=gig.title),
                related_gig_id=gig.id,
                application_id=application.id,
            )
        ],
    )


def plan_assignment(gig: Gig, freelancer: UserProfile, actor_id: str) -> TransitionPlan:
    """Assign a freelancer directly, without going through an application."""
    _require_owner(gig, actor_id, "assign freelancers")
    if freelancer.role != UserRole.freelancer:
        raise ValidationFailedError("Only freelancers can be assigned to gigs")
    _require_unassigned_open(gig)

    return TransitionPlan(
        action="assign_freelancer",
        gig_id=gig.id,
        actor_id=actor_id,
        expected_gig_status=GigStatus.open,
        new_gig_status=GigStatus.assigned,
        gig_updates={"assigned_to": freelancer.id},
        gig_restore={"status": gig.status.value, "assigned_to": gig.assigned_to},
        notifications=[
            PlannedNotification(
                user_id=freelancer.id,
                type=NotificationType.assignment,
                message=ASSIGNED_MESSAGE.format(title=gig.title),
                related_gig_id=gig.id,
            )
        ],
    )


def plan_status_override(gig: Gig, new_status: GigStatus, actor_id: str) -> TransitionPlan:
    """Client sets the status from the selector.

    Any of open / in-progress / completed may be chosen from any current
    status; assignment is not checked. The write still carries the
    current status as its expectation so a concurrent change is not lost.
    """
    _require_owner(gig, actor_id, "change the gig status")
    if new_status not in OVERRIDE_STATUSES:
        allowed = ", ".join(sorted(s.value for s in OVERRIDE_STATUSES))
        raise ValidationFailedError(f"Status must be one of: {allowed}")
    if new_status == gig.status:
        raise InvalidTransitionError(f"Gig is already {gig.status.value}")

    plan = TransitionPlan(
        action="override_status",
        gig_id=gig.id,
        actor_id=actor_id,
        expected_gig_status=gig.status,
        new_gig_status=new_status,
        gig_restore={"status": gig.status.value},
    )
    if gig.assigned_to:
        plan.notifications.append(
            PlannedNotification(
                user_id=gig.assigned_to,
                type=NotificationType.status_update,
                message=STATUS_MESSAGE.format(title=gig.title, status=new_status.value),
                related_gig_id=gig.id,
            )
        )
    return plan
