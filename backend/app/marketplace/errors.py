"""Marketplace domain errors.

Each error carries the HTTP status the API layer answers with, so the
service code never imports FastAPI.
"""


class MarketplaceError(Exception):
    """Base class for marketplace failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MarketplaceError):
    """Gig, application, notification or profile does not exist."""

    status_code = 404


class PermissionDeniedError(MarketplaceError):
    """Actor is not the owner or lacks the role for this action."""

    status_code = 403


class InvalidTransitionError(MarketplaceError):
    """Current status does not allow the requested transition."""

    status_code = 400


class TransitionConflictError(MarketplaceError):
    """A concurrent writer changed the records first."""

    status_code = 409


class DuplicateApplicationError(MarketplaceError):
    """The freelancer already applied to this gig."""

    status_code = 409


class ValidationFailedError(MarketplaceError):
    """Input rejected before any write."""

    status_code = 422
