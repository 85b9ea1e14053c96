"""Error taxonomy for the moderation pipeline.

Every error carries a stable ``code`` and a user-facing message.  The
orchestrator is the boundary that turns exceptions into results; anything
shown to an end user goes through :func:`user_message`.
"""

from __future__ import annotations

from typing import Any, Optional


class ModGuardError(Exception):
    """Base class for all pipeline errors."""

    code = "MODGUARD_ERROR"
    public_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        return self.message


class ValidationError(ModGuardError):
    """Missing reason, out-of-range priority or risk score, bad status."""

    code = "VALIDATION_ERROR"
    public_message = "The request was invalid. Please check the values and try again."


class ConfigurationError(ValidationError):
    code = "CONFIGURATION_ERROR"
    public_message = "The service is misconfigured. Contact an administrator."


class NotFoundError(ModGuardError):
    code = "NOT_FOUND"
    public_message = "The requested item could not be found."


class StateConflictError(ModGuardError):
    """Transition out of a terminal state, or a lost compare-and-swap."""

    code = "STATE_CONFLICT"
    public_message = "This item has already been handled by someone else."


class DependencyError(ModGuardError):
    """A store, notifier or health-checked service failed or timed out."""

    code = "DEPENDENCY_ERROR"
    public_message = "Service temporarily unavailable. Please try again."


class AnalysisDegradedError(ModGuardError):
    code = "ANALYSIS_DEGRADED"
    public_message = "Content could not be fully analyzed and needs manual review."


class PermissionDeniedError(ModGuardError):
    code = "PERMISSION_DENIED"
    public_message = "You don't have permission to perform this action."


def user_message(error: BaseException, admin: bool = False) -> str:
    """Map an exception to the text shown to a user.

    Admins get the concrete error text; everyone else gets the generic
    message for the error's code, so raw dependency text never reaches a
    non-admin user.
    """
    if admin:
        return str(error) or error.__class__.__name__
    if isinstance(error, ModGuardError):
        return error.public_message
    return ModGuardError.public_message
