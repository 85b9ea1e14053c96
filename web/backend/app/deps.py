"""Shared FastAPI dependencies and error translation."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from modguard.auth.permissions import Actor
from modguard.container import Services
from modguard.errors import (
    DependencyError,
    ModGuardError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
    user_message,
)
from modguard.orchestrator.models import OperationResult

_STATUS_CODES: list[tuple[type[ModGuardError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def get_services(request: Request) -> Services:
    """Return the services the app was created with."""
    return request.app.state.services


def status_for(error: BaseException) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(error, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def raise_for_result(result: OperationResult, actor: Actor) -> None:
    """Turn a failed :class:`OperationResult` into an HTTP error."""
    if result.success:
        return
    error = result.error
    raise HTTPException(
        status_code=status_for(error) if error is not None else 500,
        detail={
            "message": result.message or user_message(error, admin=actor.role.is_admin),
            "code": getattr(error, "code", None),
            "audit_id": result.audit_id,
        },
    )
