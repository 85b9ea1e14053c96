"""Auth middleware -- FastAPI dependencies for identifying the acting user.

The portal sits behind a gateway that has already authenticated the caller
and forwards who they are in two headers:

1. ``X-Actor-Id: <user id>``
2. ``X-Actor-Role: user | moderator | admin | super_admin`` (defaults to ``user``)
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from modguard.auth.permissions import Actor, Permission, has_permission
from modguard.errors import ValidationError


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_role: Optional[str] = Header(None, alias="X-Actor-Role"),
) -> Actor:
    """FastAPI dependency that builds the :class:`Actor` from request headers.

    Raises ``401`` when no actor id is sent and ``400`` for an unknown role.
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header",
        )
    try:
        return Actor(x_actor_id, x_actor_role or "user")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def require(permission: Permission):
    """Dependency factory for read endpoints that are not audited.

    Audited actions check permissions inside the orchestrated operation
    instead, so that refused attempts are recorded.
    """

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not has_permission(actor.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission.value}' required.",
            )
        return actor

    return dependency
