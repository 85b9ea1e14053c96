"""Role-based access control for moderation actions.

Role hierarchy: super_admin > admin > moderator > user
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from modguard.errors import PermissionDeniedError, ValidationError


class Role(str, Enum):
    user = "user"
    moderator = "moderator"
    admin = "admin"
    super_admin = "super_admin"

    @property
    def level(self) -> int:
        """Return numeric level for comparison (higher = more privileges)."""
        return {
            Role.super_admin: 40,
            Role.admin: 30,
            Role.moderator: 20,
            Role.user: 10,
        }[self]

    @property
    def is_admin(self) -> bool:
        return self in (Role.admin, Role.super_admin)


class Permission(str, Enum):
    flag_content = "flag_content"
    moderate_content = "moderate_content"
    review_escalated = "review_escalated"
    view_analytics = "view_analytics"
    view_audit_logs = "view_audit_logs"
    manage_system = "manage_system"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.user: frozenset({Permission.flag_content}),
    Role.moderator: frozenset(
        {Permission.flag_content, Permission.moderate_content, Permission.view_analytics}
    ),
    Role.admin: frozenset(
        {
            Permission.flag_content,
            Permission.moderate_content,
            Permission.review_escalated,
            Permission.view_analytics,
            Permission.view_audit_logs,
        }
    ),
    Role.super_admin: frozenset(Permission),
}


def parse_role(value: str | Role) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ValidationError(f"Unknown role '{value}'", {"allowed": [r.value for r in Role]}) from None


def has_permission(role: str | Role, permission: str | Permission) -> bool:
    """Check whether *role* grants *permission*.  Unknown roles grant nothing."""
    try:
        role = Role(role)
    except ValueError:
        return False
    return Permission(permission) in ROLE_PERMISSIONS[role]


def has_all_permissions(role: str | Role, permissions: Iterable[str | Permission]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def require_permission(role: str | Role, permission: str | Permission) -> None:
    """Raise :class:`PermissionDeniedError` unless *role* grants *permission*."""
    if not has_permission(role, permission):
        perm = Permission(permission).value
        raise PermissionDeniedError(
            f"Role '{getattr(role, 'value', role)}' lacks permission '{perm}'",
            {"role": getattr(role, "value", role), "permission": perm},
        )


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an action runs."""

    id: str
    role: Role = Role.user

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", parse_role(self.role))

    def can(self, permission: str | Permission) -> bool:
        return has_permission(self.role, permission)
