"""Tests for roles, permissions and user-facing error messages."""

import pytest

from modguard.auth.permissions import (
    Actor,
    Permission,
    Role,
    has_all_permissions,
    has_permission,
    parse_role,
    require_permission,
)
from modguard.errors import (
    ConfigurationError,
    DependencyError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
    user_message,
)


def test_role_hierarchy():
    assert Role.super_admin.level > Role.admin.level > Role.moderator.level > Role.user.level
    assert Role.admin.is_admin
    assert not Role.moderator.is_admin


def test_role_permissions():
    assert has_permission("user", Permission.flag_content)
    assert not has_permission("user", Permission.moderate_content)
    assert has_permission("moderator", "moderate_content")
    assert not has_permission(Role.moderator, Permission.review_escalated)
    assert has_all_permissions(Role.admin, [Permission.review_escalated, Permission.view_audit_logs])
    assert not has_permission(Role.admin, Permission.manage_system)
    assert all(has_permission(Role.super_admin, p) for p in Permission)


def test_unknown_role_grants_nothing():
    assert not has_permission("janitor", Permission.flag_content)
    with pytest.raises(ValidationError):
        parse_role("janitor")


def test_require_permission():
    require_permission(Role.moderator, Permission.moderate_content)
    with pytest.raises(PermissionDeniedError) as exc_info:
        require_permission(Role.user, Permission.moderate_content)
    assert exc_info.value.details == {"role": "user", "permission": "moderate_content"}


def test_actor_parses_role():
    actor = Actor("u1", "admin")
    assert actor.role is Role.admin
    assert actor.can(Permission.review_escalated)
    with pytest.raises(ValidationError):
        Actor("u2", "root")


def test_user_message_hides_details_from_non_admins():
    err = DependencyError("connection to /var/lib/modguard/queue.json refused")
    assert user_message(err) == DependencyError.public_message
    assert "queue.json" in user_message(err, admin=True)
    assert user_message(RuntimeError("boom")) == "An unexpected error occurred. Please try again."


def test_error_codes():
    assert StateConflictError("x").code == "STATE_CONFLICT"
    assert isinstance(ConfigurationError("x"), ValidationError)
    err = ValidationError("bad priority", {"priority": 9})
    assert err.to_dict() == {"code": "VALIDATION_ERROR", "message": "bad priority", "details": {"priority": 9}}
