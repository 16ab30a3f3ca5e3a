"""Permission evaluator: the single authority for access decisions.

Every function here is pure and never raises. A missing user, an inactive user
or an unrecognised role always evaluates to ``False`` so callers cannot fail
open. The middleware, the DRF permission class, business views and the client
permission binding all call through this module.
"""

from typing import Any, Iterable, Optional

from .policy import (
    ACTION_MANAGE,
    CRUD_ACTIONS,
    RESOURCES,
    ROLE_LEVELS,
    SCOPE_ALL,
    SCOPE_OWN,
    Permission,
    Role,
    get_expanded_role_permissions,
    parse_role,
)


def _user_role(user: Any) -> Optional[Role]:
    if user is None:
        return None
    if not getattr(user, "is_active", False):
        return None
    return parse_role(getattr(user, "role", None))


def _scope_matches(granted: Optional[str], required: Optional[str]) -> bool:
    if required is None or granted is None:
        return True
    return granted == required or granted == SCOPE_ALL


def has_permission(user: Any, required: Permission) -> bool:
    """Return True if the user's role grants ``required``.

    A grant with scope ``"own"`` satisfies a required ``"own"`` scope; the
    caller is responsible for confirming ownership (see :func:`can_access`).
    """
    try:
        role = _user_role(user)
        if role is None or not isinstance(required, Permission):
            return False
        if required.action == ACTION_MANAGE:
            # Requiring "manage" means holding every CRUD action.
            return all(
                has_permission(user, Permission(required.resource, action, required.scope))
                for action in CRUD_ACTIONS
            )
        for granted in get_expanded_role_permissions(role):
            if granted.resource != required.resource or granted.action != required.action:
                continue
            if _scope_matches(granted.scope, required.scope):
                return True
        return False
    except Exception:  # pragma: no cover - malformed input must never fail open
        return False


def can_access(user: Any, required: Permission, owner_id: Any = None) -> bool:
    """Ownership-aware check for a concrete resource instance.

    A role-wide ("all") grant allows access outright. Otherwise, when the
    required scope is ``"own"``, the actor must own the resource and the role
    must still grant the ``"own"`` scope.
    """
    if has_permission(user, required.with_scope(SCOPE_ALL)):
        return True
    if required.scope != SCOPE_OWN or owner_id is None:
        return False
    if not is_owner(user, owner_id):
        return False
    return has_permission(user, required.with_scope(SCOPE_OWN))


def is_owner(user: Any, owner_id: Any) -> bool:
    user_id = getattr(user, "id", None)
    if user_id is None or owner_id is None:
        return False
    return str(user_id) == str(owner_id)


def has_minimum_role(user_or_role: Any, minimum) -> bool:
    """Coarse role gate using VIEWER < EDITOR < ADMIN."""
    if isinstance(user_or_role, (str, Role)):
        role = parse_role(user_or_role)
    else:
        role = _user_role(user_or_role)
    required = parse_role(minimum)
    if role is None or required is None:
        return False
    return ROLE_LEVELS[role] >= ROLE_LEVELS[required]


def has_any_permission(user: Any, permissions: Iterable[Permission]) -> bool:
    return any(has_permission(user, permission) for permission in permissions)


def has_all_permissions(user: Any, permissions: Iterable[Permission]) -> bool:
    permissions = list(permissions)
    return bool(permissions) and all(has_permission(user, permission) for permission in permissions)


def get_user_permissions(user: Any) -> tuple[Permission, ...]:
    role = _user_role(user)
    if role is None:
        return ()
    return get_expanded_role_permissions(role)


def get_accessible_resources(user: Any) -> list[str]:
    """Resources on which the user holds at least one permission, in policy order."""
    granted = {permission.resource for permission in get_user_permissions(user)}
    return [resource for resource in RESOURCES if resource in granted]


def is_admin(user: Any) -> bool:
    return _user_role(user) == Role.ADMIN


def is_role_escalation(old_role, new_role) -> bool:
    old, new = parse_role(old_role), parse_role(new_role)
    if old is None or new is None:
        return False
    return ROLE_LEVELS[new] > ROLE_LEVELS[old]


__all__ = [
    "has_permission",
    "can_access",
    "is_owner",
    "has_minimum_role",
    "has_any_permission",
    "has_all_permissions",
    "get_user_permissions",
    "get_accessible_resources",
    "is_admin",
    "is_role_escalation",
]
