"""Static role -> permission policy for the CMS admin backend.

Each role declares its own permission set. ``manage`` on a resource stands for
create/read/update/delete on that resource with scope ``"all"`` and is expanded
by :func:`expand_permissions` before any matching happens.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from django.db import models


class Role(models.TextChoices):
    """User roles, totally ordered VIEWER < EDITOR < ADMIN."""

    VIEWER = "VIEWER", "Viewer"
    EDITOR = "EDITOR", "Editor"
    ADMIN = "ADMIN", "Admin"


ROLE_LEVELS: dict[str, int] = {
    Role.VIEWER: 1,
    Role.EDITOR: 2,
    Role.ADMIN: 3,
}

ACTION_CREATE = "create"
ACTION_READ = "read"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_MANAGE = "manage"

ACTIONS = (ACTION_CREATE, ACTION_READ, ACTION_UPDATE, ACTION_DELETE, ACTION_MANAGE)
CRUD_ACTIONS = (ACTION_CREATE, ACTION_READ, ACTION_UPDATE, ACTION_DELETE)

SCOPE_OWN = "own"
SCOPE_ALL = "all"

RESOURCES = (
    "products",
    "categories",
    "pages",
    "media",
    "orders",
    "users",
    "profile",
    "analytics",
    "audit",
    "security",
    "system",
    "settings",
)


@dataclass(frozen=True)
class Permission:
    """A (resource, action, scope) tuple. ``scope=None`` means role-level."""

    resource: str
    action: str
    scope: Optional[str] = None

    def __str__(self) -> str:
        base = f"{self.resource}:{self.action}"
        return f"{base}:{self.scope}" if self.scope else base

    def with_scope(self, scope: Optional[str]) -> "Permission":
        return Permission(self.resource, self.action, scope)

    def as_dict(self) -> dict:
        return {"resource": self.resource, "action": self.action, "scope": self.scope}


def _grant(resource: str, *actions: str, scope: str = SCOPE_ALL) -> tuple[Permission, ...]:
    return tuple(Permission(resource, action, scope) for action in actions)


ROLE_PERMISSIONS: dict[str, tuple[Permission, ...]] = {
    Role.VIEWER: (
        *_grant("products", ACTION_READ),
        *_grant("categories", ACTION_READ),
        *_grant("pages", ACTION_READ),
        *_grant("media", ACTION_READ),
        *_grant("orders", ACTION_READ),
        *_grant("profile", ACTION_MANAGE, scope=SCOPE_OWN),
        *_grant("users", ACTION_READ, ACTION_UPDATE, scope=SCOPE_OWN),
    ),
    Role.EDITOR: (
        *_grant("products", ACTION_MANAGE),
        *_grant("categories", ACTION_MANAGE),
        *_grant("media", ACTION_MANAGE),
        *_grant("pages", ACTION_CREATE, ACTION_READ),
        *_grant("pages", ACTION_UPDATE, ACTION_DELETE, scope=SCOPE_OWN),
        *_grant("orders", ACTION_READ),
        *_grant("analytics", ACTION_READ),
        *_grant("profile", ACTION_MANAGE, scope=SCOPE_OWN),
        *_grant("users", ACTION_READ, ACTION_UPDATE, scope=SCOPE_OWN),
    ),
    Role.ADMIN: tuple(Permission(resource, ACTION_MANAGE, SCOPE_ALL) for resource in RESOURCES),
}


def parse_role(value) -> Optional[Role]:
    """Return the Role for ``value`` or None for anything unrecognised."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def get_role_permissions(role) -> tuple[Permission, ...]:
    """Return the declared (unexpanded) permission set for a role."""
    parsed = parse_role(role)
    if parsed is None:
        return ()
    return ROLE_PERMISSIONS.get(parsed, ())


def expand_permissions(permissions: Iterable[Permission]) -> tuple[Permission, ...]:
    """Replace every ``manage`` grant with CRUD grants at scope ``"all"``.

    Order is preserved and duplicates are dropped.
    """
    expanded: list[Permission] = []
    seen: set[Permission] = set()
    for permission in permissions:
        if permission.action == ACTION_MANAGE:
            items = [Permission(permission.resource, action, SCOPE_ALL) for action in CRUD_ACTIONS]
            if permission.scope == SCOPE_OWN:
                items = [item.with_scope(SCOPE_OWN) for item in items]
        else:
            items = [permission]
        for item in items:
            if item not in seen:
                seen.add(item)
                expanded.append(item)
    return tuple(expanded)


def get_expanded_role_permissions(role) -> tuple[Permission, ...]:
    return expand_permissions(get_role_permissions(role))


__all__ = [
    "Role",
    "ROLE_LEVELS",
    "ROLE_PERMISSIONS",
    "RESOURCES",
    "ACTIONS",
    "CRUD_ACTIONS",
    "SCOPE_OWN",
    "SCOPE_ALL",
    "Permission",
    "parse_role",
    "get_role_permissions",
    "expand_permissions",
    "get_expanded_role_permissions",
]
