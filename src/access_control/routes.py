"""Route table mapping request paths to the permissions they require.

Rules are evaluated in order and the first match wins. Paths that match no
rule still require an authenticated caller.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from .policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_MANAGE,
    ACTION_READ,
    ACTION_UPDATE,
    SCOPE_ALL,
    SCOPE_OWN,
    Permission,
    Role,
)

ROUTE_CLASS_AUTH = "auth"
ROUTE_CLASS_SENSITIVE = "sensitive"
ROUTE_CLASS_PUBLIC = "public"

SELF_GUARD_ALWAYS = "always"
SELF_GUARD_ADMIN = "admin"

READ_METHODS = ("GET", "HEAD", "OPTIONS")


@dataclass(frozen=True)
class RouteRule:
    """Authorization requirements for one path pattern."""

    pattern: str
    route_class: str = ROUTE_CLASS_PUBLIC
    permissions: dict = field(default_factory=dict)
    minimum_role: Optional[str] = None
    public: bool = False
    auth_only: bool = False
    owner_param: Optional[str] = None
    self_guard: Optional[str] = None
    skip: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", re.compile(self.pattern))

    def match(self, path: str) -> Optional[dict]:
        found = self._regex.match(path)  # type: ignore[attr-defined]
        if found is None:
            return None
        return {key: value for key, value in found.groupdict().items() if value is not None}

    def required_permissions(self, method: str) -> Optional[tuple[Permission, ...]]:
        """Permissions needed for ``method``; None when the method is not allowed.

        HEAD and OPTIONS are treated as GET.
        """
        method = method.upper()
        if method in READ_METHODS:
            method = "GET"
        if method in self.permissions:
            return self.permissions[method]
        return self.permissions.get("*")


@dataclass(frozen=True)
class ResolvedRoute:
    rule: RouteRule
    params: dict
    path: str

    @property
    def is_api(self) -> bool:
        return is_api_path(self.path)

    @property
    def target_id(self) -> Optional[str]:
        if not self.rule.owner_param and not self.rule.self_guard:
            return None
        return self.params.get(self.rule.owner_param or "user_id")


def _p(resource: str, action: str, scope: Optional[str] = SCOPE_ALL) -> tuple[Permission, ...]:
    return (Permission(resource, action, scope),)


def _crud(resource: str, own_writes: bool = False) -> dict:
    write_scope = SCOPE_OWN if own_writes else SCOPE_ALL
    return {
        "GET": _p(resource, ACTION_READ),
        "POST": _p(resource, ACTION_CREATE),
        "PUT": _p(resource, ACTION_UPDATE, write_scope),
        "PATCH": _p(resource, ACTION_UPDATE, write_scope),
        "DELETE": _p(resource, ACTION_DELETE, write_scope),
    }


_ID = r"(?P<user_id>[0-9a-fA-F-]{1,64})"

ROUTE_RULES: tuple[RouteRule, ...] = (
    # Infrastructure
    RouteRule(r"^/static/", skip=True),
    RouteRule(r"^/favicon\.ico$", skip=True),
    RouteRule(r"^/api/schema/?$", public=True),
    # Identity provider surface
    RouteRule(r"^/api/auth/(login|refresh)/?$", route_class=ROUTE_CLASS_AUTH, public=True),
    RouteRule(r"^/api/auth/logout/?$", route_class=ROUTE_CLASS_AUTH, auth_only=True),
    RouteRule(
        r"^/api/auth/me/?$",
        route_class=ROUTE_CLASS_AUTH,
        permissions={
            "GET": _p("profile", ACTION_READ, SCOPE_OWN),
            "PATCH": _p("profile", ACTION_UPDATE, SCOPE_OWN),
        },
    ),
    RouteRule(r"^/api/auth/permissions/?$", auth_only=True),
    # User administration
    RouteRule(
        rf"^/api/admin/users/{_ID}/role/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"PUT": _p("users", ACTION_MANAGE), "PATCH": _p("users", ACTION_MANAGE)},
        minimum_role=Role.ADMIN,
        self_guard=SELF_GUARD_ALWAYS,
    ),
    RouteRule(
        rf"^/api/admin/users/{_ID}/reactivate/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"POST": _p("users", ACTION_UPDATE)},
        minimum_role=Role.ADMIN,
        self_guard=SELF_GUARD_ALWAYS,
    ),
    RouteRule(
        r"^/api/admin/users/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"GET": _p("users", ACTION_READ)},
        minimum_role=Role.EDITOR,
    ),
    RouteRule(
        rf"^/api/users/{_ID}/deactivate/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"POST": _p("users", ACTION_UPDATE, SCOPE_OWN)},
        owner_param="user_id",
        self_guard=SELF_GUARD_ADMIN,
    ),
    # Audit and compliance
    RouteRule(
        r"^/api/admin/audit-logs/export/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"GET": _p("audit", ACTION_READ) + _p("system", ACTION_READ)},
        minimum_role=Role.ADMIN,
    ),
    RouteRule(
        r"^/api/admin/audit-logs/retention/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"POST": _p("audit", ACTION_MANAGE) + _p("system", ACTION_MANAGE)},
        minimum_role=Role.ADMIN,
    ),
    RouteRule(
        r"^/api/admin/audit-logs/security-incidents/?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"GET": _p("security", ACTION_READ)},
        minimum_role=Role.EDITOR,
    ),
    RouteRule(
        r"^/api/admin/audit-logs(/.*)?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"GET": _p("audit", ACTION_READ)},
        minimum_role=Role.EDITOR,
    ),
    RouteRule(
        r"^/api/admin(/.*)?$",
        route_class=ROUTE_CLASS_SENSITIVE,
        permissions={"*": _p("system", ACTION_MANAGE)},
        minimum_role=Role.ADMIN,
    ),
    # Content
    RouteRule(r"^/api/pages(/[0-9]+)?/?$", permissions=_crud("pages", own_writes=True)),
    RouteRule(r"^/api/products(/[0-9]+)?/?$", permissions=_crud("products", own_writes=True)),
    # Browser routes
    RouteRule(r"^/$", public=True),
    RouteRule(r"^/auth/(login|register|password-reset)/?$", route_class=ROUTE_CLASS_AUTH, public=True),
    RouteRule(r"^/admin/users(/.*)?$", permissions={"GET": _p("users", ACTION_READ)}, minimum_role=Role.EDITOR),
    RouteRule(
        r"^/admin/security(/.*)?$", permissions={"GET": _p("security", ACTION_READ)}, minimum_role=Role.EDITOR
    ),
    RouteRule(r"^/admin/audit(/.*)?$", permissions={"GET": _p("audit", ACTION_READ)}, minimum_role=Role.EDITOR),
    RouteRule(r"^/admin(/.*)?$", minimum_role=Role.EDITOR, auth_only=True),
    RouteRule(r"^/profile/?$", auth_only=True),
)

DEFAULT_RULE = RouteRule(r"^/", auth_only=True)


def is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def is_admin_path(path: str) -> bool:
    return path.startswith("/admin") or path.startswith("/api/admin")


def resolve_route(path: str, rules: tuple[RouteRule, ...] = ROUTE_RULES) -> ResolvedRoute:
    """Return the first rule matching ``path`` (or the authenticated default)."""
    for rule in rules:
        params = rule.match(path)
        if params is not None:
            return ResolvedRoute(rule=rule, params=params, path=path)
    route_class = ROUTE_CLASS_SENSITIVE if is_admin_path(path) else ROUTE_CLASS_PUBLIC
    rule = RouteRule(DEFAULT_RULE.pattern, route_class=route_class, auth_only=True)
    return ResolvedRoute(rule=rule, params={}, path=path)


__all__ = [
    "RouteRule",
    "ResolvedRoute",
    "ROUTE_RULES",
    "ROUTE_CLASS_AUTH",
    "ROUTE_CLASS_SENSITIVE",
    "ROUTE_CLASS_PUBLIC",
    "SELF_GUARD_ALWAYS",
    "SELF_GUARD_ADMIN",
    "resolve_route",
    "is_api_path",
    "is_admin_path",
]
