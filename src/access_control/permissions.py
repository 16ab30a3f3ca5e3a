"""DRF permission class delegating to the permission evaluator.

Views declare the policy ``resource`` they expose; the HTTP method selects the
action. Object-level checks apply the ownership rule, so an "own" grant only
unlocks objects the caller owns.
"""

from rest_framework import permissions

from audit.services import AuditService, get_request_context, mark_outcome_recorded

from .evaluator import can_access, has_permission
from .policy import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_READ,
    ACTION_UPDATE,
    SCOPE_ALL,
    SCOPE_OWN,
    Permission,
)

METHOD_ACTIONS = {
    "GET": ACTION_READ,
    "HEAD": ACTION_READ,
    "OPTIONS": ACTION_READ,
    "POST": ACTION_CREATE,
    "PUT": ACTION_UPDATE,
    "PATCH": ACTION_UPDATE,
    "DELETE": ACTION_DELETE,
}


class RBACPermission(permissions.BasePermission):
    """Check the caller's role policy for the view's ``resource``."""

    message = "You do not have permission to perform this action on this resource."

    def has_permission(self, request, view) -> bool:
        resource = getattr(view, "resource", None)
        action = METHOD_ACTIONS.get(request.method)
        if not resource or action is None:
            return False

        user = getattr(request, "user", None)
        if not user or not getattr(user, "is_authenticated", False):
            return False

        # Role-level check: any grant of the action, "own" or "all".
        return has_permission(user, Permission(resource, action))

    def has_object_permission(self, request, view, obj) -> bool:
        resource = getattr(view, "resource", None)
        action = METHOD_ACTIONS.get(request.method)
        if not resource or action is None:
            return False

        user = getattr(request, "user", None)
        owner_id = getattr(obj, "owner_id", None)
        granted = can_access(user, Permission(resource, action, SCOPE_OWN), owner_id)
        if not granted:
            AuditService.from_settings().log_permission_check(
                user,
                resource,
                action,
                False,
                resource_id=str(obj.pk),
                details={"ownerId": str(owner_id) if owner_id else None, "reason": "not_owner"},
                **get_request_context(getattr(request, "_request", request)),
            )
            mark_outcome_recorded(request)
        return granted


def scope_queryset(user, resource: str, queryset, owner_field: str = "owner"):
    """Restrict ``queryset`` to what the user may read on ``resource``."""
    if has_permission(user, Permission(resource, ACTION_READ, SCOPE_ALL)):
        return queryset
    if has_permission(user, Permission(resource, ACTION_READ, SCOPE_OWN)):
        return queryset.filter(**{owner_field: user})
    return queryset.none()


__all__ = ["RBACPermission", "METHOD_ACTIONS", "scope_queryset"]
