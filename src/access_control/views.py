"""Permission binding consumed by client-side guards.

The UI never evaluates roles itself: it asks this endpoint what the caller may
do, and the answer is computed by the same evaluator the server enforces.
"""

from rest_framework.exceptions import AuthenticationFailed

from core.response import BaseAPIView, api_response
from .evaluator import get_accessible_resources, get_user_permissions, is_admin
from .policy import ROLE_LEVELS, parse_role


class PermissionsView(BaseAPIView):
    """Return the caller's role, expanded permissions and accessible resources."""

    permission_classes: list = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")
        user = request.user
        role = parse_role(user.role)
        return api_response(
            {
                "userId": str(user.id),
                "role": role.value if role else None,
                "roleLevel": ROLE_LEVELS.get(role, 0) if role else 0,
                "isAdmin": is_admin(user),
                "permissions": [permission.as_dict() for permission in get_user_permissions(user)],
                "resources": get_accessible_resources(user),
            }
        )


__all__ = ["PermissionsView"]
