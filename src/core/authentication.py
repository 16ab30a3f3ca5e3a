"""Bridge between the authorization middleware and DRF authentication.

``AuthorizationMiddleware`` verifies the bearer token before any view runs and
attaches the user to the Django request. DRF would otherwise re-run its own
authentication classes, so this authenticator only surfaces that user.
"""

from typing import Any, Optional, Tuple

from rest_framework.authentication import BaseAuthentication


class MiddlewareUserAuthentication(BaseAuthentication):
    """Expose ``request._request.user`` (set by the middleware) to DRF."""

    def authenticate(self, request) -> Optional[Tuple[Any, Any]]:
        django_request = getattr(request, "_request", None)
        if django_request is None:
            return None

        user = getattr(django_request, "user", None)
        if user is None or not getattr(user, "is_authenticated", False):
            return None

        return user, getattr(django_request, "authz_decision", None)

    def authenticate_header(self, request) -> str:
        # Makes DRF answer NotAuthenticated with 401 rather than 403.
        return 'Bearer realm="api"'


__all__ = ["MiddlewareUserAuthentication"]
