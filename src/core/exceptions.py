"""Custom exception handling to enforce the API error envelope.

Every error leaves the API as ``{"data": null, "error": {"code", "message",
"details"?}}``. Internal exception text is logged, never returned.
"""

import logging
from typing import Any

from django.conf import settings
from django.db import DatabaseError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    NotAuthenticated,
    NotFound,
    PermissionDenied,
    Throttled,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from audit.services import AuditWriteError
from authentication.services import BlocklistUnavailable
from core.ratelimit import RateLimitUnavailable
from core.response import error_payload

logger = logging.getLogger(__name__)


class SelfModificationForbidden(PermissionDenied):
    default_detail = "You cannot perform this operation on your own account."
    default_code = "SELF_MODIFICATION_FORBIDDEN"


class RoleManipulationDenied(PermissionDenied):
    default_detail = "Role and account status cannot be changed through this endpoint."
    default_code = "ROLE_MANIPULATION_DENIED"


class InvalidPassword(ValidationError):
    default_detail = "Password confirmation does not match."
    default_code = "INVALID_PASSWORD"

    def __init__(self, detail=None):
        super().__init__({"confirmPassword": [detail or self.default_detail]}, code=self.default_code)


class AlreadyDeactivated(ValidationError):
    default_detail = "Account is already deactivated."
    default_code = "ALREADY_DEACTIVATED"

    def __init__(self, detail=None):
        super().__init__({"isActive": [detail or self.default_detail]}, code=self.default_code)


_AUTH_MESSAGE = "Authentication credentials were not provided or are invalid, token revoked, or user is inactive."
_FORBIDDEN_MESSAGE = "You do not have permission to perform this action on this resource."


def _error_code(exc: APIException, default: str) -> str:
    code = getattr(exc, "default_code", "")
    return code if code and code.isupper() else default


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Wrap DRF errors in the ``{"data": null, "error": {...}}`` envelope.

    - Blocklist, rate-limiter and database outages fail closed with 503.
    - Audit write failures and unexpected exceptions become a fixed 500.
    - DEBUG_AUTH_ERRORS exposes the underlying 401 message for debugging.
    """

    if isinstance(exc, BlocklistUnavailable):
        logger.error("Blocklist unavailable: %s", exc)
        return Response(
            error_payload("SERVICE_UNAVAILABLE", "Authentication service unavailable (blocklist)."),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if isinstance(exc, RateLimitUnavailable):
        logger.error("Rate limiter unavailable: %s", exc)
        return Response(
            error_payload("SERVICE_UNAVAILABLE", "Rate limiting service unavailable."),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if isinstance(exc, AuditWriteError):
        logger.exception("Audit write failed; request rolled back")
        return Response(
            error_payload("INTERNAL_ERROR", "An internal error occurred."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # Treat database errors as a temporary service outage.
    if isinstance(exc, DatabaseError):
        logger.exception("Database error while handling request")
        return Response(
            error_payload("SERVICE_UNAVAILABLE", "Service temporarily unavailable."),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled exception", exc_info=exc)
        return Response(
            error_payload("INTERNAL_ERROR", "An internal error occurred."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # AuthenticationFailed/NotAuthenticated always map to 401.
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        response.status_code = status.HTTP_401_UNAUTHORIZED
        if getattr(settings, "DEBUG_AUTH_ERRORS", False):
            message = str(getattr(exc, "detail", _AUTH_MESSAGE))
        else:
            message = _AUTH_MESSAGE
        response.data = error_payload("UNAUTHORIZED", message)
    elif isinstance(exc, PermissionDenied):
        message = str(exc.detail) if type(exc) is not PermissionDenied else _FORBIDDEN_MESSAGE
        response.data = error_payload(_error_code(exc, "FORBIDDEN"), message)
    elif isinstance(exc, ValidationError):
        code = _error_code(exc, "VALIDATION_ERROR")
        message = "Invalid input." if code == "VALIDATION_ERROR" else str(exc.default_detail)
        response.data = error_payload(code, message, exc.detail)
    elif isinstance(exc, (NotFound, Http404)):
        response.data = error_payload("NOT_FOUND", "Resource not found.")
    elif isinstance(exc, Throttled):
        response.data = error_payload("RATE_LIMITED", "Too many requests.", {"retryAfter": exc.wait})
    elif response.status_code >= 400:
        detail = getattr(exc, "detail", None)
        code = str(getattr(exc, "default_code", "error")).upper()
        response.data = error_payload(code, str(detail) if detail else "Request failed.")

    return response


__all__ = [
    "AlreadyDeactivated",
    "InvalidPassword",
    "RoleManipulationDenied",
    "SelfModificationForbidden",
    "custom_exception_handler",
]
