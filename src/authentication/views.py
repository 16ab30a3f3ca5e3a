"""Authentication endpoints: login, refresh, logout, and profile."""

import logging
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.response import Response

from access_control.decisions import ROLE_MANIPULATION, SUSPICIOUS_ACTIVITY
from audit.models import Severity
from audit.services import ANONYMOUS, AuditService, get_request_context, mark_outcome_recorded
from core.exceptions import RoleManipulationDenied
from core.response import BaseAPIView, api_response
from .serializers import (
    PROTECTED_PROFILE_FIELDS,
    LoginSerializer,
    ProfileUpdateSerializer,
    RefreshSerializer,
    UserDetailSerializer,
)
from .services import TokenService

User = get_user_model()
logger = logging.getLogger(__name__)


class LoginView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Authenticate and issue access + refresh tokens."""
        audit = AuditService.from_settings()
        context = get_request_context(request)
        serializer = LoginSerializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
        except AuthenticationFailed as exc:
            _record_failed_login(audit, request, str(exc.detail), context)
            mark_outcome_recorded(request)
            raise

        user = serializer.validated_data["user"]
        access, refresh = TokenService.generate_tokens(user)
        audit.log_auth(user, "login", {"success": True, "email": user.email}, **context)
        return api_response({"access": access, "refresh": refresh})


class RefreshView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Exchange a valid refresh token for new access/refresh tokens.

        The presented refresh token is blocklisted so it cannot be replayed.
        Tokens minted before the user's current token_version are rejected.
        """
        serializer = RefreshSerializer(data=request.data)
        if not serializer.is_valid():
            raise AuthenticationFailed("Refresh token required")

        user, payload = TokenService.authenticate(serializer.validated_data["refresh"], expected_type="refresh")
        TokenService.revoke(payload)
        access, new_refresh = TokenService.generate_tokens(user)
        return api_response({"access": access, "refresh": new_refresh})


class LogoutView(BaseAPIView):
    """Invalidate the current access token by blocklisting its jti."""

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Blocklist the bearer access token and return 204 No Content."""
        token = _get_bearer_token(request)
        if not token or not request.user.is_authenticated:
            raise AuthenticationFailed("Missing token.")

        payload = TokenService.decode_token(token, expected_type="access")
        TokenService.revoke(payload)
        AuditService.from_settings().log_auth(request.user, "logout", {"success": True}, **get_request_context(request))
        # 204 responses must not include a body.
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """Return the current user's profile."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")
        return api_response(UserDetailSerializer(request.user).data)

    # noinspection PyMethodMayBeStatic
    def patch(self, request):
        """Update profile fields for the current user.

        Attempts to change role or account status through the profile are
        recorded as role manipulation and refused.
        """
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")

        audit = AuditService.from_settings()
        context = get_request_context(request)
        attempted = sorted(field for field in PROTECTED_PROFILE_FIELDS if field in request.data)
        if attempted:
            audit.log_security_event(
                user_id=request.user,
                classification=ROLE_MANIPULATION,
                resource="profile",
                resource_id=str(request.user.id),
                details={
                    "attemptedFields": attempted,
                    "currentRole": request.user.role,
                    "success": False,
                    "error": RoleManipulationDenied.default_detail,
                },
                severity=Severity.HIGH,
                **context,
            )
            mark_outcome_recorded(request)
            raise RoleManipulationDenied()

        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            serializer.save()
            audit.log_user(
                request.user,
                "profile_updated",
                request.user.id,
                {"fields": sorted(serializer.validated_data)},
                **context,
            )
        return api_response(UserDetailSerializer(request.user).data)


def _record_failed_login(audit: AuditService, request, reason: str, context: dict) -> None:
    """Audit a failed login and flag repeated failures from the same client."""
    email = request.data.get("email") if hasattr(request.data, "get") else None
    user = User.objects.filter(email__iexact=email).first() if email else None
    audit.log_auth(
        user or ANONYMOUS,
        "login_failed",
        {"success": False, "error": reason, "email": email},
        **context,
    )
    failures = audit.recent_auth_failures(context.get("ip_address"))
    if failures >= getattr(settings, "AUTH_FAILURE_THRESHOLD", 5):
        logger.warning("Repeated login failures from %s (%d in the last hour)", context.get("ip_address"), failures)
        audit.log_security_event(
            user_id=user or ANONYMOUS,
            classification=SUSPICIOUS_ACTIVITY,
            resource="auth",
            details={"reason": "Multiple failed login attempts", "count": failures, "timeWindow": "1 hour"},
            severity=Severity.CRITICAL,
            **context,
        )


def _get_bearer_token(request) -> str | None:
    """Extract the Bearer token from Authorization header if present."""
    auth_header = request.META.get("HTTP_AUTHORIZATION", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None
