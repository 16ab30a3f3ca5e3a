"""User administration: listing, role changes, deactivation and reactivation.

The middleware has already applied the route's role gate, self-guard and
permission check. These handlers repeat the ownership and self-target checks
through the evaluator before mutating anything, and each mutation is written
together with its audit record in one transaction.
"""

from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework.exceptions import PermissionDenied, ValidationError

from access_control.evaluator import can_access, has_permission, is_admin, is_owner
from access_control.policy import ACTION_MANAGE, ACTION_READ, ACTION_UPDATE, SCOPE_ALL, SCOPE_OWN, Permission, parse_role
from audit.services import AuditService, get_request_context
from core.exceptions import AlreadyDeactivated, InvalidPassword, SelfModificationForbidden
from core.response import BaseAPIView, api_response
from .serializers import (
    DeactivateSerializer,
    ReactivateSerializer,
    RoleChangeSerializer,
    UserListQuerySerializer,
    UserSummarySerializer,
)

User = get_user_model()


class UserListView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """List users, optionally filtered by role, status or a search term."""
        if not has_permission(request.user, Permission("users", ACTION_READ, SCOPE_ALL)):
            raise PermissionDenied()
        query = UserListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        users = User.objects.for_listing(
            role=params.get("role"), is_active=params.get("isActive"), search=params.get("search")
        )
        return api_response(UserSummarySerializer(users, many=True).data)


class UserRoleView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def put(self, request, user_id):
        """Change another user's role and record the transition."""
        if not has_permission(request.user, Permission("users", ACTION_MANAGE, SCOPE_ALL)):
            raise PermissionDenied()
        target = get_object_or_404(User, id=user_id)
        if is_owner(request.user, target.id):
            raise SelfModificationForbidden()

        body = RoleChangeSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        new_role = parse_role(body.validated_data["role"])
        old_role = parse_role(target.role)
        if new_role == old_role:
            raise ValidationError({"role": ["User already has this role."]})

        with transaction.atomic():
            target.change_role(new_role)
            history = AuditService.from_settings().log_role_change(
                request.user,
                target.id,
                old_role.value if old_role else str(target.role),
                new_role.value,
                body.validated_data["reason"],
                **get_request_context(request._request),
            )
        return api_response({"user": UserSummarySerializer(target).data, "roleChange": history.as_dict()})

    patch = put


class UserDeactivateView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request, user_id):
        """Deactivate an account (self-service or by an admin)."""
        target = get_object_or_404(User, id=user_id)
        if not can_access(request.user, Permission("users", ACTION_UPDATE, SCOPE_OWN), target.id):
            raise PermissionDenied()
        is_self = is_owner(request.user, target.id)
        if is_self and is_admin(request.user):
            raise SelfModificationForbidden("Admin users cannot deactivate their own account.")

        body = DeactivateSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        data = body.validated_data

        if not target.is_active:
            raise AlreadyDeactivated()
        if is_self and not target.check_password(data.get("confirmPassword") or ""):
            raise InvalidPassword()

        with transaction.atomic():
            target.deactivate()
            AuditService.from_settings().log_user(
                request.user,
                "deactivated",
                target.id,
                {
                    "reason": data["reason"],
                    "deactivatedBy": "self" if is_self else "admin",
                    "dataRetention": data["dataRetention"],
                    "isActive": False,
                    "success": True,
                },
                **get_request_context(request._request),
            )
        return api_response(
            {"message": "Account deactivated successfully", "user": UserSummarySerializer(target).data}
        )


class UserReactivateView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request, user_id):
        """Reactivate a deactivated account (admin only)."""
        if not has_permission(request.user, Permission("users", ACTION_UPDATE, SCOPE_ALL)):
            raise PermissionDenied()
        target = get_object_or_404(User, id=user_id)
        if is_owner(request.user, target.id):
            raise SelfModificationForbidden()

        body = ReactivateSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        if target.is_active:
            raise ValidationError({"isActive": ["Account is already active."]})

        with transaction.atomic():
            target.reactivate()
            AuditService.from_settings().log_user(
                request.user,
                "activated",
                target.id,
                {"reason": body.validated_data["reason"], "isActive": True, "success": True},
                **get_request_context(request._request),
            )
        return api_response(
            {"message": "Account reactivated successfully", "user": UserSummarySerializer(target).data}
        )


__all__ = ["UserListView", "UserRoleView", "UserDeactivateView", "UserReactivateView"]
