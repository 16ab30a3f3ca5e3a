"""Serializers for user administration endpoints."""

from django.contrib.auth import get_user_model
from rest_framework import serializers

from access_control.policy import Role

User = get_user_model()


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "email", "first_name", "last_name", "role", "is_active", "date_joined", "updated_at"]
        read_only_fields = fields


class RoleChangeSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=Role.choices)
    reason = serializers.CharField(max_length=500, allow_blank=False, trim_whitespace=True)


class DeactivateSerializer(serializers.Serializer):
    """Body for account deactivation.

    ``confirmPassword`` is required for self-service deactivation; the view
    rejects a missing or wrong password with INVALID_PASSWORD.
    """

    reason = serializers.CharField(max_length=500, allow_blank=False, trim_whitespace=True)
    confirmPassword = serializers.CharField(required=False, allow_blank=True, write_only=True, trim_whitespace=False)
    dataRetention = serializers.BooleanField(required=False, default=True)


class ReactivateSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, allow_blank=False, trim_whitespace=True)


class UserListQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=Role.choices, required=False)
    isActive = serializers.BooleanField(required=False, allow_null=True, default=None)
    search = serializers.CharField(required=False, allow_blank=True, max_length=100)


__all__ = [
    "DeactivateSerializer",
    "ReactivateSerializer",
    "RoleChangeSerializer",
    "UserListQuerySerializer",
    "UserSummarySerializer",
]
