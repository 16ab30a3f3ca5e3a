"""Serializers for authentication flows (login, refresh, profile)."""

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed

from .managers import UserManager

User = get_user_model()

PROTECTED_PROFILE_FIELDS = ("role", "is_active", "isActive", "token_version")


class LoginSerializer(serializers.Serializer):
    """Authenticate a user via email/password using bcrypt verification."""

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        """Authenticate credentials and attach the user to validated_data."""
        email = attrs.get("email")
        password = attrs.get("password")
        try:
            user = User.objects.get(email__iexact=email)
        except User.DoesNotExist:
            raise AuthenticationFailed("Invalid credentials")

        if not user.is_active:
            raise AuthenticationFailed("User is inactive")

        if not UserManager.verify_password(user, password):
            raise AuthenticationFailed("Invalid credentials")

        attrs["user"] = user
        return attrs


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class UserDetailSerializer(serializers.ModelSerializer):
    """Read-only user profile payload for responses."""

    class Meta:
        """Expose basic identity fields and role."""
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "role",
            "is_active",
            "date_joined",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Patchable fields for /api/auth/me updates."""

    class Meta:
        """Allow partial updates of profile name fields."""
        model = User
        fields = ["first_name", "last_name"]
        extra_kwargs = {field: {"required": False, "allow_blank": True} for field in fields}

    def validate(self, attrs):
        """Disallow attempts to change email via this endpoint.

        Any payload that includes an 'email' field should be rejected with a
        validation error rather than silently ignored, to make the restriction
        explicit to API consumers.
        """
        if "email" in getattr(self, "initial_data", {}):
            raise serializers.ValidationError("Email cannot be updated via this endpoint")
        return super().validate(attrs)


__all__ = [
    "LoginSerializer",
    "RefreshSerializer",
    "UserDetailSerializer",
    "ProfileUpdateSerializer",
    "PROTECTED_PROFILE_FIELDS",
]
