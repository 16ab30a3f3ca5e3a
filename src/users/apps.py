"""App configuration for user administration."""

from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Role changes and account lifecycle on top of the custom User model."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "users"
