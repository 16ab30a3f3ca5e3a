"""App configuration for the core project utilities."""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Core app holds settings, URLs, the authorization middleware and rate limiter."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "core"
