"""App configuration for the role policy and permission evaluator."""

from django.apps import AppConfig


class AccessControlConfig(AppConfig):
    """Holds the static role policy, evaluator, route table and decisions."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "access_control"

    def ready(self) -> None:
        """Register the RBAC view system checks."""
        from . import checks  # noqa: F401
