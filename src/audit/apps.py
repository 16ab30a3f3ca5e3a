"""App configuration for the audit trail."""

from django.apps import AppConfig


class AuditConfig(AppConfig):
    """Audit app stores append-only audit entries and security events."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "audit"
