"""Purge audit records older than the retention horizon."""

from django.core.management.base import BaseCommand, CommandError

from audit.services import SYSTEM, AuditService


class Command(BaseCommand):
    """Run the audit retention cleanup as the ``system`` actor."""

    help = (
        "Delete audit entries, security events and role-change history older "
        "than --days (defaults to AUDIT_RETENTION_DAYS). The purge is itself audited."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Retention window in days (must be at least 1).",
        )

    def handle(self, *args, **options):
        """Entrypoint for the management command."""
        service = AuditService.from_settings()
        try:
            result = service.cleanup(options.get("days"), triggered_by=SYSTEM)
        except ValueError as exc:
            raise CommandError(str(exc)) from exc
        self.stdout.write(
            self.style.SUCCESS(
                f"Removed {result['deletedLogs']} audit entries and "
                f"{result['deletedRoleChanges']} role changes older than {result['cutoff']}."
            )
        )
