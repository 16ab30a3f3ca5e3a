"""Append-only audit trail: audit entries, security events and role history.

Rows are written once and never modified. Instance ``save()`` on an existing
row, instance ``delete()`` and queryset ``update()`` all raise
:class:`AuditLogImmutable`. Only the retention purge removes rows, through
:meth:`AuditQuerySet.purge_before`.
"""

import uuid

from django.db import models
from django.utils import timezone

from access_control.decisions import CLASSIFICATIONS


class AuditLogImmutable(Exception):
    """Raised on any attempt to modify or delete an audit record in place."""


class Severity(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


class AuditQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of audit rows."""

    def update(self, **kwargs):
        raise AuditLogImmutable("Audit records cannot be updated")

    def delete(self):
        raise AuditLogImmutable("Audit records can only be removed by retention cleanup")

    def purge_before(self, horizon) -> int:
        """Delete rows created before ``horizon``; returns the number of rows removed."""
        qs = self.filter(created_at__lt=horizon)
        deleted, _ = models.QuerySet.delete(qs)
        return deleted

    def security(self):
        return self.filter(action__startswith="security.")


class AppendOnlyModel(models.Model):
    """Base for rows that may be inserted once and never changed."""

    objects = AuditQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditLogImmutable(f"{type(self).__name__} {self.pk} is immutable")
        kwargs["force_insert"] = True
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutable(f"{type(self).__name__} {self.pk} cannot be deleted")


class AuditLogEntry(AppendOnlyModel):
    """One audited action or authorization outcome."""

    ANONYMOUS = "anonymous"
    SYSTEM = "system"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    action = models.CharField(max_length=100, db_index=True)
    resource = models.CharField(max_length=100, db_index=True)
    resource_id = models.CharField(max_length=64, blank=True, null=True)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.CharField(max_length=64, blank=True, null=True)
    user_agent = models.CharField(max_length=512, blank=True, null=True)
    severity = models.CharField(max_length=10, choices=Severity.choices, default=Severity.LOW, db_index=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user_id", "created_at"], name="audit_user_created_idx"),
            models.Index(fields=["action", "created_at"], name="audit_action_created_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.action} by {self.user_id} at {self.created_at.isoformat()}"

    def as_dict(self) -> dict:
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "action": self.action,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "details": self.details,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "severity": self.severity,
            "createdAt": self.created_at.isoformat(),
        }


class SecurityEvent(AuditLogEntry):
    """Audit entry for a denial or other security-relevant occurrence.

    Stored as a child table of :class:`AuditLogEntry`, so every security event
    is also exactly one audit entry.
    """

    classification = models.CharField(
        max_length=40,
        choices=[(value, value.replace("_", " ").title()) for value in CLASSIFICATIONS],
        db_index=True,
    )

    objects = AuditQuerySet.as_manager()

    def as_dict(self) -> dict:
        payload = super().as_dict()
        payload["classification"] = self.classification
        return payload


class RoleChangeHistory(AppendOnlyModel):
    """Role transitions, each paired with the audit entry that recorded it."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    old_role = models.CharField(max_length=20)
    new_role = models.CharField(max_length=20)
    changed_by = models.CharField(max_length=64)
    reason = models.TextField(blank=True)
    audit_entry = models.ForeignKey(
        AuditLogEntry, on_delete=models.CASCADE, related_name="role_changes", null=True
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "role change history"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user_id}: {self.old_role} -> {self.new_role}"

    def as_dict(self) -> dict:
        return {
            "id": str(self.id),
            "userId": self.user_id,
            "oldRole": self.old_role,
            "newRole": self.new_role,
            "changedBy": self.changed_by,
            "reason": self.reason,
            "auditEntryId": str(self.audit_entry_id) if self.audit_entry_id else None,
            "createdAt": self.created_at.isoformat(),
        }


__all__ = [
    "AuditLogEntry",
    "AuditLogImmutable",
    "AuditQuerySet",
    "RoleChangeHistory",
    "SecurityEvent",
    "Severity",
]
