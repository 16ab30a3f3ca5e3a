"""Audit and compliance service.

All writes go through :class:`AuditService`. Callers that mutate state wrap the
mutation and its audit write in one ``transaction.atomic()`` block; a failed
audit write raises :class:`AuditWriteError` and rolls the mutation back.
"""

import csv
import io
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from access_control.decisions import (
    CLASSIFICATIONS,
    DATA_EXPORT,
    PERMISSION_DENIED,
    REPEATED_AUTH_FAILURE,
    ROLE_ESCALATION,
    UNAUTHORIZED_ACCESS,
)
from access_control.evaluator import is_role_escalation
from core.ratelimit import get_client_ip

from .models import AuditLogEntry, RoleChangeHistory, SecurityEvent, Severity

logger = logging.getLogger(__name__)

ANONYMOUS = AuditLogEntry.ANONYMOUS
SYSTEM = AuditLogEntry.SYSTEM

_SENSITIVE_KEY_PATTERNS = ["password", "token", "secret", "hash", "authorization", "cookie", "api_key"]
_REDACTED_VALUE = "[REDACTED]"
_MAX_STRING_LENGTH = 1000
MAX_PAGE_SIZE = 100
EXPORT_FORMATS = ("csv", "json")


class AuditWriteError(Exception):
    """Raised when an audit record cannot be persisted."""


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_details(value: Any) -> Any:
    """Recursively redact sensitive keys and truncate long strings."""
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_details(raw_value)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize_details(item) for item in value]
    if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
        return value[:_MAX_STRING_LENGTH] + "..."
    if isinstance(value, (datetime, uuid.UUID)):
        return str(value)
    return value


class MonotonicClock:
    """Wall clock that never returns the same or an earlier instant twice."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = timezone.now()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


# One clock per process so entries from any thread are strictly ordered.
_clock = MonotonicClock()


def get_request_context(request) -> dict[str, Optional[str]]:
    """Client IP and user agent for an audit record."""
    if request is None:
        return {"ip_address": None, "user_agent": None}
    user_agent = request.META.get("HTTP_USER_AGENT")
    return {"ip_address": get_client_ip(request), "user_agent": user_agent[:512] if user_agent else None}


_OUTCOME_FLAG = "audit_outcome_recorded"


def mark_outcome_recorded(request) -> None:
    """Note that this request's denial is already in the audit trail.

    The authorization middleware then skips its own outcome record, so one
    request never leaves both a grant and a denial.
    """
    setattr(getattr(request, "_request", request), _OUTCOME_FLAG, True)


def outcome_recorded(request) -> bool:
    return getattr(getattr(request, "_request", request), _OUTCOME_FLAG, False)


def _actor_id(user) -> str:
    if user is None:
        return ANONYMOUS
    if isinstance(user, str):
        return user or ANONYMOUS
    if isinstance(user, uuid.UUID):
        return str(user)
    user_id = getattr(user, "id", None)
    if user_id is None or not getattr(user, "is_authenticated", True):
        return ANONYMOUS
    return str(user_id)


@dataclass
class AuditFilters:
    user_id: Optional[str] = None
    actions: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    severity: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def apply(self, qs):
        if self.user_id:
            qs = qs.filter(user_id=self.user_id)
        if self.actions:
            qs = qs.filter(action__in=self.actions)
        if self.resources:
            qs = qs.filter(resource__in=self.resources)
        if self.severity:
            qs = qs.filter(severity=self.severity)
        if self.start_date:
            qs = qs.filter(created_at__gte=self.start_date)
        if self.end_date:
            qs = qs.filter(created_at__lte=self.end_date)
        return qs

    def as_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "actions": list(self.actions),
            "resources": list(self.resources),
            "severity": self.severity,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }


@dataclass
class AuditPage:
    logs: list
    total: int
    page: int
    page_size: int

    def as_dict(self) -> dict:
        return {
            "logs": [entry.as_dict() for entry in self.logs],
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
        }


@dataclass
class ExportResult:
    content: str
    content_type: str
    filename: str
    record_count: int


class AuditService:
    """Write and query the audit trail."""

    def __init__(self, retention_days: int = 365, export_max_rows: int = 10000):
        self.retention_days = retention_days
        self.export_max_rows = export_max_rows

    @classmethod
    def from_settings(cls) -> "AuditService":
        return cls(
            retention_days=getattr(settings, "AUDIT_RETENTION_DAYS", 365),
            export_max_rows=getattr(settings, "AUDIT_EXPORT_MAX_ROWS", 10000),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_severity(severity: str) -> str:
        if severity not in Severity.values:
            raise ValueError(f"Unknown audit severity: {severity!r}")
        return severity

    def _write(self, model, **fields):
        try:
            return model.objects.create(created_at=_clock.now(), **fields)
        except DatabaseError as exc:
            logger.error("audit_write_failed action=%s", fields.get("action"), exc_info=exc)
            raise AuditWriteError(f"Could not persist audit record {fields.get('action')}") from exc

    def log(
        self,
        *,
        user_id,
        action: str,
        resource: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        severity: str = Severity.LOW,
    ) -> AuditLogEntry:
        """Persist one audit entry."""
        if not action:
            raise ValueError("Audit action is required")
        return self._write(
            AuditLogEntry,
            user_id=_actor_id(user_id),
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=sanitize_details(details or {}),
            ip_address=ip_address,
            user_agent=user_agent,
            severity=self._validate_severity(severity),
        )

    def log_security_event(
        self,
        *,
        user_id,
        classification: str,
        action: Optional[str] = None,
        resource: str = "security",
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        severity: str = Severity.HIGH,
    ) -> SecurityEvent:
        """Persist one security event (which is also one audit entry)."""
        if classification not in CLASSIFICATIONS:
            raise ValueError(f"Unknown security classification: {classification!r}")
        action = action or f"security.{classification.lower()}"
        return self._write(
            SecurityEvent,
            user_id=_actor_id(user_id),
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=sanitize_details(details or {}),
            ip_address=ip_address,
            user_agent=user_agent,
            severity=self._validate_severity(severity),
            classification=classification,
        )

    def log_auth(self, user_id, action: str, details: Optional[dict] = None, **context) -> AuditLogEntry:
        severity = Severity.MEDIUM if action == "login_failed" else Severity.LOW
        return self.log(
            user_id=user_id,
            action=f"auth.{action}",
            resource="auth",
            resource_id=_actor_id(user_id),
            details=details,
            severity=severity,
            **context,
        )

    def log_user(self, actor, action: str, target_id, details: Optional[dict] = None, **context) -> AuditLogEntry:
        severity = Severity.HIGH if action in ("deleted", "deactivated", "role_changed") else Severity.MEDIUM
        return self.log(
            user_id=actor,
            action=f"user.{action}",
            resource="user",
            resource_id=str(target_id),
            details=details,
            severity=severity,
            **context,
        )

    def log_system(self, actor, action: str, details: Optional[dict] = None, **context) -> AuditLogEntry:
        return self.log(
            user_id=actor or SYSTEM,
            action=f"system.{action}",
            resource="system",
            details=details,
            severity=Severity.MEDIUM,
            **context,
        )

    def log_permission_check(
        self,
        user,
        resource: str,
        action: str,
        granted: bool,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        **context,
    ):
        """Record an explicit permission check; denials become security events."""
        payload = {"resource": resource, "action": action, "granted": granted, "success": granted, **(details or {})}
        if not granted:
            payload.setdefault("error", f"Permission denied: {resource}:{action}")
        if granted:
            return self.log(
                user_id=user,
                action="security.permission_check_granted",
                resource=resource,
                resource_id=resource_id,
                details=payload,
                severity=Severity.LOW,
                **context,
            )
        return self.log_security_event(
            user_id=user,
            classification=PERMISSION_DENIED,
            action="security.permission_denied",
            resource=resource,
            resource_id=resource_id,
            details=payload,
            severity=Severity.MEDIUM,
            **context,
        )

    def log_role_change(
        self,
        changed_by,
        target_id,
        old_role: str,
        new_role: str,
        reason: str = "",
        **context,
    ) -> RoleChangeHistory:
        """Record a role transition, its audit entry and any escalation event."""
        actor = _actor_id(changed_by)
        details = {
            "targetUserId": str(target_id),
            "oldRole": str(old_role),
            "newRole": str(new_role),
            "reason": reason,
        }
        with transaction.atomic():
            entry = self.log_user(actor, "role_changed", target_id, details, **context)
            history = self._write(
                RoleChangeHistory,
                user_id=str(target_id),
                old_role=str(old_role),
                new_role=str(new_role),
                changed_by=actor,
                reason=reason or "",
                audit_entry=entry,
            )
            if is_role_escalation(old_role, new_role):
                self.log_security_event(
                    user_id=actor,
                    classification=ROLE_ESCALATION,
                    action="security.role_escalation",
                    resource="user",
                    resource_id=str(target_id),
                    details=details,
                    severity=Severity.HIGH,
                    **context,
                )
        return history

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_logs(self, filters: Optional[AuditFilters] = None, page: int = 1, page_size: int = 50) -> AuditPage:
        filters = filters or AuditFilters()
        page = max(1, int(page))
        page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))
        qs = filters.apply(AuditLogEntry.objects.all()).order_by("-created_at", "-id")
        total = qs.count()
        offset = (page - 1) * page_size
        return AuditPage(logs=list(qs[offset : offset + page_size]), total=total, page=page, page_size=page_size)

    @staticmethod
    def _breakdown(qs, field_name: str) -> dict[str, int]:
        rows = qs.order_by().values(field_name).annotate(count=Count("id"))
        return {row[field_name]: row["count"] for row in rows}

    def get_stats(self, window_days: int = 30) -> dict:
        since = timezone.now() - timedelta(days=window_days)
        qs = AuditLogEntry.objects.filter(created_at__gte=since)
        return {
            "totalLogs": qs.count(),
            "actionBreakdown": self._breakdown(qs, "action"),
            "resourceBreakdown": self._breakdown(qs, "resource"),
            "severityBreakdown": self._breakdown(qs, "severity"),
            "recentActivity": [entry.as_dict() for entry in qs.order_by("-created_at", "-id")[:10]],
        }

    def get_user_activity(self, user_id: str, days: int = 30, limit: int = 50) -> dict:
        since = timezone.now() - timedelta(days=days)
        qs = AuditLogEntry.objects.filter(user_id=str(user_id), created_at__gte=since)
        return {
            "userId": str(user_id),
            "total": qs.count(),
            "actionBreakdown": self._breakdown(qs, "action"),
            "logs": [entry.as_dict() for entry in qs.order_by("-created_at", "-id")[:limit]],
        }

    def get_security_incidents(self, days: int = 7) -> dict:
        since = timezone.now() - timedelta(days=days)
        qs = SecurityEvent.objects.filter(created_at__gte=since)
        top_threats = (
            qs.order_by().values("classification").annotate(count=Count("id")).order_by("-count", "classification")[:5]
        )
        affected = qs.order_by().values("user_id").annotate(count=Count("id")).order_by("-count", "user_id")[:10]
        return {
            "totalIncidents": qs.count(),
            "criticalIncidents": qs.filter(severity=Severity.CRITICAL).count(),
            "topThreats": [{"type": row["classification"], "count": row["count"]} for row in top_threats],
            "affectedUsers": [{"userId": row["user_id"], "count": row["count"]} for row in affected],
            "recentIncidents": [event.as_dict() for event in qs.order_by("-created_at", "-id")[:20]],
        }

    @staticmethod
    def _failed(qs):
        return qs.filter(details__has_key="success", details__success=False)

    def get_compliance_report(
        self,
        start_date: datetime,
        end_date: datetime,
        user_id: Optional[str] = None,
        actions: Optional[Iterable[str]] = None,
        resources: Optional[Iterable[str]] = None,
        include_failures: bool = True,
    ) -> dict:
        """Entries in an explicit window plus summary counters."""
        if start_date is None or end_date is None:
            raise ValueError("Compliance reports require start_date and end_date")
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date")
        filters = AuditFilters(
            user_id=user_id,
            actions=list(actions or []),
            resources=list(resources or []),
            start_date=start_date,
            end_date=end_date,
        )
        qs = filters.apply(AuditLogEntry.objects.all())
        if not include_failures:
            qs = qs.exclude(pk__in=self._failed(qs).values("pk"))
        qs = qs.order_by("-created_at", "-id")
        return {
            "logs": [entry.as_dict() for entry in qs],
            "summary": {
                "totalActions": qs.count(),
                "uniqueUsers": qs.order_by().values("user_id").distinct().count(),
                "failedActions": self._failed(qs).count(),
                "criticalEvents": qs.filter(severity=Severity.CRITICAL).count(),
            },
            "filters": filters.as_dict(),
        }

    def recent_auth_failures(self, ip_address: Optional[str], window: timedelta = timedelta(hours=1)) -> int:
        """Authentication failures recorded from ``ip_address`` within ``window``."""
        if not ip_address:
            return 0
        since = timezone.now() - window
        return (
            AuditLogEntry.objects.filter(ip_address=ip_address, created_at__gte=since)
            .filter(
                Q(action="auth.login_failed")
                | Q(securityevent__classification__in=[UNAUTHORIZED_ACCESS, REPEATED_AUTH_FAILURE])
            )
            .count()
        )

    # ------------------------------------------------------------------
    # Export, retention, integrity
    # ------------------------------------------------------------------

    def export_logs(
        self,
        filters: Optional[AuditFilters] = None,
        fmt: str = "csv",
        requested_by=None,
        **context,
    ) -> ExportResult:
        """Render matching entries as CSV or JSON and record the export."""
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt!r}")
        filters = filters or AuditFilters()
        qs = filters.apply(AuditLogEntry.objects.all()).order_by("-created_at", "-id")
        rows = [entry.as_dict() for entry in qs[: self.export_max_rows + 1]]
        truncated = len(rows) > self.export_max_rows
        rows = rows[: self.export_max_rows]
        stamp = timezone.now().strftime("%Y%m%d-%H%M%S")

        if fmt == "csv":
            buffer = io.StringIO()
            columns = ["id", "createdAt", "userId", "action", "resource", "resourceId", "severity", "ipAddress"]
            writer = csv.writer(buffer)
            writer.writerow(columns + ["details"])
            for row in rows:
                writer.writerow([row[column] or "" for column in columns] + [json.dumps(row["details"])])
            content, content_type = buffer.getvalue(), "text/csv"
        else:
            content = json.dumps({"exportedAt": timezone.now().isoformat(), "recordCount": len(rows), "logs": rows})
            content_type = "application/json"

        self.log_security_event(
            user_id=requested_by,
            classification=DATA_EXPORT,
            action="security.data_export",
            resource="audit",
            details={
                "format": fmt,
                "filters": filters.as_dict(),
                "recordCount": len(rows),
                "truncated": truncated,
            },
            severity=Severity.HIGH,
            **context,
        )
        return ExportResult(
            content=content,
            content_type=content_type,
            filename=f"audit-logs-{stamp}.{fmt}",
            record_count=len(rows),
        )

    def cleanup(self, retention_days: Optional[int] = None, triggered_by=SYSTEM, **context) -> dict:
        """Delete records older than the retention horizon and audit the purge."""
        days = self.retention_days if retention_days is None else int(retention_days)
        if days < 1:
            raise ValueError("retention_days must be at least 1")
        cutoff = timezone.now() - timedelta(days=days)
        with transaction.atomic():
            role_changes = RoleChangeHistory.objects.filter(created_at__lt=cutoff).count()
            entries = AuditLogEntry.objects.filter(created_at__lt=cutoff).count()
            RoleChangeHistory.objects.purge_before(cutoff)
            AuditLogEntry.objects.purge_before(cutoff)
            result = {
                "deletedLogs": entries,
                "deletedRoleChanges": role_changes,
                "retentionDays": days,
                "cutoff": cutoff.isoformat(),
            }
            self.log_system(triggered_by, "data_cleanup_performed", result, **context)
        logger.info("Audit retention purge removed %d entries older than %s", entries, cutoff.isoformat())
        return result

    def validate_integrity(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
        """Read-only consistency check over a window of entries."""
        qs = AuditFilters(start_date=start_date, end_date=end_date).apply(AuditLogEntry.objects.all())
        entries = list(qs.order_by("created_at", "id"))

        referenced = set()
        for entry in entries:
            try:
                referenced.add(uuid.UUID(entry.user_id))
            except (TypeError, ValueError):
                continue
        User = get_user_model()
        known = {str(pk) for pk in User.objects.filter(id__in=referenced).values_list("id", flat=True)}

        issues = []
        valid = 0
        for entry in entries:
            found = []
            if not entry.action:
                found.append("Missing action")
            if entry.user_id not in (ANONYMOUS, SYSTEM) and entry.user_id not in known:
                found.append("User ID references non-existent user")
            details = entry.details if isinstance(entry.details, dict) else {}
            if details.get("success") is False and not (details.get("error") or details.get("reason")):
                found.append("Failed action without error reason")
            issues.extend({"logId": str(entry.id), "issue": message} for message in found)
            if not found:
                valid += 1

        return {
            "isValid": not issues,
            "totalLogs": len(entries),
            "validLogs": valid,
            "issues": issues,
        }


__all__ = [
    "AuditService",
    "AuditFilters",
    "AuditPage",
    "AuditWriteError",
    "ExportResult",
    "MonotonicClock",
    "get_request_context",
    "mark_outcome_recorded",
    "outcome_recorded",
    "sanitize_details",
]
