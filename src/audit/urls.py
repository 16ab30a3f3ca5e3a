"""Routing for audit, compliance and retention endpoints."""

from django.urls import path

from .views import (
    AuditExportView,
    AuditLogListView,
    AuditStatsView,
    ComplianceReportView,
    IntegrityView,
    RetentionView,
    SecurityIncidentsView,
    UserActivityView,
)

urlpatterns = [
    path("", AuditLogListView.as_view(), name="audit-log-list"),
    path("stats/", AuditStatsView.as_view(), name="audit-log-stats"),
    path("compliance-report/", ComplianceReportView.as_view(), name="audit-compliance-report"),
    path("export/", AuditExportView.as_view(), name="audit-log-export"),
    path("security-incidents/", SecurityIncidentsView.as_view(), name="audit-security-incidents"),
    path("integrity/", IntegrityView.as_view(), name="audit-integrity"),
    path("retention/", RetentionView.as_view(), name="audit-retention"),
    path("users/<uuid:user_id>/activity/", UserActivityView.as_view(), name="audit-user-activity"),
]
