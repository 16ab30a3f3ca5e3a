"""Audit, compliance and retention endpoints under /api/admin/audit-logs/.

Route-level authorization (role gate and audit/system/security permissions)
is enforced by the middleware before these views run.
"""

from typing import Any

from django.http import HttpResponse
from rest_framework import status
from rest_framework.exceptions import ValidationError

from core.response import BaseAPIView, api_response
from .serializers import (
    AuditQuerySerializer,
    ComplianceQuerySerializer,
    ExportQuerySerializer,
    IntegrityQuerySerializer,
    RetentionSerializer,
    WindowQuerySerializer,
)
from .services import AuditService, get_request_context


def _validated(serializer_cls, data):
    serializer = serializer_cls(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer


class AuditLogListView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """Filtered, paginated audit entries, newest first."""
        query = _validated(AuditQuerySerializer, request.query_params)
        page = AuditService.from_settings().get_logs(
            query.to_filters(),
            page=query.validated_data["page"],
            page_size=query.validated_data["limit"],
        )
        return api_response(page.as_dict())


class AuditStatsView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        query = _validated(WindowQuerySerializer, request.query_params)
        return api_response(AuditService.from_settings().get_stats(query.validated_data.get("days", 30)))


class ComplianceReportView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """Compliance report over an explicit date range."""
        query = _validated(ComplianceQuerySerializer, request.query_params)
        filters = query.to_filters()
        report = AuditService.from_settings().get_compliance_report(
            start_date=filters.start_date,
            end_date=filters.end_date,
            user_id=filters.user_id,
            actions=filters.actions,
            resources=filters.resources,
            include_failures=query.validated_data["includeFailures"],
        )
        return api_response(report)


class AuditExportView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """Download matching entries as CSV or JSON; the export itself is audited."""
        query = _validated(ExportQuerySerializer, request.query_params)
        result = AuditService.from_settings().export_logs(
            query.to_filters(),
            fmt=query.validated_data["format"],
            requested_by=request.user,
            **get_request_context(request._request),
        )
        response = HttpResponse(result.content, content_type=result.content_type)
        response["Content-Disposition"] = f'attachment; filename="{result.filename}"'
        response["X-Record-Count"] = str(result.record_count)
        return response


class SecurityIncidentsView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        query = _validated(WindowQuerySerializer, request.query_params)
        return api_response(AuditService.from_settings().get_security_incidents(query.validated_data.get("days", 7)))


class IntegrityView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        query = _validated(IntegrityQuerySerializer, request.query_params)
        return api_response(
            AuditService.from_settings().validate_integrity(
                query.validated_data.get("startDate"), query.validated_data.get("endDate")
            )
        )


class RetentionView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Purge entries older than the retention horizon."""
        body = _validated(RetentionSerializer, request.data)
        service = AuditService.from_settings()
        try:
            result = service.cleanup(
                body.validated_data.get("retentionDays"),
                triggered_by=request.user,
                **get_request_context(request._request),
            )
        except ValueError as exc:
            raise ValidationError({"retentionDays": [str(exc)]}) from exc
        return api_response(result, status=status.HTTP_200_OK)


class UserActivityView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request, user_id):
        query = _validated(WindowQuerySerializer, request.query_params)
        return api_response(
            AuditService.from_settings().get_user_activity(
                str(user_id),
                days=query.validated_data.get("days", 30),
                limit=query.validated_data["limit"],
            )
        )


__all__ = [
    "AuditLogListView",
    "AuditStatsView",
    "ComplianceReportView",
    "AuditExportView",
    "SecurityIncidentsView",
    "IntegrityView",
    "RetentionView",
    "UserActivityView",
]
