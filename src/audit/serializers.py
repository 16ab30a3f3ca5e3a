"""Query-parameter and body serializers for the audit endpoints."""

from rest_framework import serializers

from .models import Severity
from .services import EXPORT_FORMATS, MAX_PAGE_SIZE, AuditFilters


def _list_param(query, name: str) -> list[str]:
    """Collect ``name``, ``name[]`` and comma-separated ``names`` values."""
    values: list[str] = []
    for key in (name, f"{name}[]", f"{name}s", f"{name}s[]"):
        for raw in query.getlist(key) if hasattr(query, "getlist") else [query.get(key)]:
            if not raw:
                continue
            values.extend(part.strip() for part in str(raw).split(",") if part.strip())
    return list(dict.fromkeys(values))


class AuditQuerySerializer(serializers.Serializer):
    userId = serializers.CharField(required=False, allow_blank=False, max_length=64)
    severity = serializers.ChoiceField(choices=Severity.choices, required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=MAX_PAGE_SIZE, default=50)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        query = kwargs.get("data", {})
        self._actions = _list_param(query, "action")
        self._resources = _list_param(query, "resource")

    def validate(self, attrs):
        start, end = attrs.get("startDate"), attrs.get("endDate")
        if start and end and start > end:
            raise serializers.ValidationError({"startDate": "startDate must not be after endDate"})
        return attrs

    def to_filters(self) -> AuditFilters:
        data = self.validated_data
        return AuditFilters(
            user_id=data.get("userId"),
            actions=self._actions,
            resources=self._resources,
            severity=data.get("severity"),
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
        )


class ExportQuerySerializer(AuditQuerySerializer):
    format = serializers.ChoiceField(choices=EXPORT_FORMATS, required=False, default="csv")


class ComplianceQuerySerializer(AuditQuerySerializer):
    startDate = serializers.DateTimeField()
    endDate = serializers.DateTimeField()
    includeFailures = serializers.BooleanField(required=False, default=True)


class WindowQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=3650)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=MAX_PAGE_SIZE, default=50)


class IntegrityQuerySerializer(serializers.Serializer):
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)


class RetentionSerializer(serializers.Serializer):
    retentionDays = serializers.IntegerField(required=False, min_value=1)


__all__ = [
    "AuditQuerySerializer",
    "ComplianceQuerySerializer",
    "ExportQuerySerializer",
    "IntegrityQuerySerializer",
    "RetentionSerializer",
    "WindowQuerySerializer",
]
