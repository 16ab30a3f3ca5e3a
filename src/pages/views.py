"""Page ViewSet: role policy for the list, ownership for single pages."""

from django.db import transaction

from access_control.permissions import RBACPermission, scope_queryset
from audit.services import AuditService, get_request_context
from core.response import BaseViewSet
from .models import Page
from .serializers import PageSerializer


class PageViewSet(BaseViewSet):
    serializer_class = PageSerializer
    permission_classes = [RBACPermission]
    resource = "pages"

    def get_queryset(self):
        user = self.request.user
        if not getattr(user, "is_authenticated", False):
            return Page.objects.none()
        return scope_queryset(user, self.resource, Page.objects.select_related("owner"))

    def _audit(self, action: str, page: Page, details: dict) -> None:
        AuditService.from_settings().log(
            user_id=self.request.user,
            action=f"page.{action}",
            resource=self.resource,
            resource_id=str(page.pk),
            details=details,
            **get_request_context(self.request._request),
        )

    def perform_create(self, serializer):
        """Attach the current user as owner on create."""
        with transaction.atomic():
            page = serializer.save(owner=self.request.user)
            self._audit("created", page, {"title": page.title, "status": page.status})

    def perform_update(self, serializer):
        with transaction.atomic():
            page = serializer.save()
            self._audit("updated", page, {"fields": sorted(serializer.validated_data), "status": page.status})

    def perform_destroy(self, instance):
        with transaction.atomic():
            self._audit("deleted", instance, {"title": instance.title, "ownerId": str(instance.owner_id)})
            instance.delete()


__all__ = ["PageViewSet"]
