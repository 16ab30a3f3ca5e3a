"""Product ViewSet protected by RBACPermission."""

from django.db import transaction

from access_control.permissions import RBACPermission, scope_queryset
from audit.models import Severity
from audit.services import AuditService, get_request_context
from core.response import BaseViewSet
from .models import Product
from .serializers import ProductSerializer


class ProductViewSet(BaseViewSet):
    serializer_class = ProductSerializer
    permission_classes = [RBACPermission]
    resource = "products"

    def get_queryset(self):
        user = self.request.user
        if not getattr(user, "is_authenticated", False):
            return Product.objects.none()
        return scope_queryset(user, self.resource, Product.objects.all())

    def _audit(self, action: str, product: Product, details: dict, severity: str = Severity.LOW) -> None:
        AuditService.from_settings().log(
            user_id=self.request.user,
            action=f"product.{action}",
            resource=self.resource,
            resource_id=str(product.pk),
            details=details,
            severity=severity,
            **get_request_context(self.request._request),
        )

    def perform_create(self, serializer):
        with transaction.atomic():
            product = serializer.save(owner=self.request.user)
            self._audit("created", product, {"sku": product.sku, "price": str(product.price)})

    def perform_update(self, serializer):
        previous_price = serializer.instance.price
        with transaction.atomic():
            product = serializer.save()
            details = {"sku": product.sku, "fields": sorted(serializer.validated_data)}
            if product.price != previous_price:
                details.update(oldPrice=str(previous_price), newPrice=str(product.price))
            self._audit("updated", product, details)

    def perform_destroy(self, instance):
        with transaction.atomic():
            self._audit("deleted", instance, {"sku": instance.sku}, severity=Severity.MEDIUM)
            instance.delete()


__all__ = ["ProductViewSet"]
