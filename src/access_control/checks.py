"""System checks for RBAC configuration."""

from django.core.checks import Error, register

from access_control.permissions import RBACPermission
from access_control.policy import RESOURCES


@register()
def rbac_views_declare_resource(app_configs, **kwargs):
    """Ensure RBAC-protected views declare a known policy ``resource``.

    Only the project's known viewsets are inspected. New RBAC-protected views
    should be added here.
    """
    errors: list[Error] = []

    # Import here to avoid circular imports at module load time.
    from pages.views import PageViewSet
    from products.views import ProductViewSet

    rbac_views = [PageViewSet, ProductViewSet]

    for view_cls in rbac_views:
        permission_classes = getattr(view_cls, "permission_classes", [])
        if RBACPermission not in permission_classes:
            continue
        resource = getattr(view_cls, "resource", None)
        if not resource:
            errors.append(
                Error(
                    f"{view_cls.__name__} uses RBACPermission but does not define resource.",
                    obj=view_cls,
                    id="access_control.E001",
                )
            )
        elif resource not in RESOURCES:
            errors.append(
                Error(
                    f"{view_cls.__name__} declares unknown resource {resource!r}.",
                    obj=view_cls,
                    id="access_control.E002",
                )
            )

    return errors
