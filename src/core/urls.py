"""Root URL configuration for the CMS admin API."""
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView

urlpatterns = [
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/auth/", include("authentication.urls")),
    path("api/auth/", include("access_control.urls")),
    path("api/admin/audit-logs/", include("audit.urls")),
    path("api/", include("users.urls")),
    path("api/", include("pages.urls")),
    path("api/", include("products.urls")),
]
