"""Routing for the Page viewset."""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import PageViewSet

router = SimpleRouter()
router.register(r"pages", PageViewSet, basename="page")

urlpatterns = [
    path("", include(router.urls)),
]
