"""Routing for user administration endpoints."""

from django.urls import path

from .views import UserDeactivateView, UserListView, UserReactivateView, UserRoleView

urlpatterns = [
    path("admin/users/", UserListView.as_view(), name="admin-user-list"),
    path("admin/users/<uuid:user_id>/role/", UserRoleView.as_view(), name="admin-user-role"),
    path("admin/users/<uuid:user_id>/reactivate/", UserReactivateView.as_view(), name="admin-user-reactivate"),
    path("users/<uuid:user_id>/deactivate/", UserDeactivateView.as_view(), name="user-deactivate"),
]
