"""Tests for authentication flows (login, refresh, logout, profile)."""

from __future__ import annotations

import time
from unittest import mock

import jwt
from django.conf import settings
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APIClient

from access_control.decisions import ROLE_MANIPULATION, SUSPICIOUS_ACTIVITY, UNAUTHORIZED_ACCESS
from access_control.policy import Role
from audit.models import AuditLogEntry, SecurityEvent
from authentication.services import BlocklistUnavailable, TokenService
from tests.utils import FakeRedis, create_user, patch_redis


class AuthFlowTests(TestCase):
    """End-to-end tests covering the auth endpoints."""

    @classmethod
    def setUpTestData(cls):
        """Create a default active viewer for test cases."""
        cls.password = "StrongPass123"
        cls.user = create_user("user@example.com", cls.password, Role.VIEWER, first_name="Uma")

    def setUp(self):
        """Fresh in-memory Redis and DRF APIClient per test."""
        self.fake_redis = FakeRedis()
        patch_redis(self, self.fake_redis)
        self.api_client: APIClient = APIClient()

    def _login(self, password: str | None = None):
        return self.api_client.post(
            "/api/auth/login/",
            {"email": self.user.email, "password": password or self.password},
            format="json",
        )

    def _authenticate(self) -> dict:
        tokens = self._login().json()["data"]
        self.api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        return tokens

    def test_login_success_returns_tokens(self):
        """Valid credentials return access and refresh tokens in the envelope."""
        response = self._login()
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", body["data"])
        self.assertIn("refresh", body["data"])
        self.assertIsNone(body["error"])

        payload = TokenService.decode_token(body["data"]["access"], expected_type="access")
        self.assertEqual(payload["sub"], str(self.user.id))
        self.assertEqual(payload["role"], "VIEWER")
        self.assertTrue(AuditLogEntry.objects.filter(action="auth.login", user_id=str(self.user.id)).exists())

    def test_login_invalid_credentials_401(self):
        """Bad password returns 401 and is audited without the password."""
        response = self._login("wrongpass")
        body = response.json()

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(body["data"])
        self.assertEqual(body["error"]["code"], "UNAUTHORIZED")

        failed = AuditLogEntry.objects.get(action="auth.login_failed")
        self.assertEqual(failed.user_id, str(self.user.id))
        self.assertFalse(failed.details["success"])
        self.assertNotIn("wrongpass", str(failed.details))

    def test_repeated_login_failures_raise_suspicious_activity(self):
        for _ in range(settings.AUTH_FAILURE_THRESHOLD):
            self._login("wrongpass")

        event = SecurityEvent.objects.get(classification=SUSPICIOUS_ACTIVITY)
        self.assertEqual(event.severity, "critical")
        self.assertEqual(event.details["count"], settings.AUTH_FAILURE_THRESHOLD)

    def test_login_inactive_user_401(self):
        """Inactive user cannot log in and receives 401."""
        self.user.is_active = False
        self.user.save(update_fields=["is_active"])

        response = self._login()

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(response.json()["data"])

    def test_refresh_with_valid_refresh_token(self):
        """Refresh endpoint issues new tokens and the old refresh token cannot be replayed."""
        tokens = self._login().json()["data"]

        response = self.api_client.post("/api/auth/refresh/", {"refresh": tokens["refresh"]}, format="json")
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertNotEqual(body["data"]["access"], tokens["access"])

        replay = self.api_client.post("/api/auth/refresh/", {"refresh": tokens["refresh"]}, format="json")
        self.assertEqual(replay.status_code, 401)

    def test_refresh_with_access_token_rejected(self):
        """Providing an access token to the refresh endpoint returns 401."""
        tokens = self._login().json()["data"]

        response = self.api_client.post("/api/auth/refresh/", {"refresh": tokens["access"]}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")

    def test_expired_refresh_token_returns_401(self):
        """Expired refresh tokens should be rejected with 401 Unauthorized."""
        now = int(time.time())
        payload = {
            "sub": str(self.user.id),
            "jti": "expired-jti",
            "exp": now - 60,
            "iat": now - 120,
            "role": "VIEWER",
            "type": "refresh",
            "ver": self.user.token_version,
        }
        expired_refresh = jwt.encode(payload, settings.SECRET_KEY, algorithm=TokenService.ALGORITHM)

        response = self.api_client.post("/api/auth/refresh/", {"refresh": expired_refresh}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(response.json()["data"])

    def test_logout_blocklists_token(self):
        """Logout blocklists the current access token causing subsequent 401."""
        self._authenticate()

        logout_response = self.api_client.post("/api/auth/logout/")
        self.assertEqual(logout_response.status_code, 204)
        self.assertTrue(AuditLogEntry.objects.filter(action="auth.logout").exists())

        me_response = self.api_client.get("/api/auth/me/")
        self.assertEqual(me_response.status_code, 401)

    def test_logout_redis_down_returns_503(self):
        """If Redis is unavailable during logout, the API fails closed."""
        self._authenticate()

        with mock.patch.object(
                TokenService,
                "block_token",
                side_effect=BlocklistUnavailable("Redis unavailable while blocklisting"),
        ):
            response = self.api_client.post("/api/auth/logout/")

        body = response.json()
        self.assertEqual(response.status_code, 503)
        self.assertEqual(body["error"]["code"], "SERVICE_UNAVAILABLE")

    def test_refresh_when_database_unavailable_returns_503_without_details(self):
        """Database errors surface as 503 without leaking infrastructure details."""
        tokens = self._login().json()["data"]

        with mock.patch.object(
                TokenService,
                "authenticate",
                side_effect=DatabaseError('could not connect to server at "db.internal" (10.0.0.5)'),
        ):
            response = self.api_client.post("/api/auth/refresh/", {"refresh": tokens["refresh"]}, format="json")

        self.assertEqual(response.status_code, 503)
        self.assertNotIn("db.internal", response.content.decode())

    def test_me_returns_profile(self):
        self._authenticate()

        response = self.api_client.get("/api/auth/me/")
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["data"]["email"], self.user.email)
        self.assertEqual(body["data"]["role"], "VIEWER")

    def test_patch_me_updates_name_and_audits(self):
        self._authenticate()

        response = self.api_client.patch("/api/auth/me/", {"first_name": "Ursula"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["first_name"], "Ursula")
        entry = AuditLogEntry.objects.get(action="user.profile_updated")
        self.assertEqual(entry.resource_id, str(self.user.id))
        self.assertEqual(entry.details["fields"], ["first_name"])

    def test_patch_me_cannot_change_email(self):
        """PATCH /api/auth/me/ must not allow changing email."""
        self._authenticate()

        response = self.api_client.patch("/api/auth/me/", {"email": "new@example.com"}, format="json")
        body = response.json()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(body["error"]["code"], "VALIDATION_ERROR")
        self.user.refresh_from_db()
        self.assertEqual(self.user.email, "user@example.com")

    def test_patch_me_role_is_recorded_as_role_manipulation(self):
        """Trying to promote oneself through the profile is refused and flagged."""
        self._authenticate()

        response = self.api_client.patch("/api/auth/me/", {"role": "ADMIN"}, format="json")
        body = response.json()

        self.assertEqual(response.status_code, 403)
        self.assertEqual(body["error"]["code"], "ROLE_MANIPULATION_DENIED")
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, Role.VIEWER)
        event = SecurityEvent.objects.get(classification=ROLE_MANIPULATION)
        self.assertEqual(event.details["attemptedFields"], ["role"])
        self.assertFalse(event.details["success"])
        self.assertFalse(AuditLogEntry.objects.filter(action="access.granted", details__method="PATCH").exists())

    def test_rejected_refresh_is_recorded_as_unauthorized_not_granted(self):
        tokens = self._login().json()["data"]

        response = self.api_client.post("/api/auth/refresh/", {"refresh": tokens["access"]}, format="json")

        self.assertEqual(response.status_code, 401)
        event = SecurityEvent.objects.get(details__path="/api/auth/refresh/")
        self.assertEqual(event.classification, UNAUTHORIZED_ACCESS)
        self.assertEqual(event.details["reason"], "denied_by_view")
        self.assertFalse(event.details["success"])
        self.assertFalse(
            AuditLogEntry.objects.filter(action="access.granted", details__path="/api/auth/refresh/").exists()
        )

    def test_permissions_endpoint_reports_role_permissions(self):
        self._authenticate()

        response = self.api_client.get("/api/auth/permissions/")
        data = response.json()["data"]

        self.assertEqual(response.status_code, 200)
        self.assertEqual(data["role"], "VIEWER")
        self.assertEqual(data["roleLevel"], 1)
        self.assertFalse(data["isAdmin"])
        self.assertIn({"resource": "pages", "action": "read", "scope": "all"}, data["permissions"])
        self.assertNotIn("audit", data["resources"])
