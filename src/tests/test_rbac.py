"""Ownership and scope tests for the content endpoints (pages, products)."""

from __future__ import annotations

from decimal import Decimal
from unittest import mock

from django.test import TestCase

from access_control.decisions import PERMISSION_DENIED
from access_control.policy import Role
from audit.models import AuditLogEntry, SecurityEvent
from audit.services import AuditWriteError
from pages.models import Page
from products.models import Product
from tests.utils import FakeRedis, auth_client, create_user, patch_redis


class PageOwnershipTests(TestCase):
    """Editors create pages and edit only their own; admins edit any page."""

    @classmethod
    def setUpTestData(cls):
        cls.admin = create_user("admin@example.com", role=Role.ADMIN)
        cls.editor = create_user("editor@example.com", role=Role.EDITOR)
        cls.other_editor = create_user("other@example.com", role=Role.EDITOR)
        cls.viewer = create_user("viewer@example.com", role=Role.VIEWER)
        cls.admin_page = Page.objects.create(title="Admin page", slug="admin-page", owner=cls.admin)
        cls.editor_page = Page.objects.create(title="Editor page", slug="editor-page", owner=cls.editor)

    def setUp(self):
        patch_redis(self, FakeRedis())

    def test_editor_creates_page_as_owner(self):
        response = auth_client(self.editor).post(
            "/api/pages/", {"title": "Hello World", "content": "Hi"}, format="json"
        )
        data = response.json()["data"]

        self.assertEqual(response.status_code, 201)
        self.assertEqual(data["slug"], "hello-world")
        self.assertEqual(data["owner"], str(self.editor.id))
        entry = AuditLogEntry.objects.get(action="page.created")
        self.assertEqual(entry.user_id, str(self.editor.id))
        self.assertEqual(entry.resource, "pages")
        self.assertEqual(entry.resource_id, str(data["id"]))

    def test_duplicate_slug_is_rejected(self):
        response = auth_client(self.editor).post(
            "/api/pages/", {"title": "Again", "slug": "editor-page"}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertFalse(AuditLogEntry.objects.filter(action="page.created").exists())

    def test_editor_updates_own_page(self):
        response = auth_client(self.editor).patch(
            f"/api/pages/{self.editor_page.pk}/", {"title": "Renamed"}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.editor_page.refresh_from_db()
        self.assertEqual(self.editor_page.title, "Renamed")
        entry = AuditLogEntry.objects.get(action="page.updated")
        self.assertEqual(entry.details["fields"], ["title"])

    def test_editor_cannot_update_someone_elses_page(self):
        response = auth_client(self.other_editor).patch(
            f"/api/pages/{self.editor_page.pk}/", {"title": "Hijacked"}, format="json"
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")
        self.editor_page.refresh_from_db()
        self.assertEqual(self.editor_page.title, "Editor page")
        event = SecurityEvent.objects.get(classification=PERMISSION_DENIED)
        self.assertEqual(event.user_id, str(self.other_editor.id))
        self.assertEqual(event.resource_id, str(self.editor_page.pk))
        self.assertFalse(AuditLogEntry.objects.filter(action="page.updated").exists())

    def test_each_ownership_denial_is_recorded_once_and_never_as_granted(self):
        client = auth_client(self.other_editor)

        for attempt in range(1, 3):
            before = AuditLogEntry.objects.count()
            response = client.patch(f"/api/pages/{self.editor_page.pk}/", {"title": "Hijacked"}, format="json")

            self.assertEqual(response.status_code, 403)
            self.assertEqual(AuditLogEntry.objects.count(), before + 1)
        self.assertFalse(AuditLogEntry.objects.filter(action="access.granted").exists())
        event = SecurityEvent.objects.filter(classification=PERMISSION_DENIED).first()
        self.assertFalse(event.details["success"])
        self.assertTrue(event.details["error"])

    def test_editor_cannot_delete_admin_page(self):
        response = auth_client(self.editor).delete(f"/api/pages/{self.admin_page.pk}/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(Page.objects.filter(pk=self.admin_page.pk).exists())

    def test_admin_deletes_any_page(self):
        response = auth_client(self.admin).delete(f"/api/pages/{self.editor_page.pk}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Page.objects.filter(pk=self.editor_page.pk).exists())
        entry = AuditLogEntry.objects.get(action="page.deleted")
        self.assertEqual(entry.details["ownerId"], str(self.editor.id))

    def test_viewer_reads_but_cannot_create(self):
        client = auth_client(self.viewer)

        listing = client.get("/api/pages/")
        created = client.post("/api/pages/", {"title": "Nope"}, format="json")

        self.assertEqual(listing.status_code, 200)
        self.assertEqual(len(listing.json()["data"]), 2)
        self.assertEqual(created.status_code, 403)
        self.assertEqual(Page.objects.count(), 2)


class ProductScopeTests(TestCase):
    """Editors manage every product; viewers only read."""

    @classmethod
    def setUpTestData(cls):
        cls.admin = create_user("admin@example.com", role=Role.ADMIN)
        cls.editor = create_user("editor@example.com", role=Role.EDITOR)
        cls.viewer = create_user("viewer@example.com", role=Role.VIEWER)
        cls.product = Product.objects.create(name="Kit", sku="SKU-1", price=Decimal("10.00"), owner=cls.admin)

    def setUp(self):
        patch_redis(self, FakeRedis())

    def test_editor_updates_product_owned_by_admin(self):
        response = auth_client(self.editor).patch(
            f"/api/products/{self.product.pk}/", {"price": "12.50"}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        entry = AuditLogEntry.objects.get(action="product.updated")
        self.assertEqual(entry.details["oldPrice"], "10.00")
        self.assertEqual(entry.details["newPrice"], "12.50")

    def test_viewer_cannot_update_product(self):
        response = auth_client(self.viewer).patch(
            f"/api/products/{self.product.pk}/", {"price": "1.00"}, format="json"
        )

        self.assertEqual(response.status_code, 403)
        self.product.refresh_from_db()
        self.assertEqual(self.product.price, Decimal("10.00"))

    def test_negative_price_is_rejected(self):
        response = auth_client(self.editor).post(
            "/api/products/", {"name": "Bad", "sku": "SKU-2", "price": "-1.00"}, format="json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_audit_write_failure_rolls_back_creation(self):
        """A product is not created when its audit record cannot be written."""
        with mock.patch("products.views.AuditService") as service:
            service.from_settings.return_value.log.side_effect = AuditWriteError("down")
            response = auth_client(self.editor).post(
                "/api/products/", {"name": "Ghost", "sku": "SKU-3", "price": "5.00"}, format="json"
            )

        self.assertEqual(response.status_code, 500)
        self.assertFalse(Product.objects.filter(sku="SKU-3").exists())
