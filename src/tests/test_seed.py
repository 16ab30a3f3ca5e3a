"""Tests for the seed_cms management command."""

from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from audit.models import AuditLogEntry
from authentication.models import User
from pages.models import Page
from products.models import Product


class SeedCmsCommandTests(TestCase):
    def _seed(self, *args):
        out = StringIO()
        call_command("seed_cms", *args, stdout=out)
        return out.getvalue()

    def test_seeds_one_user_per_role(self):
        output = self._seed()

        self.assertIn("CMS seed completed.", output)
        self.assertEqual(
            dict(User.objects.values_list("email", "role")),
            {"admin@example.com": "ADMIN", "editor@example.com": "EDITOR", "viewer@example.com": "VIEWER"},
        )
        self.assertTrue(User.objects.get(email="editor@example.com").check_password("editorpass"))
        self.assertEqual(Page.objects.get(slug="editor-draft").owner.email, "editor@example.com")
        self.assertEqual(Product.objects.count(), 2)
        self.assertTrue(AuditLogEntry.objects.filter(action="system.demo_data_seeded", user_id="system").exists())

    def test_rerun_is_idempotent(self):
        self._seed()
        self._seed()

        self.assertEqual(User.objects.count(), 3)
        self.assertEqual(Page.objects.count(), 2)

    def test_reset_recreates_demo_data(self):
        self._seed()
        Page.objects.filter(slug="about").update(title="Edited")

        output = self._seed("--reset")

        self.assertIn("Seeded demo data cleared.", output)
        self.assertEqual(Page.objects.get(slug="about").title, "About")
        self.assertEqual(User.objects.count(), 3)
