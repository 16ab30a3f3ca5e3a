"""Seed demo users for every role plus sample pages and products."""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from access_control.policy import Role
from audit.services import SYSTEM, AuditService
from authentication.managers import UserManager
from pages.models import Page
from products.models import Product

DEMO_USERS = (
    ("admin@example.com", "Admin", Role.ADMIN, "adminpass"),
    ("editor@example.com", "Editor", Role.EDITOR, "editorpass"),
    ("viewer@example.com", "Viewer", Role.VIEWER, "viewerpass"),
)


class Command(BaseCommand):
    """Management command to seed demo CMS data."""

    help = (
        "Seed demo admin/editor/viewer users with sample pages and products. "
        "Use --reset to clear previously seeded data first."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Remove the demo users and their pages/products before seeding.",
        )

    def handle(self, *args, **options):
        """Entrypoint for the management command."""
        with transaction.atomic():
            if options.get("reset"):
                self._reset_seeded_data()

            self.stdout.write("Seeding CMS demo data...")
            users = self._create_users()
            self._create_pages(users)
            self._create_products(users)
            AuditService.from_settings().log_system(
                SYSTEM, "demo_data_seeded", {"users": sorted(users), "reset": bool(options.get("reset"))}
            )
        self.stdout.write(self.style.SUCCESS("CMS seed completed."))

    def _reset_seeded_data(self) -> None:
        """Remove the demo users and the content they own.

        Audit entries written for them are left in place.
        """
        self.stdout.write("Resetting previously seeded demo data...")
        emails = [email for email, *_ in DEMO_USERS]
        Page.objects.filter(owner__email__in=emails).delete()
        Product.objects.filter(owner__email__in=emails).delete()
        get_user_model().objects.filter(email__in=emails).delete()
        self.stdout.write(self.style.WARNING("Seeded demo data cleared."))

    @staticmethod
    def _create_users() -> dict:
        """Create one user per role and return a role->User map."""
        User = get_user_model()
        users = {}
        for email, first_name, role, password in DEMO_USERS:
            user, _ = User.objects.get_or_create(
                email=email,
                defaults={
                    "role": role,
                    "first_name": first_name,
                    "password_hash": UserManager.hash_password(password),
                },
            )
            users[str(role)] = user
        return users

    @staticmethod
    def _create_pages(users) -> None:
        admin, editor = users[str(Role.ADMIN)], users[str(Role.EDITOR)]
        Page.objects.get_or_create(
            slug="about",
            defaults={"title": "About", "content": "About this site.", "owner": admin, "status": Page.Status.PUBLISHED},
        )
        Page.objects.get_or_create(
            slug="editor-draft",
            defaults={"title": "Editor Draft", "content": "Work in progress.", "owner": editor},
        )

    @staticmethod
    def _create_products(users) -> None:
        editor = users[str(Role.EDITOR)]
        for sku, name, price in (("SKU-001", "Starter Kit", "19.99"), ("SKU-002", "Pro Kit", "49.00")):
            Product.objects.get_or_create(
                sku=sku,
                defaults={"name": name, "price": Decimal(price), "stock": 10, "owner": editor},
            )
