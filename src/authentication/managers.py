"""User manager and queryset: bcrypt password handling and admin listing filters."""

import uuid

import bcrypt
from django.conf import settings
from django.contrib.auth.base_user import BaseUserManager
from django.db import models
from django.db.models import Q

from access_control.policy import Role


class UserQuerySet(models.QuerySet):
    def search(self, term: str):
        """Case-insensitive match on email or either name."""
        return self.filter(
            Q(email__icontains=term) | Q(first_name__icontains=term) | Q(last_name__icontains=term)
        )

    def for_listing(self, role: str | None = None, is_active: bool | None = None, search: str | None = None):
        qs = self
        if role:
            qs = qs.filter(role=role)
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        if search:
            qs = qs.search(search)
        return qs


class UserManager(BaseUserManager.from_queryset(UserQuerySet)):
    use_in_migrations = True

    def _create_user(self, email: str, password: str, **extra_fields):
        if not email:
            raise ValueError("An email address is required")
        user = self.model(id=uuid.uuid4(), email=self.normalize_email(email).lower(), **extra_fields)
        user.password_hash = self.hash_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email: str, password: str | None = None, **extra_fields):
        """Create a user; new accounts are VIEWERs unless a role is given."""
        if password is None:
            raise ValueError("Password must be provided")
        extra_fields.setdefault("role", Role.VIEWER)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email: str, password: str, **extra_fields):
        """Create an active ADMIN (used by ``createsuperuser``)."""
        extra_fields.setdefault("is_active", True)
        extra_fields["role"] = Role.ADMIN
        return self._create_user(email, password, **extra_fields)

    @staticmethod
    def hash_password(raw_password: str) -> str:
        rounds = getattr(settings, "BCRYPT_ROUNDS", 12)
        return bcrypt.hashpw(raw_password.encode(), bcrypt.gensalt(rounds=rounds)).decode()

    @staticmethod
    def verify_password(user, raw_password: str | None) -> bool:
        """Check ``raw_password`` against the stored hash; malformed hashes never match."""
        if not user.password_hash or raw_password is None:
            return False
        try:
            return bcrypt.checkpw(raw_password.encode(), user.password_hash.encode())
        except ValueError:
            return False


__all__ = ["UserManager", "UserQuerySet"]
