"""The CMS account: email login, bcrypt password hash and exactly one role.

There is no PermissionsMixin; what a role may do is defined by
``access_control.policy`` and checked by ``access_control.evaluator``.
Role changes and deactivation bump ``token_version`` so every token issued
earlier stops verifying.
"""

import uuid
from typing import ClassVar, Optional

from django.contrib.auth.models import AbstractBaseUser
from django.db import models

from access_control.policy import Role
from .managers import UserManager


class User(AbstractBaseUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    password_hash = models.CharField(max_length=128)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.VIEWER)
    is_active = models.BooleanField(default=True)
    token_version = models.PositiveIntegerField(default=1)
    date_joined = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS: ClassVar[list[str]] = []

    objects = UserManager()

    class Meta:
        ordering = ["-date_joined"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.email} ({self.role})"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def set_password(self, raw_password: Optional[str]) -> None:  # type: ignore[override]
        self.password_hash = "" if raw_password is None else UserManager.hash_password(raw_password)

    def check_password(self, raw_password: Optional[str]) -> bool:  # type: ignore[override]
        return UserManager.verify_password(self, raw_password)

    def revoke_tokens(self) -> None:
        """Invalidate every token issued before now (caller saves)."""
        self.token_version = (self.token_version or 1) + 1

    def change_role(self, new_role: Role) -> None:
        self.role = new_role
        self.revoke_tokens()
        self.save(update_fields=["role", "token_version", "updated_at"])

    def deactivate(self) -> None:
        self.is_active = False
        self.revoke_tokens()
        self.save(update_fields=["is_active", "token_version", "updated_at"])

    def reactivate(self) -> None:
        self.is_active = True
        self.save(update_fields=["is_active", "updated_at"])


__all__ = ["User"]
