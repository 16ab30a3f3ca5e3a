"""Shared helpers for tests (user creation, token login, fake Redis)."""

from __future__ import annotations

from typing import Any, Dict, Optional
from unittest import mock

import redis
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from access_control.policy import Role
from authentication.managers import UserManager
from authentication.services import TokenService

User = get_user_model()


class FakeRedis:
    """In-memory Redis stub supporting the commands used by the token blocklist and rate limiter."""

    def __init__(self):
        self._store: Dict[str, Any] = {}
        self._ttl: Dict[str, int] = {}

    def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        """Mimic Redis SETEX; TTL is recorded but never expires in tests."""
        self._store[key] = value
        self._ttl[key] = ttl_seconds

    def get(self, key: str):
        """Return stored value for key or None, matching Redis GET semantics."""
        return self._store.get(key)

    def incr(self, key: str) -> int:
        self._store[key] = int(self._store.get(key, 0)) + 1
        return self._store[key]

    def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if key not in self._store:
            return False
        if nx and key in self._ttl:
            return False
        self._ttl[key] = seconds
        return True

    def ttl(self, key: str) -> int:
        if key not in self._store:
            return -2
        return self._ttl.get(key, -1)

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            self._ttl.pop(key, None)
        return removed

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    """Queue commands and run them in order on ``execute``."""

    def __init__(self, client: FakeRedis):
        self._client = client
        self._calls: list = []

    def __getattr__(self, name: str):
        method = getattr(self._client, name)

        def queue(*args, **kwargs):
            self._calls.append((method, args, kwargs))
            return self

        return queue

    def execute(self) -> list:
        results = [method(*args, **kwargs) for method, args, kwargs in self._calls]
        self._calls = []
        return results


class UnavailableRedis:
    """Redis stub whose every command fails as if the server were down."""

    def __getattr__(self, name: str):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")

        return fail


def patch_redis(test_case, client) -> None:
    """Route every Redis lookup to ``client`` for the duration of ``test_case``."""
    for target in (
        "core.redis_client.get_redis_client",
        "authentication.services.get_redis_client",
        "core.ratelimit.get_redis_client",
    ):
        patcher = mock.patch(target, return_value=client)
        patcher.start()
        test_case.addCleanup(patcher.stop)


def create_user(email: str, password: str = "StrongPass123", role: str = Role.VIEWER, **extra):
    """Create a user with a bcrypt-hashed password for tests."""

    return User.objects.create(
        email=email,
        password_hash=UserManager.hash_password(password),
        role=role,
        **extra,
    )


def auth_client(user, client: Optional[APIClient] = None) -> APIClient:
    """Return an APIClient carrying a fresh access token for ``user``."""
    client = client or APIClient()
    access, _refresh = TokenService.generate_tokens(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")
    return client
