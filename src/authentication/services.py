"""Bearer tokens for the CMS admin API.

Access and refresh tokens are HS256 JWTs carrying the subject, a unique
``jti``, the role at issue time and the user's ``token_version``. Revoked
``jti`` values live in Redis until the token would have expired anyway;
when Redis cannot be reached every check fails closed.
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Tuple

import jwt
import redis
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from rest_framework.exceptions import AuthenticationFailed

from access_control.policy import parse_role
from core.redis_client import get_redis_client

ACCESS = "access"
REFRESH = "refresh"


class BlocklistUnavailable(Exception):
    """The revocation store could not be read or written."""


def _lifetime(token_type: str) -> timedelta:
    seconds = settings.REFRESH_TOKEN_LIFETIME if token_type == REFRESH else settings.ACCESS_TOKEN_LIFETIME
    return timedelta(seconds=seconds)


def _claims(user, token_type: str, issued_at: datetime) -> dict[str, Any]:
    return {
        "sub": str(user.id),
        "jti": str(uuid.uuid4()),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + _lifetime(token_type)).timestamp()),
        "role": str(user.role),
        "type": token_type,
        "ver": user.token_version,
    }


class TokenService:
    ALGORITHM = "HS256"
    REVOKED_PREFIX = "cms:revoked-jti:"

    @classmethod
    def generate_tokens(cls, user) -> Tuple[str, str]:
        """Issue an (access, refresh) pair for ``user``."""
        now = datetime.now(timezone.utc)
        return cls._sign(_claims(user, ACCESS, now)), cls._sign(_claims(user, REFRESH, now))

    @classmethod
    def _sign(cls, claims: dict[str, Any]) -> str:
        return jwt.encode(claims, settings.SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def decode_token(cls, token: str, expected_type: str | None = None) -> dict[str, Any]:
        """Verify signature and expiry; optionally require a token type."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[cls.ALGORITHM])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationFailed("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationFailed("Invalid token") from exc

        if expected_type and payload.get("type") != expected_type:
            raise AuthenticationFailed("Invalid token type")
        return payload

    @classmethod
    def authenticate(cls, token: str, expected_type: str = ACCESS):
        """Resolve a bearer token to ``(user, payload)``.

        The stored user, not the role claim, is what callers authorize
        against; the claim only has to name a known role. Tokens issued
        before the user's current ``token_version`` are rejected.
        """
        payload = cls.decode_token(token, expected_type=expected_type)
        jti = payload.get("jti")
        if not jti:
            raise AuthenticationFailed("Token has no identifier")
        if parse_role(payload.get("role")) is None:
            raise AuthenticationFailed("Token carries an unknown role")
        if cls.is_token_blocked(jti):
            raise AuthenticationFailed("Token has been revoked")

        User = get_user_model()
        try:
            user = User.objects.get(id=payload.get("sub"))
        except (User.DoesNotExist, ValidationError, ValueError):
            raise AuthenticationFailed("User not found or inactive") from None
        if not user.is_active:
            raise AuthenticationFailed("User not found or inactive")
        if payload.get("ver") != user.token_version:
            raise AuthenticationFailed("Token version is no longer valid")
        return user, payload

    @classmethod
    def revoke(cls, payload: dict[str, Any]) -> None:
        """Revoke the token described by a decoded ``payload``."""
        cls.block_token(payload["jti"], payload["exp"])

    @classmethod
    def block_token(cls, jti: str, exp: int) -> None:
        ttl_seconds = max(1, exp - int(time.time()))
        try:
            get_redis_client().setex(f"{cls.REVOKED_PREFIX}{jti}", ttl_seconds, "1")
        except redis.RedisError as exc:
            raise BlocklistUnavailable("Redis unavailable while revoking token") from exc

    @classmethod
    def is_token_blocked(cls, jti: str) -> bool:
        try:
            return get_redis_client().get(f"{cls.REVOKED_PREFIX}{jti}") is not None
        except redis.RedisError as exc:
            raise BlocklistUnavailable("Redis unavailable while checking revocations") from exc


__all__ = ["TokenService", "BlocklistUnavailable", "ACCESS", "REFRESH"]
