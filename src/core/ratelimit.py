"""Fixed-window rate limiting backed by shared Redis counters.

Counters are keyed by (route class, client IP) and incremented with ``INCR``
inside a transactional pipeline, so concurrent requests never undercount. The
window TTL is set only when the key is created.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional

import redis
from django.conf import settings

from core.redis_client import get_redis_client

logger = logging.getLogger(__name__)


class RateLimitUnavailable(Exception):
    """Raised when the rate-limit counters cannot be reached (fail-closed)."""


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    count: int
    retry_after: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def get_rule(route_class: str) -> RateLimitRule:
    limits = getattr(settings, "RATE_LIMITS", {})
    config = limits.get(route_class) or limits.get("public") or {"limit": 100, "window": 60}
    return RateLimitRule(limit=int(config["limit"]), window_seconds=int(config["window"]))


class RateLimiter:
    """Check and count requests for a (route class, client) key."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else get_redis_client()

    def _key(self, route_class: str, identifier: str) -> str:
        return f"{self.KEY_PREFIX}{route_class}:{identifier}"

    def hit(self, route_class: str, identifier: str) -> RateLimitResult:
        """Count one request and report whether it fits in the window budget."""
        rule = get_rule(route_class)
        key = self._key(route_class, identifier)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, rule.window_seconds, nx=True)
            count = int(pipe.execute()[0])
            ttl = self.client.ttl(key) if count > rule.limit else rule.window_seconds
        except redis.RedisError as exc:
            raise RateLimitUnavailable("Redis unavailable while counting requests") from exc

        if ttl is None or ttl < 1:
            ttl = rule.window_seconds
        allowed = count <= rule.limit
        if not allowed:
            logger.warning(
                "Rate limit exceeded for %s (%s): %d/%d", identifier, route_class, count, rule.limit
            )
        return RateLimitResult(
            allowed=allowed,
            limit=rule.limit,
            remaining=max(0, rule.limit - count),
            count=count,
            retry_after=int(ttl),
        )


def _trusted_networks():
    networks = []
    for entry in getattr(settings, "TRUSTED_PROXIES", []):
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Invalid TRUSTED_PROXIES entry ignored: %s", entry)
    return networks


def _is_trusted(ip: str, networks) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in networks)


def get_client_ip(request) -> str:
    """Client IP, honouring X-Forwarded-For only when sent by a trusted proxy."""
    direct_ip: Optional[str] = request.META.get("REMOTE_ADDR") or "unknown"
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    networks = _trusted_networks()
    if forwarded and _is_trusted(direct_ip, networks):
        parts = [part.strip() for part in forwarded.split(",") if part.strip()]
        for candidate in reversed(parts):
            if not _is_trusted(candidate, networks):
                return candidate
        if parts:
            return parts[0]
    return direct_ip


__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "RateLimitRule",
    "RateLimitUnavailable",
    "get_rule",
    "get_client_ip",
]
