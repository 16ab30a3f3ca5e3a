"""Authorization outcomes returned by the request pipeline.

``Allowed``, ``Denied`` and ``RateLimited`` form a small tagged union so the
middleware can branch on the outcome explicitly instead of catching exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

# Security event classifications.
UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
REPEATED_AUTH_FAILURE = "REPEATED_AUTH_FAILURE"
PERMISSION_DENIED = "PERMISSION_DENIED"
PRIVILEGE_ESCALATION = "PRIVILEGE_ESCALATION"
ROLE_MANIPULATION = "ROLE_MANIPULATION"
SELF_MODIFICATION = "SELF_MODIFICATION"
RATE_LIMITED = "RATE_LIMITED"
DATA_EXPORT = "DATA_EXPORT"
ROLE_ESCALATION = "ROLE_ESCALATION"
SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"

CLASSIFICATIONS = (
    UNAUTHORIZED_ACCESS,
    REPEATED_AUTH_FAILURE,
    PERMISSION_DENIED,
    PRIVILEGE_ESCALATION,
    ROLE_MANIPULATION,
    SELF_MODIFICATION,
    RATE_LIMITED,
    DATA_EXPORT,
    ROLE_ESCALATION,
    SUSPICIOUS_ACTIVITY,
)

# Error codes carried in the response envelope.
CODE_UNAUTHORIZED = "UNAUTHORIZED"
CODE_FORBIDDEN = "FORBIDDEN"
CODE_SELF_MODIFICATION = "SELF_MODIFICATION_FORBIDDEN"
CODE_RATE_LIMITED = "RATE_LIMITED"


@dataclass(frozen=True)
class Allowed:
    reason: str = "permission_granted"
    user: Any = None
    permission: Any = None

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    reason: str
    code: str
    status: int
    classification: str
    user: Any = None
    permission: Any = None
    details: dict = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return False


@dataclass(frozen=True)
class RateLimited:
    retry_after: int
    route_class: str
    limit: int
    count: int
    user: Any = None

    @property
    def allowed(self) -> bool:
        return False


Decision = Union[Allowed, Denied, RateLimited]


def unauthorized(
    reason: str,
    classification: str = UNAUTHORIZED_ACCESS,
    details: Optional[dict] = None,
) -> Denied:
    return Denied(
        reason=reason,
        code=CODE_UNAUTHORIZED,
        status=401,
        classification=classification,
        details=details or {},
    )


def forbidden(
    reason: str,
    classification: str = PERMISSION_DENIED,
    user: Any = None,
    permission: Any = None,
    code: str = CODE_FORBIDDEN,
    details: Optional[dict] = None,
) -> Denied:
    return Denied(
        reason=reason,
        code=code,
        status=403,
        classification=classification,
        user=user,
        permission=permission,
        details=details or {},
    )


__all__ = [
    "Allowed",
    "Denied",
    "RateLimited",
    "Decision",
    "unauthorized",
    "forbidden",
    "CLASSIFICATIONS",
    "UNAUTHORIZED_ACCESS",
    "REPEATED_AUTH_FAILURE",
    "PERMISSION_DENIED",
    "PRIVILEGE_ESCALATION",
    "ROLE_MANIPULATION",
    "SELF_MODIFICATION",
    "RATE_LIMITED",
    "DATA_EXPORT",
    "ROLE_ESCALATION",
    "SUSPICIOUS_ACTIVITY",
    "CODE_UNAUTHORIZED",
    "CODE_FORBIDDEN",
    "CODE_SELF_MODIFICATION",
    "CODE_RATE_LIMITED",
]
