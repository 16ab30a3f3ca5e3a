"""Request authorization middleware.

Every request (other than static assets) runs through one pipeline:

1. resolve the route's requirements,
2. count the request against its route-class rate limit,
3. authenticate the bearer token,
4. apply the minimum-role gate,
5. refuse self-targeted privileged operations,
6. check the permissions for the actual HTTP method,
7. write exactly one outcome record to the audit trail.

:meth:`AuthorizationMiddleware.authorize` returns a ``Decision``. Denials are
recorded and rendered at once. An allowed request is recorded once its
response exists: a 401/403 raised further down becomes the denial record
instead of a grant, unless the code that raised it already audited it.
"""

import dataclasses
import logging
from typing import Optional
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from django.http import HttpResponseRedirect, JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed

from access_control import decisions
from access_control.decisions import Allowed, Denied, RateLimited
from access_control.evaluator import can_access, has_minimum_role, has_permission, is_admin, is_owner
from access_control.routes import SELF_GUARD_ALWAYS, SELF_GUARD_ADMIN, ResolvedRoute, is_admin_path, resolve_route
from audit.models import Severity
from audit.services import AuditService, AuditWriteError, outcome_recorded
from authentication.services import BlocklistUnavailable, TokenService
from core.ratelimit import RateLimiter, RateLimitUnavailable, get_client_ip
from core.response import error_payload

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

METHOD_OVERRIDE_HEADERS = ("HTTP_X_HTTP_METHOD_OVERRIDE", "HTTP_X_METHOD_OVERRIDE", "HTTP_X_HTTP_METHOD")

SEVERITY_BY_CLASSIFICATION = {
    decisions.UNAUTHORIZED_ACCESS: Severity.MEDIUM,
    decisions.REPEATED_AUTH_FAILURE: Severity.HIGH,
    decisions.PERMISSION_DENIED: Severity.MEDIUM,
    decisions.PRIVILEGE_ESCALATION: Severity.CRITICAL,
    decisions.SELF_MODIFICATION: Severity.HIGH,
    decisions.ROLE_MANIPULATION: Severity.HIGH,
    decisions.RATE_LIMITED: Severity.MEDIUM,
}

ERROR_MESSAGES = {
    status.HTTP_401_UNAUTHORIZED: "Authentication required.",
    status.HTTP_403_FORBIDDEN: "You do not have permission to perform this action on this resource.",
}
RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."


class AuthorizationMiddleware(MiddlewareMixin):
    """Authenticate, authorize, rate limit and audit every request."""

    def __init__(self, get_response):
        super().__init__(get_response)
        self.limiter = RateLimiter()
        self.audit = AuditService.from_settings()

    def process_request(self, request):  # type: ignore[override]
        request.user = AnonymousUser()
        route = resolve_route(request.path_info)
        if route.rule.skip:
            return None

        ip_address = get_client_ip(request)
        try:
            decision = self.authorize(request, route, ip_address)
        except RateLimitUnavailable:
            logger.exception("Rate limiter unavailable for %s", request.path_info)
            return _service_unavailable("Rate limiting service unavailable.")
        except BlocklistUnavailable:
            logger.exception("Token blocklist unavailable for %s", request.path_info)
            return _service_unavailable("Authentication service unavailable (blocklist).")

        request.authz_decision = decision
        if isinstance(decision, Allowed):
            request.authz_route = route
            request.authz_ip = ip_address
            return None

        try:
            self.record_outcome(request, route, decision, ip_address)
        except AuditWriteError:
            logger.exception("Could not record authorization outcome for %s", request.path_info)
            return _service_unavailable("Audit trail unavailable.")
        return self.render(request, route, decision)

    def process_response(self, request, response):  # type: ignore[override]
        decision = getattr(request, "authz_decision", None)
        if isinstance(decision, Allowed) and not outcome_recorded(request):
            route, ip_address = request.authz_route, request.authz_ip
            final = self._final_decision(decision, route, ip_address, response.status_code)
            try:
                self.record_outcome(request, route, final, ip_address, status_code=response.status_code)
            except AuditWriteError:
                logger.exception("Could not record authorization outcome for %s", request.path_info)
                response = _service_unavailable("Audit trail unavailable.")
        result = getattr(request, "rate_limit", None)
        if result is not None:
            for header, value in result.headers().items():
                response[header] = value
        return response

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def authorize(self, request, route: ResolvedRoute, ip_address: str):
        rule = route.rule

        result = self.limiter.hit(rule.route_class, ip_address)
        request.rate_limit = result
        if not result.allowed:
            return RateLimited(
                retry_after=result.retry_after,
                route_class=rule.route_class,
                limit=result.limit,
                count=result.count,
                user=_token_subject(request, route),
            )

        if rule.public:
            return Allowed(reason="public_route")

        token = _extract_token(request, route)
        if not token:
            return self._classify(decisions.unauthorized("authentication_required"), route, ip_address)
        try:
            user, _payload = TokenService.authenticate(token)
        except AuthenticationFailed as exc:
            logger.info("Rejected token for %s: %s", request.path_info, exc.detail)
            denial = decisions.unauthorized("authentication_required", details={"error": str(exc.detail)})
            return self._classify(denial, route, ip_address)
        request.user = user

        if rule.minimum_role and not has_minimum_role(user, rule.minimum_role):
            denial = decisions.forbidden(
                "insufficient_role",
                user=user,
                details={"requiredRole": str(rule.minimum_role), "actualRole": str(user.role)},
            )
            return self._classify(denial, route, ip_address)

        target_id = route.target_id
        if rule.self_guard and target_id and is_owner(user, target_id):
            if rule.self_guard == SELF_GUARD_ALWAYS or (rule.self_guard == SELF_GUARD_ADMIN and is_admin(user)):
                return decisions.forbidden(
                    "self_modification",
                    classification=decisions.SELF_MODIFICATION,
                    user=user,
                    code=decisions.CODE_SELF_MODIFICATION,
                    details={"targetUserId": target_id},
                )

        if rule.auth_only:
            return Allowed(reason="authenticated", user=user)

        required = rule.required_permissions(request.method)
        if required is None:
            denial = decisions.forbidden("method_not_permitted", user=user, details={"method": request.method})
            return self._classify(denial, route, ip_address)

        owner_id = route.params.get(rule.owner_param) if rule.owner_param else None
        for permission in required:
            granted = can_access(user, permission, owner_id) if rule.owner_param else has_permission(user, permission)
            if not granted:
                denial = decisions.forbidden("permission_denied", user=user, permission=permission)
                return self._classify(denial, route, ip_address)
        return Allowed(reason="permission_granted", user=user, permission=required)

    def _final_decision(self, decision: Allowed, route: ResolvedRoute, ip_address: str, status_code: int):
        """Turn a grant into a denial when the view refused the request."""
        if status_code == status.HTTP_401_UNAUTHORIZED:
            return self._classify(decisions.unauthorized("denied_by_view"), route, ip_address)
        if status_code == status.HTTP_403_FORBIDDEN:
            denial = decisions.forbidden("denied_by_view", user=decision.user, permission=_first(decision.permission))
            return self._classify(denial, route, ip_address)
        return decision

    def _classify(self, decision: Denied, route: ResolvedRoute, ip_address: str) -> Denied:
        """Escalate denials that indicate probing or privilege escalation."""
        if decision.status == status.HTTP_401_UNAUTHORIZED:
            threshold = getattr(settings, "AUTH_FAILURE_THRESHOLD", 5)
            failures = self.audit.recent_auth_failures(ip_address) + 1
            if failures >= threshold:
                details = {**decision.details, "failureCount": failures}
                return dataclasses.replace(
                    decision, classification=decisions.REPEATED_AUTH_FAILURE, details=details
                )
            return decision
        if is_admin_path(route.path) and not is_admin(decision.user):
            return dataclasses.replace(decision, classification=decisions.PRIVILEGE_ESCALATION)
        return decision

    # ------------------------------------------------------------------
    # Outcome record
    # ------------------------------------------------------------------

    def record_outcome(
        self, request, route: ResolvedRoute, decision, ip_address: str, status_code: Optional[int] = None
    ) -> None:
        user_agent = request.META.get("HTTP_USER_AGENT")
        context = {"ip_address": ip_address, "user_agent": user_agent[:512] if user_agent else None}
        details = {
            "method": request.method,
            "path": request.path_info,
            "routeClass": route.rule.route_class,
        }
        overrides = {
            header[5:].replace("_", "-").title(): request.META[header]
            for header in METHOD_OVERRIDE_HEADERS
            if header in request.META
        }
        if overrides:
            details["methodOverrideIgnored"] = overrides

        if isinstance(decision, Allowed):
            details["reason"] = decision.reason
            if status_code is not None:
                details["status"] = status_code
            self.audit.log(
                user_id=decision.user,
                action="access.granted",
                resource=_resource_for(route, decision.permission),
                details=details,
                severity=Severity.LOW,
                **context,
            )
            return

        if isinstance(decision, RateLimited):
            details.update(
                {
                    "limit": decision.limit,
                    "count": decision.count,
                    "retryAfter": decision.retry_after,
                    "success": False,
                    "error": RATE_LIMIT_MESSAGE,
                }
            )
            self.audit.log_security_event(
                user_id=decision.user,
                classification=decisions.RATE_LIMITED,
                resource=_resource_for(route, None),
                details=details,
                severity=SEVERITY_BY_CLASSIFICATION[decisions.RATE_LIMITED],
                **context,
            )
            security_logger.warning("rate_limited ip=%s path=%s", ip_address, request.path_info)
            return

        details.update(decision.details)
        details.update(
            {
                "reason": decision.reason,
                "code": decision.code,
                "status": decision.status,
                "success": False,
            }
        )
        details.setdefault("error", ERROR_MESSAGES[decision.status])
        if decision.permission is not None:
            details["requiredPermission"] = str(decision.permission)
        self.audit.log_security_event(
            user_id=decision.user,
            classification=decision.classification,
            resource=_resource_for(route, [decision.permission] if decision.permission else None),
            resource_id=route.target_id,
            details=details,
            severity=SEVERITY_BY_CLASSIFICATION.get(decision.classification, Severity.HIGH),
            **context,
        )
        security_logger.warning(
            "access_denied classification=%s status=%s ip=%s path=%s",
            decision.classification,
            decision.status,
            ip_address,
            request.path_info,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, request, route: ResolvedRoute, decision):
        if isinstance(decision, RateLimited):
            response = _error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                decisions.CODE_RATE_LIMITED,
                RATE_LIMIT_MESSAGE,
                {"retryAfter": decision.retry_after},
            )
            response["Retry-After"] = str(decision.retry_after)
            return response

        if not route.is_api:
            if decision.status == status.HTTP_401_UNAUTHORIZED:
                query = urlencode({"callbackUrl": request.get_full_path(), "error": "unauthorized"})
                return HttpResponseRedirect(f"{settings.LOGIN_URL}?{query}")
            return HttpResponseRedirect("/?" + urlencode({"error": "forbidden"}))

        return _error_response(decision.status, decision.code, ERROR_MESSAGES[decision.status])


def _extract_token(request, route: ResolvedRoute) -> Optional[str]:
    auth_header = request.META.get("HTTP_AUTHORIZATION", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    if not route.is_api:
        return request.COOKIES.get("access_token") or None
    return None


def _token_subject(request, route: ResolvedRoute) -> Optional[str]:
    """Subject of a validly signed bearer token, without touching Redis or the database."""
    token = _extract_token(request, route)
    if not token:
        return None
    try:
        return TokenService.decode_token(token, expected_type="access").get("sub")
    except AuthenticationFailed:
        return None


def _first(permissions):
    if isinstance(permissions, (list, tuple)):
        return permissions[0] if permissions else None
    return permissions


def _resource_for(route: ResolvedRoute, permissions) -> str:
    if permissions:
        return permissions[0].resource
    segments = [segment for segment in route.path.split("/") if segment]
    if segments and segments[0] == "api":
        segments = segments[1:]
    return segments[0] if segments else "root"


def _error_response(status_code: int, code: str, message: str, details: Optional[dict] = None) -> JsonResponse:
    return JsonResponse(error_payload(code, message, details), status=status_code)


def _service_unavailable(message: str) -> JsonResponse:
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "SERVICE_UNAVAILABLE", message)


__all__ = ["AuthorizationMiddleware"]
