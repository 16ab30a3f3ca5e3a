"""The API envelope: ``{"data": ..., "error": null}`` on success and
``{"data": null, "error": {"code", "message", "details"?}}`` on failure.
"""

from typing import Any, Optional

from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ModelViewSet


def api_response(data: Any, status: int = 200) -> Response:
    return Response({"data": data, "error": None}, status=status)


def error_payload(code: str, message: str, details: Optional[Any] = None) -> dict:
    """Error envelope; ``details`` is omitted when empty."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"data": None, "error": error}


def _is_enveloped(payload: Any) -> bool:
    return isinstance(payload, dict) and set(payload) == {"data", "error"}


class EnvelopeMixin:
    """Wrap successful DRF responses that were not built with ``api_response``."""

    def finalize_response(self, request, response, *args, **kwargs):  # type: ignore[override]
        if 200 <= response.status_code < 300 and response.status_code != 204 and hasattr(response, "data"):
            if not _is_enveloped(response.data):
                response.data = {"data": response.data, "error": None}
        return super().finalize_response(request, response, *args, **kwargs)  # type: ignore[attr-defined]


class BaseAPIView(EnvelopeMixin, APIView):
    pass


class BaseViewSet(EnvelopeMixin, ModelViewSet):
    pass


__all__ = ["api_response", "error_payload", "BaseAPIView", "BaseViewSet"]
