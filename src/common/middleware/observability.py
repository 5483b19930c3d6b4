"""Observability middleware for context enrichment."""

import typing as t
import uuid

import structlog
from django.http import HttpRequest, HttpResponse

from common.utils import get_client_ip


class StructlogContextMiddleware:
    """Binds request metadata (request id, method, path, client address, user) to every log event of a request."""

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        context: dict[str, t.Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.path,
            "ip_address": get_client_ip(request),
        }
        if hasattr(request, "user") and request.user.is_authenticated:
            context["user_id"] = str(request.user.pk)
        structlog.contextvars.bind_contextvars(**context)

        try:
            response = self.get_response(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response["X-Request-ID"] = request_id
        return response
