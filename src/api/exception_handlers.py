"""Exception handlers for the API."""

import typing as t

import orjson
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from events.exceptions import (
    PaymentFailedError,
    PaymentProviderRejectedError,
    PurchaseCommitError,
    TicketingConflictError,
    TicketingError,
    TicketingNotFoundError,
    TicketingValidationError,
)

logger = structlog.get_logger(__name__)

SENSITIVE_KEYS = {"password", "token", "authorization", "payment_method_id", "redemption_code"}


def obfuscate(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Mask values of sensitive keys in a payload."""
    return {key: "********" if key.lower() in SENSITIVE_KEYS else value for key, value in data.items()}


def _json_payload(request: HttpRequest) -> dict[str, t.Any] | None:
    if request.method not in ("POST", "PUT", "PATCH") or request.headers.get("Content-Type") != "application/json":
        return None
    try:
        payload = orjson.loads(request.body)
    except orjson.JSONDecodeError:
        return None
    return obfuscate(payload) if isinstance(payload, dict) else None


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle a general exception.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    logger.exception(
        "INTERNAL_SERVER_ERROR", method=request.method, path=request.path, json_payload=_json_payload(request)
    )
    data: dict[str, t.Any] = {"detail": "Internal Server Error.", "code": "internal_error"}
    if settings.DEBUG:  # pragma: no cover
        data["context"] = {"error": repr(exc)}
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Handle a validation error.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    logger.warning("VALIDATION_ERROR", path=request.path)
    if hasattr(exc, "error_dict"):
        errors = {k: [ee for e in v for ee in e] for k, v in exc.error_dict.items()}
    else:
        errors = {"__all__": list(exc.messages)}  # type: ignore[union-attr]
    return Response(status=400, data={"detail": "Invalid data.", "code": "invalid_request", "context": errors})


def _ticketing_response(status: int, exc: TicketingError | t.Type[TicketingError]) -> Response:
    return Response(status=status, data=exc.to_dict())  # type: ignore[call-arg]


def handle_ticketing_validation_error(
    request: HttpRequest, exc: TicketingValidationError | t.Type[TicketingValidationError]
) -> Response:
    """Handle a request that can never succeed as sent."""
    return _ticketing_response(400, exc)


def handle_ticketing_not_found_error(
    request: HttpRequest, exc: TicketingNotFoundError | t.Type[TicketingNotFoundError]
) -> Response:
    """Handle an unknown event, tier or ticket."""
    return _ticketing_response(404, exc)


def handle_ticketing_conflict_error(
    request: HttpRequest, exc: TicketingConflictError | t.Type[TicketingConflictError]
) -> Response:
    """Handle a conflict with current inventory or ticket state. The context tells the client how to retry."""
    return _ticketing_response(409, exc)


def handle_payment_failed_error(request: HttpRequest, exc: PaymentFailedError | t.Type[PaymentFailedError]) -> Response:
    """Handle a declined or unsettled charge."""
    return _ticketing_response(402, exc)


def handle_payment_provider_rejected_error(
    request: HttpRequest, exc: PaymentProviderRejectedError | t.Type[PaymentProviderRejectedError]
) -> Response:
    """Handle a request the payment provider refused."""
    return _ticketing_response(502, exc)


def handle_purchase_commit_error(request: HttpRequest, exc: PurchaseCommitError | t.Type[PurchaseCommitError]) -> Response:
    """Handle a captured charge whose tickets could not be issued. Already logged as critical."""
    return _ticketing_response(500, exc)
