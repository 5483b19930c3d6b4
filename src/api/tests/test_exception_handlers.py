"""Tests for the API exception handlers."""

import orjson
from django.core.exceptions import ValidationError
from django.test import RequestFactory

from api import exception_handlers
from events.exceptions import InsufficientCapacityError, PurchaseCommitError


def test_obfuscate_masks_sensitive_keys() -> None:
    payload = {"payment_method_id": "pm_1", "Token": "abc", "quantity": 2}

    assert exception_handlers.obfuscate(payload) == {"payment_method_id": "********", "Token": "********", "quantity": 2}


def test_general_exception_hides_details(rf: RequestFactory) -> None:
    request = rf.post("/api/events/public/x/purchase", data=orjson.dumps({"quantity": 1}), content_type="application/json")

    response = exception_handlers.handle_general_exception(request, RuntimeError("boom"))

    assert response.status_code == 500
    assert orjson.loads(response.content) == {"detail": "Internal Server Error.", "code": "internal_error"}


def test_django_validation_error(rf: RequestFactory) -> None:
    response = exception_handlers.handle_django_validation_error(
        rf.post("/"), ValidationError({"quantity": ["Ensure this value is greater than or equal to 1."]})
    )

    assert response.status_code == 400
    assert orjson.loads(response.content)["context"] == {
        "quantity": ["Ensure this value is greater than or equal to 1."]
    }


def test_conflict_carries_context(rf: RequestFactory) -> None:
    response = exception_handlers.handle_ticketing_conflict_error(rf.post("/"), InsufficientCapacityError(available=3))

    assert response.status_code == 409
    assert orjson.loads(response.content) == {
        "detail": "Not enough tickets available. Only 3 left.",
        "code": "insufficient_capacity",
        "context": {"available": 3},
    }


def test_purchase_commit_error_returns_reference(rf: RequestFactory) -> None:
    response = exception_handlers.handle_purchase_commit_error(rf.post("/"), PurchaseCommitError("rec-1"))

    assert response.status_code == 500
    assert orjson.loads(response.content)["context"] == {"reference": "rec-1"}
