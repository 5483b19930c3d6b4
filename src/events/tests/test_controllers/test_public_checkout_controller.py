"""Tests for the anonymous checkout endpoints."""

import typing as t
from decimal import Decimal
from unittest.mock import Mock, patch

import orjson
import pytest
from django.core.mail import EmailMessage
from django.db import IntegrityError
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from events.exceptions import PaymentFailedError, PaymentOutcomeUnknownError
from events.models import ChargeRecord, Event, Reservation, Ticket, TicketTier
from events.service.payment_gateway import ChargeResult

pytestmark = pytest.mark.django_db


@pytest.fixture
def mock_gateway() -> t.Iterator[Mock]:
    with (
        patch("events.service.payment_gateway.clone_payment_method", return_value="pm_cloned"),
        patch(
            "events.service.payment_gateway.charge",
            return_value=ChargeResult(status="succeeded", payment_intent_id="pi_1", charge_id="ch_1"),
        ) as mock_charge,
    ):
        yield mock_charge


def _reserve(client: Client, event: Event, tier: TicketTier, quantity: int, **extra: t.Any) -> t.Any:
    url = reverse("api:create_reservation", kwargs={"slug": event.slug})
    payload = {"tier_id": str(tier.id), "quantity": quantity, "customer_email": "buyer@example.com"}
    return client.post(url, data=orjson.dumps(payload), content_type="application/json", **extra)


def _purchase_payload(tier: TicketTier, session_id: str, quantity: int) -> dict[str, t.Any]:
    return {
        "session_id": session_id,
        "tier_id": str(tier.id),
        "quantity": quantity,
        "customer_email": "buyer@example.com",
        "customer_name": "Buyer",
        "payment_method_id": "pm_platform",
    }


class TestListTiers:
    def test_lists_active_tiers_with_availability(
        self, client: Client, event: Event, paid_tier: TicketTier, vip_tier: TicketTier
    ) -> None:
        Reservation.objects.create(tier=vip_tier, quantity=1)

        response = client.get(reverse("api:list_public_tiers", kwargs={"slug": event.slug}))

        assert response.status_code == 200, response.content
        data = response.json()
        assert data["event"]["slug"] == "event"
        tiers = {tier["name"]: tier for tier in data["tiers"]}
        assert tiers["General"]["available"] == 100
        assert tiers["General"]["sold_out"] is False
        assert tiers["VIP"]["available"] == 0
        assert tiers["VIP"]["sold_out"] is True

    def test_unpublished_event_is_not_found(self, client: Client, draft_event: Event) -> None:
        response = client.get(reverse("api:list_public_tiers", kwargs={"slug": draft_event.slug}))

        assert response.status_code == 404
        assert response.json()["code"] == "event_not_found"


class TestCreateReservation:
    def test_creates_reservation(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        response = _reserve(client, event, paid_tier, 2, HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1")

        assert response.status_code == 201, response.content
        data = response.json()
        assert data["quantity"] == 2
        assert data["tier_name"] == "General"
        assert Decimal(data["tier_price"]) == Decimal("10.00")
        reservation = Reservation.objects.get(session_id=data["session_id"])
        assert reservation.customer_ip == "203.0.113.5"
        assert reservation.customer_email == "buyer@example.com"

    def test_not_enough_tickets(self, client: Client, event: Event, vip_tier: TicketTier) -> None:
        _reserve(client, event, vip_tier, 1)

        response = _reserve(client, event, vip_tier, 1)

        assert response.status_code == 409
        assert response.json() == {
            "detail": "Not enough tickets available. Only 0 left.",
            "code": "insufficient_capacity",
            "context": {"available": 0},
        }

    def test_per_customer_limit(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        _reserve(client, event, paid_tier, 3)

        response = _reserve(client, event, paid_tier, 2)

        assert response.status_code == 409
        assert response.json()["context"] == {"max_per_customer": 4, "remaining": 1}

    def test_over_per_order_limit(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        event.max_tickets_per_order = 2
        event.save()

        response = _reserve(client, event, paid_tier, 3)

        assert response.status_code == 400
        assert response.json()["code"] == "over_per_order_limit"

    def test_invalid_tier(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        paid_tier.is_active = False
        paid_tier.save()

        response = _reserve(client, event, paid_tier, 1)

        assert response.status_code == 404
        assert response.json()["code"] == "invalid_tier"

    def test_quantity_must_be_positive(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        response = _reserve(client, event, paid_tier, 0)

        assert response.status_code == 422
        assert not Reservation.objects.exists()


class TestGetReservation:
    def test_live_reservation(self, client: Client, event: Event, paid_tier: TicketTier) -> None:
        session_id = _reserve(client, event, paid_tier, 1).json()["session_id"]

        response = client.get(reverse("api:get_reservation", kwargs={"slug": event.slug, "session_id": session_id}))

        assert response.status_code == 200
        assert response.json()["session_id"] == session_id

    def test_unknown_reservation(self, client: Client, event: Event) -> None:
        response = client.get(reverse("api:get_reservation", kwargs={"slug": event.slug, "session_id": "nope"}))

        assert response.status_code == 409
        assert response.json()["code"] == "reservation_expired_or_invalid"


class TestPurchase:
    def test_purchase_issues_tickets_and_emails_them(
        self,
        client: Client,
        event: Event,
        paid_tier: TicketTier,
        mock_gateway: Mock,
        mailoutbox: list[EmailMessage],
        django_capture_on_commit_callbacks: t.Any,
    ) -> None:
        session_id = _reserve(client, event, paid_tier, 2).json()["session_id"]
        url = reverse("api:purchase_tickets", kwargs={"slug": event.slug})

        with django_capture_on_commit_callbacks(execute=True):
            response = client.post(
                url, data=orjson.dumps(_purchase_payload(paid_tier, session_id, 2)), content_type="application/json"
            )

        assert response.status_code == 200, response.content
        data = response.json()
        assert len(data["tickets"]) == 2
        assert Decimal(data["total_amount"]) == Decimal("20.00")
        assert data["payment_intent_id"] == "pi_1"
        assert {ticket["status"] for ticket in data["tickets"]} == {"valid"}
        assert {ticket["tier_name"] for ticket in data["tickets"]} == {"General"}
        assert Ticket.objects.count() == 2
        subjects = [message.subject for message in mailoutbox]
        assert "Your tickets for Event" in subjects
        confirmation = next(message for message in mailoutbox if message.subject == "Your tickets for Event")
        for ticket in data["tickets"]:
            assert ticket["redemption_code"] in confirmation.body

    def test_declined_payment(self, client: Client, event: Event, paid_tier: TicketTier, mock_gateway: Mock) -> None:
        mock_gateway.side_effect = PaymentFailedError("Your card was declined.", status="card_declined")
        session_id = _reserve(client, event, paid_tier, 1).json()["session_id"]

        response = client.post(
            reverse("api:purchase_tickets", kwargs={"slug": event.slug}),
            data=orjson.dumps(_purchase_payload(paid_tier, session_id, 1)),
            content_type="application/json",
        )

        assert response.status_code == 402
        assert response.json() == {
            "detail": "Your card was declined.",
            "code": "payment_failed",
            "context": {"status": "card_declined"},
        }
        assert not Ticket.objects.exists()

    def test_unknown_payment_outcome(
        self, client: Client, event: Event, paid_tier: TicketTier, mock_gateway: Mock
    ) -> None:
        mock_gateway.side_effect = PaymentOutcomeUnknownError()
        session_id = _reserve(client, event, paid_tier, 1).json()["session_id"]

        response = client.post(
            reverse("api:purchase_tickets", kwargs={"slug": event.slug}),
            data=orjson.dumps(_purchase_payload(paid_tier, session_id, 1)),
            content_type="application/json",
        )

        assert response.status_code == 502
        assert response.json()["code"] == "payment_outcome_unknown"
        assert ChargeRecord.objects.get().status == ChargeRecord.ChargeStatus.PENDING
        assert not Ticket.objects.exists()

    def test_commit_failure_returns_reference(
        self, client: Client, event: Event, paid_tier: TicketTier, mock_gateway: Mock
    ) -> None:
        session_id = _reserve(client, event, paid_tier, 1).json()["session_id"]

        with patch.object(Ticket.objects, "bulk_create", side_effect=IntegrityError("boom")):
            response = client.post(
                reverse("api:purchase_tickets", kwargs={"slug": event.slug}),
                data=orjson.dumps(_purchase_payload(paid_tier, session_id, 1)),
                content_type="application/json",
            )

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "purchase_commit_failed"
        assert data["context"]["reference"] == str(ChargeRecord.objects.get().id)

    def test_quantity_mismatch(self, client: Client, event: Event, paid_tier: TicketTier, mock_gateway: Mock) -> None:
        session_id = _reserve(client, event, paid_tier, 1).json()["session_id"]

        response = client.post(
            reverse("api:purchase_tickets", kwargs={"slug": event.slug}),
            data=orjson.dumps(_purchase_payload(paid_tier, session_id, 2)),
            content_type="application/json",
        )

        assert response.status_code == 400
        assert response.json()["context"] == {"reserved": 1, "requested": 2}

    def test_expired_reservation(self, client: Client, event: Event, paid_tier: TicketTier, mock_gateway: Mock) -> None:
        response = client.post(
            reverse("api:purchase_tickets", kwargs={"slug": event.slug}),
            data=orjson.dumps(_purchase_payload(paid_tier, "expired", 1)),
            content_type="application/json",
        )

        assert response.status_code == 409
        assert response.json()["code"] == "reservation_expired_or_invalid"
        mock_gateway.assert_not_called()
