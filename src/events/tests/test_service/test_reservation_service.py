"""Tests for the reservation service."""

import threading
import typing as t
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from django.db import connection
from django.utils import timezone
from freezegun import freeze_time

from events.exceptions import (
    InsufficientCapacityError,
    InvalidTierError,
    OverPerOrderLimitError,
    PerCustomerLimitExceededError,
    PerNetworkLimitExceededError,
    ReservationExpiredOrInvalidError,
    TicketingError,
    TicketingValidationError,
)
from events.models import Event, Organization, Reservation, Ticket, TicketTier
from events.service.reservation_service import ReservationService

pytestmark = pytest.mark.django_db


class TestCreateReservation:
    def test_creates_a_ten_minute_hold(self, event: Event, paid_tier: TicketTier) -> None:
        with freeze_time("2026-03-01 18:00:00"):
            reservation = ReservationService(event).create_reservation(
                paid_tier.id, 2, customer_email=" Buyer@Example.com ", customer_ip="10.0.0.1"
            )
            assert reservation.expires_at == timezone.now() + timedelta(minutes=10)

        assert reservation.quantity == 2
        assert reservation.customer_email == "buyer@example.com"
        assert reservation.customer_ip == "10.0.0.1"
        assert Reservation.objects.count() == 1

    def test_rejects_non_positive_quantity(self, event: Event, paid_tier: TicketTier) -> None:
        with pytest.raises(TicketingValidationError):
            ReservationService(event).create_reservation(paid_tier.id, 0)

    def test_rejects_quantity_over_per_order_limit(self, event: Event, paid_tier: TicketTier) -> None:
        event.max_tickets_per_order = 3
        event.save()

        with pytest.raises(OverPerOrderLimitError) as exc_info:
            ReservationService(event).create_reservation(paid_tier.id, 4)

        assert exc_info.value.context == {"max_per_order": 3}
        assert not Reservation.objects.exists()

    def test_rejects_inactive_tier(self, event: Event, paid_tier: TicketTier) -> None:
        paid_tier.is_active = False
        paid_tier.save()

        with pytest.raises(InvalidTierError):
            ReservationService(event).create_reservation(paid_tier.id, 1)

    def test_rejects_tier_of_another_event(
        self, organization: Organization, paid_tier: TicketTier, next_week: t.Any
    ) -> None:
        other = Event.objects.create(
            organization=organization, name="Other", slug="other", start=next_week, status=Event.EventStatus.PUBLISHED
        )

        with pytest.raises(InvalidTierError):
            ReservationService(other).create_reservation(paid_tier.id, 1)

    def test_rejects_unknown_tier(self, event: Event) -> None:
        with pytest.raises(InvalidTierError):
            ReservationService(event).create_reservation(uuid.uuid4(), 1)

    def test_insufficient_capacity_reports_what_is_left(self, event: Event, paid_tier: TicketTier) -> None:
        paid_tier.total_quantity = 5
        paid_tier.max_per_customer = None
        paid_tier.save()
        Reservation.objects.create(tier=paid_tier, quantity=3)

        with pytest.raises(InsufficientCapacityError) as exc_info:
            ReservationService(event).create_reservation(paid_tier.id, 3)

        assert exc_info.value.context == {"available": 2}
        assert exc_info.value.message == "Not enough tickets available. Only 2 left."

    def test_capacity_is_freed_when_a_hold_expires(self, event: Event, vip_tier: TicketTier) -> None:
        service = ReservationService(event)
        with freeze_time("2026-03-01 18:00:00"):
            service.create_reservation(vip_tier.id, 1)
            with pytest.raises(InsufficientCapacityError):
                service.create_reservation(vip_tier.id, 1)

        with freeze_time("2026-03-01 18:10:00"):
            reservation = service.create_reservation(vip_tier.id, 1)

        assert reservation.quantity == 1
        assert Reservation.objects.count() == 2

    def test_unlimited_tier_never_runs_out(self, event: Event, free_tier: TicketTier) -> None:
        service = ReservationService(event)
        for _ in range(5):
            service.create_reservation(free_tier.id, 10)

        assert Reservation.objects.filter(tier=free_tier).count() == 5


class TestIdentityCaps:
    def test_email_cap_counts_tickets_and_live_holds(
        self, event: Event, paid_tier: TicketTier, ticket_factory: t.Callable[..., Ticket]
    ) -> None:
        ticket_factory(customer_email="buyer@example.com")
        Reservation.objects.create(tier=paid_tier, quantity=2, customer_email="buyer@example.com")

        with pytest.raises(PerCustomerLimitExceededError) as exc_info:
            ReservationService(event).create_reservation(paid_tier.id, 2, customer_email="BUYER@example.com")

        assert exc_info.value.context == {"max_per_customer": 4, "remaining": 1}

    def test_email_cap_is_event_scoped(self, event: Event, paid_tier: TicketTier, vip_tier: TicketTier) -> None:
        vip_tier.total_quantity = 10
        vip_tier.save()
        Reservation.objects.create(tier=vip_tier, quantity=4, customer_email="buyer@example.com")

        with pytest.raises(PerCustomerLimitExceededError):
            ReservationService(event).create_reservation(paid_tier.id, 1, customer_email="buyer@example.com")

    def test_cancelled_tickets_do_not_count(
        self, event: Event, paid_tier: TicketTier, ticket_factory: t.Callable[..., Ticket]
    ) -> None:
        for _ in range(4):
            ticket_factory(status=Ticket.TicketStatus.CANCELLED)

        reservation = ReservationService(event).create_reservation(
            paid_tier.id, 4, customer_email="buyer@example.com"
        )

        assert reservation.quantity == 4

    def test_refunded_tickets_still_count(
        self, event: Event, paid_tier: TicketTier, ticket_factory: t.Callable[..., Ticket]
    ) -> None:
        for _ in range(4):
            ticket_factory(status=Ticket.TicketStatus.REFUNDED)

        with pytest.raises(PerCustomerLimitExceededError):
            ReservationService(event).create_reservation(paid_tier.id, 1, customer_email="buyer@example.com")

    def test_expired_holds_do_not_count(self, event: Event, paid_tier: TicketTier) -> None:
        Reservation.objects.create(
            tier=paid_tier,
            quantity=4,
            customer_email="buyer@example.com",
            expires_at=timezone.now() - timedelta(seconds=1),
        )

        reservation = ReservationService(event).create_reservation(
            paid_tier.id, 4, customer_email="buyer@example.com"
        )

        assert reservation.quantity == 4

    def test_network_cap_allows_twice_the_email_cap(self, event: Event, paid_tier: TicketTier) -> None:
        service = ReservationService(event)
        service.create_reservation(paid_tier.id, 4, customer_email="one@example.com", customer_ip="10.0.0.1")
        service.create_reservation(paid_tier.id, 4, customer_email="two@example.com", customer_ip="10.0.0.1")

        with pytest.raises(PerNetworkLimitExceededError):
            service.create_reservation(paid_tier.id, 1, customer_email="three@example.com", customer_ip="10.0.0.1")

        service.create_reservation(paid_tier.id, 1, customer_email="three@example.com", customer_ip="10.0.0.2")

    def test_anonymous_holds_are_capped_by_network_only(self, event: Event, paid_tier: TicketTier) -> None:
        service = ReservationService(event)
        service.create_reservation(paid_tier.id, 4, customer_ip="10.0.0.1")
        service.create_reservation(paid_tier.id, 4, customer_ip="10.0.0.1")

        with pytest.raises(PerNetworkLimitExceededError):
            service.create_reservation(paid_tier.id, 1, customer_ip="10.0.0.1")

    def test_tier_without_cap_is_not_limited(self, event: Event, paid_tier: TicketTier) -> None:
        paid_tier.max_per_customer = None
        paid_tier.save()
        service = ReservationService(event)

        service.create_reservation(paid_tier.id, 10, customer_email="buyer@example.com", customer_ip="10.0.0.1")
        service.create_reservation(paid_tier.id, 10, customer_email="buyer@example.com", customer_ip="10.0.0.1")

        assert Reservation.objects.count() == 2

    def test_custom_policy_is_consulted(self, event: Event, paid_tier: TicketTier) -> None:
        class DenyAll:
            def check_reservation(self, *args: t.Any) -> None:
                raise PerNetworkLimitExceededError()

            def check_purchase(self, *args: t.Any) -> None:  # pragma: no cover
                raise AssertionError

        with pytest.raises(PerNetworkLimitExceededError):
            ReservationService(event, limit_policy=DenyAll()).create_reservation(paid_tier.id, 1)


class TestGetReservation:
    def test_returns_live_reservation(self, event: Event, paid_tier: TicketTier) -> None:
        created = ReservationService(event).create_reservation(paid_tier.id, 1)

        found = ReservationService(event).get_reservation(created.session_id, tier_id=paid_tier.id)

        assert found == created

    def test_expired_reservation_is_invalid(self, event: Event, paid_tier: TicketTier) -> None:
        reservation = Reservation.objects.create(
            tier=paid_tier, quantity=1, expires_at=timezone.now() - timedelta(seconds=1)
        )

        with pytest.raises(ReservationExpiredOrInvalidError):
            ReservationService(event).get_reservation(reservation.session_id)

    def test_tier_mismatch_is_invalid(self, event: Event, paid_tier: TicketTier, vip_tier: TicketTier) -> None:
        reservation = Reservation.objects.create(tier=paid_tier, quantity=1)

        with pytest.raises(ReservationExpiredOrInvalidError):
            ReservationService(event).get_reservation(reservation.session_id, tier_id=vip_tier.id)

    def test_unknown_session_is_invalid(self, event: Event) -> None:
        with pytest.raises(ReservationExpiredOrInvalidError):
            ReservationService(event).get_reservation("nope")


@pytest.mark.django_db(transaction=True)
def test_concurrent_reservations_never_oversell(event: Event, vip_tier: TicketTier) -> None:
    """Two buyers racing for the last unit: exactly one gets it."""
    workers = 4
    barrier = threading.Barrier(workers)

    def reserve(i: int) -> str:
        try:
            barrier.wait(timeout=5)
            ReservationService(event).create_reservation(vip_tier.id, 1, customer_email=f"buyer{i}@example.com")
            return "ok"
        except TicketingError as e:
            return e.code
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=workers) as executor:
        outcomes = list(executor.map(reserve, range(workers)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("insufficient_capacity") == workers - 1
    assert Reservation.objects.filter(tier=vip_tier).count() == 1

