import typing as t
from datetime import datetime
from decimal import Decimal

import pytest
from django.contrib.auth.models import User
from django.test.client import Client

from events.models import Event, Organization, Subscription, Ticket, TicketTier


@pytest.fixture
def organization_owner_user(django_user_model: t.Type[User]) -> User:
    return django_user_model.objects.create_user(
        username="organization_owner_user", email="a@example.com", password="pass"
    )


@pytest.fixture
def organization_staff_user(django_user_model: t.Type[User]) -> User:
    return django_user_model.objects.create_user(
        username="organization_staff_user", email="b@example.com", password="pass"
    )


@pytest.fixture
def nonmember_user(django_user_model: t.Type[User]) -> User:
    return django_user_model.objects.create_user(username="nonmember_user", email="c@example.com", password="pass")


@pytest.fixture
def organization(organization_owner_user: User, organization_staff_user: User) -> Organization:
    org = Organization.objects.create(
        name="Org",
        slug="org",
        owner=organization_owner_user,
        stripe_account_id="acct_org123",
        stripe_charges_enabled=True,
        stripe_details_submitted=True,
    )
    org.staff_members.add(organization_staff_user)
    return org


@pytest.fixture
def starter_subscription(organization: Organization) -> Subscription:
    return Subscription.objects.create(organization=organization, plan=Subscription.Plan.STARTER)


@pytest.fixture
def event(organization: Organization, next_week: datetime) -> Event:
    return Event.objects.create(
        organization=organization,
        name="Event",
        slug="event",
        start=next_week,
        status=Event.EventStatus.PUBLISHED,
        max_tickets_per_order=10,
    )


@pytest.fixture
def draft_event(organization: Organization, next_week: datetime) -> Event:
    return Event.objects.create(
        organization=organization, name="Draft", slug="draft", start=next_week, status=Event.EventStatus.DRAFT
    )


@pytest.fixture
def paid_tier(event: Event) -> TicketTier:
    """$10.00, 100 units, at most 4 per customer."""
    return TicketTier.objects.create(
        event=event, name="General", price=Decimal("10.00"), total_quantity=100, max_per_customer=4
    )


@pytest.fixture
def vip_tier(event: Event) -> TicketTier:
    """$50.00 and a single unit."""
    return TicketTier.objects.create(event=event, name="VIP", price=Decimal("50.00"), total_quantity=1, display_order=1)


@pytest.fixture
def free_tier(event: Event) -> TicketTier:
    """Free and unlimited."""
    return TicketTier.objects.create(event=event, name="Free", price=Decimal("0"), total_quantity=None)


@pytest.fixture
def ticket_factory(event: Event, paid_tier: TicketTier) -> t.Callable[..., Ticket]:
    def _create(**kwargs: t.Any) -> Ticket:
        defaults: dict[str, t.Any] = {
            "tier": paid_tier,
            "event": event,
            "organization": event.organization,
            "customer_email": "buyer@example.com",
            "customer_name": "Buyer",
            "amount_paid": paid_tier.price,
            "stripe_charge_id": "ch_123",
            "stripe_payment_intent_id": "pi_123",
        }
        defaults.update(kwargs)
        return Ticket.objects.create(**defaults)

    return _create


@pytest.fixture
def ticket(ticket_factory: t.Callable[..., Ticket]) -> Ticket:
    return ticket_factory()


@pytest.fixture
def organization_owner_client(organization_owner_user: User) -> Client:
    client = Client()
    client.force_login(organization_owner_user)
    return client


@pytest.fixture
def organization_staff_client(organization_staff_user: User) -> Client:
    client = Client()
    client.force_login(organization_staff_user)
    return client


@pytest.fixture
def nonmember_client(nonmember_user: User) -> Client:
    client = Client()
    client.force_login(nonmember_user)
    return client
