"""Per-identity purchase caps.

Caps are heuristics against hoarding, not strong identity. They are expressed as a policy object so that
the reservation and purchase services do not depend on how a buyer is identified.
"""

import typing as t

import structlog
from django.conf import settings
from django.db.models import Sum
from django.db.models.functions import Coalesce

from events.exceptions import PerCustomerLimitExceededError, PerNetworkLimitExceededError
from events.models import Event, Reservation, Ticket, TicketTier

logger = structlog.get_logger(__name__)


class PurchaseLimitPolicy(t.Protocol):
    """Decides whether an identity may hold more tickets of an event."""

    def check_reservation(
        self, tier: TicketTier, quantity: int, customer_email: str | None, customer_ip: str | None
    ) -> None:
        """Raise if the buyer may not reserve ``quantity`` more units.

        Called under the tier lock, before the reservation row is written.
        """
        ...

    def check_purchase(self, tier: TicketTier, quantity: int, customer_email: str) -> None:
        """Raise if the buyer may not finalize ``quantity`` more units.

        Only finalized tickets count here: the buyer's own reservation is what is being finalized.
        """
        ...


class IdentityCapPolicy:
    """Caps by email and, more loosely, by network address, both scoped to the event.

    The limit comes from the tier's ``max_per_customer``; tiers without one are not capped. Network
    addresses are allowed ``network_multiplier`` times the email limit to tolerate shared networks.
    """

    def __init__(self, network_multiplier: int | None = None) -> None:
        self.network_multiplier = network_multiplier or settings.NETWORK_LIMIT_MULTIPLIER

    @staticmethod
    def tickets_held(event: Event, **identity: str) -> int:
        return Ticket.objects.filter(event=event, **identity).not_cancelled().count()

    @staticmethod
    def units_reserved(event: Event, **identity: str) -> int:
        qs = Reservation.objects.filter(tier__event=event, **identity).live()
        return t.cast(int, qs.aggregate(total=Coalesce(Sum("quantity"), 0))["total"])

    def check_reservation(
        self, tier: TicketTier, quantity: int, customer_email: str | None, customer_ip: str | None
    ) -> None:
        max_per_customer = tier.max_per_customer
        if not max_per_customer:
            return
        event = tier.event

        if customer_email:
            held = self.tickets_held(event, customer_email=customer_email)
            reserved = self.units_reserved(event, customer_email=customer_email)
            if held + reserved + quantity > max_per_customer:
                raise PerCustomerLimitExceededError(
                    max_per_customer=max_per_customer, remaining=max(0, max_per_customer - held - reserved)
                )

        if customer_ip:
            network_limit = max_per_customer * self.network_multiplier
            held = self.tickets_held(event, customer_ip=customer_ip)
            reserved = self.units_reserved(event, customer_ip=customer_ip)
            if held + reserved + quantity > network_limit:
                logger.warning(
                    "network_ticket_limit_exceeded",
                    event_id=str(event.id),
                    tier_id=str(tier.id),
                    customer_ip=customer_ip,
                    held=held,
                    reserved=reserved,
                    requested=quantity,
                )
                raise PerNetworkLimitExceededError()

    def check_purchase(self, tier: TicketTier, quantity: int, customer_email: str) -> None:
        max_per_customer = tier.max_per_customer
        if not max_per_customer:
            return
        held = self.tickets_held(tier.event, customer_email=customer_email)
        if held + quantity > max_per_customer:
            raise PerCustomerLimitExceededError(
                max_per_customer=max_per_customer, remaining=max(0, max_per_customer - held)
            )
