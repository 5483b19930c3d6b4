"""How much of a tier is spoken for.

Every function here is a fresh read of two facts: committed tickets and live reservations. Callers
that gate a write on the result must hold the tier row lock (``select_for_update``) while they read.
"""

import typing as t
from dataclasses import dataclass
from datetime import datetime

from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from events.models import Event, Reservation, Ticket, TicketTier


@dataclass(frozen=True)
class TierAvailability:
    tier: TicketTier
    sold: int
    reserved: int
    available: int | None

    @property
    def is_sold_out(self) -> bool:
        return self.available is not None and self.available <= 0


def sold_count(tier: TicketTier) -> int:
    """Tickets of the tier that are valid or used."""
    return Ticket.objects.filter(tier=tier).committed().count()


def live_reserved_count(
    tier: TicketTier, now: datetime | None = None, exclude_session_id: str | None = None
) -> int:
    """Sum of quantities held by reservations that have not expired yet."""
    qs = Reservation.objects.filter(tier=tier).live(now)
    if exclude_session_id is not None:
        qs = qs.exclude(session_id=exclude_session_id)
    return t.cast(int, qs.aggregate(total=Coalesce(Sum("quantity"), 0))["total"])


def committed_count(tier: TicketTier, now: datetime | None = None, exclude_session_id: str | None = None) -> int:
    return sold_count(tier) + live_reserved_count(tier, now=now, exclude_session_id=exclude_session_id)


def available(tier: TicketTier, now: datetime | None = None, exclude_session_id: str | None = None) -> int | None:
    """Remaining units of the tier, or None when the tier has no capacity.

    The value is not floored: a negative number means the tier is oversubscribed.
    """
    if tier.total_quantity is None:
        return None
    return tier.total_quantity - committed_count(tier, now=now, exclude_session_id=exclude_session_id)


def list_tier_availability(event: Event) -> list[TierAvailability]:
    """Availability of every active tier of an event, in display order."""
    now = timezone.now()
    result = []
    for tier in event.ticket_tiers.active():
        sold = sold_count(tier)
        reserved = live_reserved_count(tier, now=now)
        remaining = None if tier.total_quantity is None else max(0, tier.total_quantity - sold - reserved)
        result.append(TierAvailability(tier=tier, sold=sold, reserved=reserved, available=remaining))
    return result
