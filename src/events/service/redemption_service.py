"""Scan-to-validate-once for tickets at the point of entry."""

import typing as t
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from events.models import Event, Organization, Ticket

if t.TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = structlog.get_logger(__name__)


class ScanOutcome(StrEnum):
    VALID = "VALID"
    INVALID = "INVALID"
    WRONG_EVENT = "WRONG_EVENT"
    ALREADY_USED = "ALREADY_USED"


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    message: str
    ticket: Ticket | None = None
    ticket_event_name: str | None = None
    used_at: datetime | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    tier_name: str | None = None
    event_name: str | None = None
    amount_paid: Decimal | None = None

    @property
    def valid(self) -> bool:
        return self.outcome == ScanOutcome.VALID


_NOT_FOUND = ScanResult(outcome=ScanOutcome.INVALID, message="Ticket not found")


def _already_used(ticket: Ticket) -> ScanResult:
    return ScanResult(
        outcome=ScanOutcome.ALREADY_USED,
        message="Ticket already scanned",
        ticket=ticket,
        used_at=ticket.used_at,
        customer_name=ticket.customer_name,
        tier_name=ticket.tier.name,
        event_name=ticket.event.name,
    )


def _inspect(ticket: Ticket) -> ScanResult | None:
    """Outcome for a ticket that can no longer be redeemed, or None if it is valid."""
    if ticket.status == Ticket.TicketStatus.USED:
        return _already_used(ticket)
    if ticket.status in (Ticket.TicketStatus.REFUNDED, Ticket.TicketStatus.CANCELLED):
        return ScanResult(outcome=ScanOutcome.INVALID, message=f"Ticket has been {ticket.status}", ticket=ticket)
    return None


def scan_ticket(
    redemption_code: str,
    organization: Organization,
    scanned_by: "AbstractBaseUser",
    event_id: UUID | None = None,
    device_id: str | None = None,
) -> ScanResult:
    """Validate a redemption code and mark the ticket used.

    Codes of other organizations are reported exactly like unknown codes. The valid -> used transition
    is a single conditional update, so a duplicate scan racing the first one observes ALREADY_USED.

    Args:
        redemption_code: The code presented at the door.
        organization: The organization operating the scanner.
        scanned_by: The staff member scanning.
        event_id: When given, tickets of other events are rejected with WRONG_EVENT.
        device_id: Optional identifier of the scanning device.

    Returns:
        The scan outcome with the context staff need to act on it.
    """
    ticket = (
        Ticket.objects.select_related("tier", "event").filter(redemption_code=redemption_code).first()
    )
    if ticket is None or ticket.organization_id != organization.id:
        return _NOT_FOUND

    if event_id is not None and ticket.event_id != event_id:
        return ScanResult(
            outcome=ScanOutcome.WRONG_EVENT,
            message="This ticket is for a different event",
            ticket=ticket,
            ticket_event_name=ticket.event.name,
        )

    if (rejection := _inspect(ticket)) is not None:
        return rejection

    now = timezone.now()
    updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.VALID).update(
        status=Ticket.TicketStatus.USED,
        used_at=now,
        used_by=scanned_by,
        used_device_id=device_id,
        updated_at=now,
    )
    ticket.refresh_from_db()
    if not updated:
        # Lost the race against another scan or a refund.
        return _inspect(ticket) or _already_used(ticket)

    logger.info(
        "ticket_scanned",
        ticket_id=str(ticket.id),
        event_id=str(ticket.event_id),
        organization_id=str(organization.id),
        device_id=device_id,
    )
    return ScanResult(
        outcome=ScanOutcome.VALID,
        message="Ticket verified",
        ticket=ticket,
        used_at=ticket.used_at,
        customer_name=ticket.customer_name,
        customer_email=ticket.customer_email,
        tier_name=ticket.tier.name,
        event_name=ticket.event.name,
        amount_paid=ticket.amount_paid,
    )


def list_recent_scans(event: Event, device_id: str | None = None, limit: int | None = None) -> QuerySet[Ticket]:
    """Most recently redeemed tickets of an event, newest first."""
    qs = Ticket.objects.select_related("tier").filter(event=event, status=Ticket.TicketStatus.USED)
    if device_id:
        qs = qs.filter(used_device_id=device_id)
    if limit is None:
        limit = settings.RECENT_SCANS_DEFAULT_LIMIT
    return qs.order_by("-used_at")[: max(limit, 0)]
