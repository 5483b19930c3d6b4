"""Refund and cancellation transitions of sold tickets."""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import DecimalField, F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from events.exceptions import (
    PaymentsNotEnabledError,
    RefundAmountExceedsPaidError,
    RefundAmountNotPositiveError,
    TicketAlreadyCancelledError,
    TicketAlreadyRefundedError,
    TicketNotCancellableError,
    TicketNotFoundError,
)
from events.models import Customer, Event, Ticket
from events.models.ticket import to_cents

from . import payment_gateway

logger = structlog.get_logger(__name__)

DEFAULT_REFUND_REASON = "Organizer initiated refund"


@dataclass(frozen=True)
class RefundResult:
    ticket: Ticket
    refund_amount: Decimal
    is_full_refund: bool
    stripe_refund_id: str | None = None


def _get_ticket(event: Event, ticket_id: UUID, lock: bool = False) -> Ticket:
    qs = Ticket.objects.select_for_update() if lock else Ticket.objects.all()
    try:
        return qs.get(pk=ticket_id, event=event)
    except Ticket.DoesNotExist as e:
        raise TicketNotFoundError() from e


@transaction.atomic
def refund_ticket(
    event: Event, ticket_id: UUID, amount: Decimal | None = None, reason: str | None = None
) -> RefundResult:
    """Refund a ticket, fully or partially.

    Only a refund of the full amount paid moves the ticket to ``refunded``; a partial refund leaves it
    usable. The platform fee is never refunded.

    Args:
        event: The event the ticket belongs to.
        ticket_id: The ticket to refund.
        amount: Amount to refund. Defaults to the full amount paid.
        reason: Free-text reason stored on the Stripe refund.

    Returns:
        The refunded amount, whether it was a full refund and the Stripe refund id.

    Raises:
        TicketNotFoundError: If the ticket does not belong to the event.
        TicketAlreadyRefundedError: If the ticket was already refunded.
        TicketAlreadyCancelledError: If the ticket was cancelled.
        RefundAmountExceedsPaidError: If ``amount`` is larger than the amount paid.
        RefundAmountNotPositiveError: If ``amount`` is zero or negative.
        PaymentProviderRejectedError: If Stripe refused the refund.
    """
    ticket = _get_ticket(event, ticket_id, lock=True)
    if ticket.status == Ticket.TicketStatus.REFUNDED:
        raise TicketAlreadyRefundedError()
    if ticket.status == Ticket.TicketStatus.CANCELLED:
        raise TicketAlreadyCancelledError()

    refund_amount = ticket.amount_paid if amount is None else amount
    if refund_amount > ticket.amount_paid:
        raise RefundAmountExceedsPaidError(amount_paid=str(ticket.amount_paid))
    if refund_amount <= 0:
        raise RefundAmountNotPositiveError()

    stripe_refund_id = None
    if ticket.stripe_charge_id:
        account_id = event.organization.stripe_account_id
        if account_id is None:
            raise PaymentsNotEnabledError()
        stripe_refund_id = payment_gateway.refund(
            charge_id=ticket.stripe_charge_id,
            amount_cents=to_cents(refund_amount),
            merchant_account_id=account_id,
            metadata={
                "ticket_id": str(ticket.id),
                "event_id": str(event.id),
                "refund_reason": reason or DEFAULT_REFUND_REASON,
            },
        )

    is_full_refund = refund_amount >= ticket.amount_paid
    if is_full_refund:
        ticket.status = Ticket.TicketStatus.REFUNDED
        ticket.save(update_fields=["status", "updated_at"])
        Customer.objects.filter(organization_id=ticket.organization_id, email=ticket.customer_email).update(
            total_spent=Greatest(
                F("total_spent") - refund_amount,
                Value(Decimal("0")),
                output_field=DecimalField(max_digits=12, decimal_places=2),
            ),
            updated_at=timezone.now(),
        )

    logger.info(
        "ticket_refunded",
        ticket_id=str(ticket.id),
        event_id=str(event.id),
        refund_amount=str(refund_amount),
        is_full_refund=is_full_refund,
        stripe_refund_id=stripe_refund_id,
    )
    return RefundResult(
        ticket=ticket,
        refund_amount=refund_amount,
        is_full_refund=is_full_refund,
        stripe_refund_id=stripe_refund_id,
    )


def cancel_ticket(event: Event, ticket_id: UUID) -> Ticket:
    """Cancel a valid ticket. No charge is reversed.

    Raises:
        TicketNotFoundError: If the ticket does not belong to the event.
        TicketNotCancellableError: If the ticket is used, refunded or already cancelled.
    """
    ticket = _get_ticket(event, ticket_id)
    cancelled = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.VALID).update(
        status=Ticket.TicketStatus.CANCELLED, updated_at=timezone.now()
    )
    ticket.refresh_from_db()
    if not cancelled:
        raise TicketNotCancellableError(ticket.status)
    logger.info("ticket_cancelled", ticket_id=str(ticket.id), event_id=str(event.id))
    return ticket
