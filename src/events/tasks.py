"""Celery tasks for the ticketing engine.

This module contains asynchronous tasks for:
- Sweeping expired reservations
- Refunding charges whose tickets were never issued
- Ticket confirmation, reminder and refund emails
"""

from datetime import timedelta

import structlog
from celery import shared_task
from django.conf import settings
from django.template.loader import render_to_string
from django.utils import timezone

from common.tasks import send_email
from events.exceptions import PaymentError

from .models import ChargeRecord, Reservation, Ticket
from .service import payment_gateway

logger = structlog.get_logger(__name__)


@shared_task(name="events.sweep_expired_reservations")
def sweep_expired_reservations() -> int:
    """Delete reservations that expired more than the grace period ago.

    Expired rows are already excluded from every capacity and cap query; this only reclaims storage.
    This task is idempotent and safe to run periodically.
    """
    cutoff = timezone.now() - timedelta(minutes=settings.RESERVATION_SWEEP_GRACE_MINUTES)
    deleted, _ = Reservation.objects.expired(before=cutoff).delete()
    logger.info("expired_reservations_swept", deleted=deleted, cutoff=cutoff.isoformat())
    return deleted


@shared_task(name="events.reconcile_captured_charges")
def reconcile_captured_charges() -> dict[str, int]:
    """Refund charges that were captured but never committed to tickets.

    A record stuck in ``captured`` means the ticket transaction failed after the money moved. Each one is
    refunded in full, application fee included, and marked ``reversed``. Records stuck in ``pending``
    cannot be settled automatically and are reported for operators.
    """
    cutoff = timezone.now() - timedelta(minutes=settings.CHARGE_RECONCILE_AFTER_MINUTES)
    reversed_count = 0
    failed_count = 0

    for record in ChargeRecord.objects.stale(ChargeRecord.ChargeStatus.CAPTURED, before=cutoff):
        try:
            refund_id = payment_gateway.refund(
                amount_cents=record.amount_cents,
                merchant_account_id=record.stripe_account_id,
                charge_id=record.stripe_charge_id,
                payment_intent_id=record.stripe_payment_intent_id,
                refund_application_fee=True,
                metadata={"charge_record_id": str(record.id), "refund_reason": "Tickets could not be issued"},
                idempotency_key=f"reconcile-{record.id}",
            )
        except PaymentError:
            # Left captured; retried on the next run.
            logger.exception("charge_reversal_failed", charge_record_id=str(record.id))
            failed_count += 1
            continue
        record.transition(ChargeRecord.ChargeStatus.REVERSED, stripe_refund_id=refund_id)
        logger.warning(
            "captured_charge_reversed",
            charge_record_id=str(record.id),
            payment_intent_id=record.stripe_payment_intent_id,
            amount_cents=record.amount_cents,
        )
        reversed_count += 1

    stale_pending = list(
        ChargeRecord.objects.stale(ChargeRecord.ChargeStatus.PENDING, before=cutoff).values_list("id", flat=True)
    )
    if stale_pending:
        logger.error("stale_pending_charges", charge_record_ids=[str(pk) for pk in stale_pending])

    return {"reversed": reversed_count, "failed": failed_count, "stale_pending": len(stale_pending)}


def _tickets_for_email(ticket_ids: list[str]) -> list[Ticket]:
    return list(
        Ticket.objects.select_related("tier", "event")
        .filter(pk__in=ticket_ids, status=Ticket.TicketStatus.VALID)
        .order_by("created_at")
    )


@shared_task
def send_ticket_confirmation(ticket_ids: list[str]) -> None:
    """Send the purchase confirmation with every redemption code of the order."""
    tickets = _tickets_for_email(ticket_ids)
    if not tickets:
        return
    first = tickets[0]
    body = render_to_string(
        "events/emails/ticket_confirmation_body.txt",
        {"tickets": tickets, "event": first.event, "tier": first.tier, "customer_name": first.customer_name},
    )
    send_email(to=first.customer_email, subject=f"Your tickets for {first.event.name}", body=body)
    logger.info("ticket_confirmation_sent", event_id=str(first.event_id), tickets=len(tickets))


@shared_task
def send_ticket_reminder(ticket_ids: list[str]) -> None:
    """Remind the buyer shortly before the event. Tickets refunded or cancelled meanwhile are skipped."""
    tickets = _tickets_for_email(ticket_ids)
    if not tickets:
        logger.info("ticket_reminder_skipped", ticket_ids=ticket_ids)
        return
    first = tickets[0]
    body = render_to_string(
        "events/emails/ticket_reminder_body.txt",
        {"tickets": tickets, "event": first.event, "customer_name": first.customer_name},
    )
    send_email(to=first.customer_email, subject=f"Reminder: {first.event.name} is coming up", body=body)
    logger.info("ticket_reminder_sent", event_id=str(first.event_id), tickets=len(tickets))


@shared_task
def send_ticket_refund_notification(
    ticket_id: str, refund_amount: str, is_full_refund: bool, reason: str | None = None
) -> None:
    """Tell the buyer about a refund."""
    ticket = Ticket.objects.select_related("tier", "event").get(pk=ticket_id)
    body = render_to_string(
        "events/emails/ticket_refund_body.txt",
        {
            "ticket": ticket,
            "event": ticket.event,
            "refund_amount": refund_amount,
            "is_full_refund": is_full_refund,
            "reason": reason,
        },
    )
    send_email(to=ticket.customer_email, subject=f"Refund for {ticket.event.name}", body=body)
    logger.info("ticket_refund_notification_sent", ticket_id=ticket_id, is_full_refund=is_full_refund)
