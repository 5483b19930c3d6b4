"""Ticket lifecycle notifications, submitted once the surrounding transaction commits."""

from datetime import timedelta
from decimal import Decimal

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from events.models import Event
from events.tasks import send_ticket_confirmation, send_ticket_refund_notification, send_ticket_reminder

from .purchase_service import PurchaseResult
from .refund_service import RefundResult

logger = structlog.get_logger(__name__)


def handle_tickets_purchased(event: Event, result: PurchaseResult) -> None:
    """Queue the confirmation email and, when still ahead, the reminder before the event.

    Args:
        event: The event the tickets were bought for.
        result: The completed purchase.
    """
    ticket_ids = [str(ticket.id) for ticket in result.tickets]
    transaction.on_commit(lambda: send_ticket_confirmation.delay(ticket_ids))

    remind_at = event.start - timedelta(hours=settings.TICKET_REMINDER_LEAD_HOURS)
    if remind_at <= timezone.now():
        logger.debug("ticket_reminder_not_scheduled", event_id=str(event.id))
        return
    transaction.on_commit(lambda: send_ticket_reminder.apply_async(args=[ticket_ids], eta=remind_at))


def handle_ticket_refunded(result: RefundResult, reason: str | None = None) -> None:
    """Queue the refund email."""
    ticket_id = str(result.ticket.id)
    amount = str(result.refund_amount.quantize(Decimal("0.01")))
    transaction.on_commit(
        lambda: send_ticket_refund_notification.delay(
            ticket_id=ticket_id, refund_amount=amount, is_full_refund=result.is_full_refund, reason=reason
        )
    )
