"""Staff-facing schemas: scanning, refunds and cancellations."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import Field

from events.models import Ticket
from events.service.redemption_service import ScanOutcome, ScanResult


class ScanRequestSchema(Schema):
    redemption_code: str = Field(..., min_length=1, max_length=64)
    event_id: UUID | None = None
    device_id: str | None = Field(None, max_length=64)


class ScanResultSchema(Schema):
    valid: bool
    reason: ScanOutcome
    message: str
    ticket_id: UUID | None = None
    ticket_event: str | None = None
    used_at: datetime | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    tier_name: str | None = None
    event_name: str | None = None
    amount_paid: Decimal | None = None
    ticket_status: Ticket.TicketStatus | None = None

    @classmethod
    def from_result(cls, result: ScanResult) -> "ScanResultSchema":
        # Tickets of other organizations are reported without any detail.
        ticket_id = result.ticket.id if result.ticket and result.outcome != ScanOutcome.INVALID else None
        return cls(
            valid=result.valid,
            reason=result.outcome,
            message=result.message,
            ticket_id=ticket_id,
            ticket_event=result.ticket_event_name,
            used_at=result.used_at,
            customer_name=result.customer_name,
            customer_email=result.customer_email,
            tier_name=result.tier_name,
            event_name=result.event_name,
            amount_paid=result.amount_paid,
            ticket_status=result.ticket.status if result.ticket else None,
        )


class RecentScanSchema(ModelSchema):
    tier_name: str

    class Meta:
        model = Ticket
        fields = ["id", "customer_name", "customer_email", "used_at", "used_device_id"]

    @staticmethod
    def resolve_tier_name(obj: Ticket) -> str:
        return obj.tier.name


class RefundRequestSchema(Schema):
    amount: Decimal | None = Field(None, max_digits=10, decimal_places=2)
    reason: str | None = Field(None, max_length=500)


class RefundResponseSchema(Schema):
    refund_amount: Decimal
    is_full_refund: bool
    stripe_refund_id: str | None = None
    ticket_status: Ticket.TicketStatus
